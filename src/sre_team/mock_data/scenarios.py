"""Sample incident scenarios for demos and tests.

Each scenario bundles the raw observability inputs (logs, metrics and an
optional code sample) that seed a pipeline run.
"""

from __future__ import annotations

from pydantic import BaseModel


class Scenario(BaseModel):
    id: str
    title: str
    logs: str
    metrics: str
    sample_code: str | None = None


OOM_LOGS = """\
[2024-07-23 03:14:00] INFO: User login successful for user 'test'.
[2024-07-23 03:14:15] INFO: API call to /api/data processed in 50ms.
[2024-07-23 03:14:30] INFO: API call to /api/data processed in 55ms.
[2024-07-23 03:14:45] INFO: API call to /api/data processed in 52ms.
[2024-07-23 03:15:00] ERROR: OutOfMemoryError: Java heap space.
[2024-07-23 03:15:01] CRITICAL: Pod 'my-app-pod-1' is restarting.
[2024-07-23 03:15:05] ERROR: OutOfMemoryError: Java heap space.
[2024-07-23 03:15:06] CRITICAL: Pod 'my-app-pod-1' is restarting.
[2024-07-23 03:15:10] WARN: Liveness probe failed for pod 'my-app-pod-1'.
[2024-07-23 03:15:12] ERROR: OutOfMemoryError: Java heap space.
[2024-07-23 03:15:13] CRITICAL: Pod 'my-app-pod-1' is restarting."""

OOM_METRICS = """\
cpu_usage{pod="my-app-pod-1"}: 0.8
memory_usage{pod="my-app-pod-1"}: 95%
network_traffic{pod="my-app-pod-1"}: 1.2MB/s
latency{pod="my-app-pod-1"}: 500ms"""

OOM_SAMPLE_CODE = """\
public class SessionCache {
    private static final Map<String, Session> CACHE = new HashMap<>();

    public static void put(String userId, Session session) {
        CACHE.put(userId + ":" + System.nanoTime(), session);
    }

    public static Session get(String key) {
        return CACHE.get(key);
    }
}"""

HEALTHY_LOGS = """\
[2024-07-23 09:00:00] INFO: User login successful for user 'alice'.
[2024-07-23 09:00:15] INFO: API call to /api/data processed in 48ms.
[2024-07-23 09:00:30] INFO: API call to /api/data processed in 51ms.
[2024-07-23 09:00:45] INFO: Scheduled cache refresh completed."""

HEALTHY_METRICS = """\
cpu_usage{pod="my-app-pod-3"}: 0.35
memory_usage{pod="my-app-pod-3"}: 41%
network_traffic{pod="my-app-pod-3"}: 0.8MB/s
latency{pod="my-app-pod-3"}: 52ms"""


SCENARIOS: list[Scenario] = [
    Scenario(
        id="oom-memory-leak",
        title="Memory leak after deployment (OutOfMemoryError, pod restarts)",
        logs=OOM_LOGS,
        metrics=OOM_METRICS,
        sample_code=OOM_SAMPLE_CODE,
    ),
    Scenario(
        id="healthy",
        title="Healthy system, no anomalies",
        logs=HEALTHY_LOGS,
        metrics=HEALTHY_METRICS,
    ),
]


def get_scenario(scenario_id: str) -> Scenario | None:
    """Look up a bundled scenario by ID."""
    for scenario in SCENARIOS:
        if scenario.id == scenario_id:
            return scenario
    return None
