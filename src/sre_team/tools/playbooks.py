"""Remediation playbooks used by the offline Commander heuristics.

Each playbook names the symptom it addresses, the keywords that identify
that symptom in a diagnosis, and the solution, ordered steps and rollback
plan to propose.
"""

from __future__ import annotations

from typing import Any


# ---------------------------------------------------------------------------
# Playbook Registry
# ---------------------------------------------------------------------------

PLAYBOOKS: dict[str, dict[str, Any]] = {
    "memory_leak": {
        "name": "Memory Leak Containment",
        "keywords": ["outofmemory", "out of memory", "oom", "heap", "memory leak", "memory_usage"],
        "root_cause": (
            "Memory grows without bound until the container limit is reached, "
            "so pods are OOM-killed and restarted."
        ),
        "solution": (
            "Bound or evict the growing in-memory structure, and roll back the "
            "release that introduced it while the fix ships."
        ),
        "steps": [
            "Roll back {deployment} in namespace {namespace} to the previous revision",
            "Confirm pods stop restarting and memory usage returns to baseline",
            "Patch the code to bound the cache (size limit or TTL eviction)",
            "Add a heap usage alert at 80% of the container memory limit",
            "Redeploy the fixed build with a canary before full rollout",
        ],
        "rollback_plan": (
            "If the rollback itself degrades service, re-apply the current revision "
            "of {deployment} and temporarily raise its memory limit by 50%."
        ),
    },
    "high_cpu": {
        "name": "CPU Saturation Relief",
        "keywords": ["cpu", "throttl", "thread pool exhausted"],
        "root_cause": "CPU demand exceeds the allocated limit and requests queue up.",
        "solution": "Add capacity now and profile the hot path before the next release.",
        "steps": [
            "Scale {deployment} in namespace {namespace} out by 50%",
            "Verify request latency returns within SLA",
            "Capture a CPU profile from one pod under load",
            "Fix or cache the hot code path identified by the profile",
        ],
        "rollback_plan": "Scale {deployment} back to its original replica count.",
    },
    "regression_after_deploy": {
        "name": "Deployment Rollback",
        "keywords": ["deploy", "revision", "release", "regression", "exception", "stack trace"],
        "root_cause": "A recent release introduced an error path not covered by tests.",
        "solution": "Return to the last known-good release and fix forward behind tests.",
        "steps": [
            "Roll back {deployment} in namespace {namespace} via kubectl rollout undo",
            "Verify the error rate returns to baseline within 5 minutes",
            "Reproduce the failure against the rolled-back release in staging",
            "Ship a fix with a regression test",
        ],
        "rollback_plan": "Re-apply the current revision of {deployment} if the old one misbehaves.",
    },
    "connection_timeout": {
        "name": "Connection Pool Drain",
        "keywords": ["timeout", "connection refused", "connection pool", "latency"],
        "root_cause": "Downstream connections are exhausted or stalling.",
        "solution": "Reset the connection pool and cap concurrent downstream calls.",
        "steps": [
            "Shift traffic away from {deployment} pods with the highest latency",
            "Restart {deployment} in namespace {namespace} to reset connection pools",
            "Lower client timeouts and enable a circuit breaker on the downstream call",
            "Monitor connection pool utilisation for 15 minutes",
        ],
        "rollback_plan": "Restore the previous timeout and traffic weights.",
    },
}

DEFAULT_PLAYBOOK = "regression_after_deploy"


def select_playbook(text: str) -> str:
    """Pick the playbook whose keywords best match *text*.

    Returns the playbook key; ties go to the earlier playbook, and
    :data:`DEFAULT_PLAYBOOK` is used when nothing matches.
    """
    lowered = text.lower()
    best, best_hits = DEFAULT_PLAYBOOK, 0
    for key, playbook in PLAYBOOKS.items():
        hits = sum(1 for keyword in playbook["keywords"] if keyword in lowered)
        if hits > best_hits:
            best, best_hits = key, hits
    return best
