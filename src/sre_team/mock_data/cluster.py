"""Mock Kubernetes cluster snapshot.

Deployments, pods, rollout history and log tails for a small platform,
served read-only by :class:`~sre_team.tools.introspection.MockClusterIntrospection`.
"""

from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Deployments
# ---------------------------------------------------------------------------

DEPLOYMENTS: dict[str, dict[str, Any]] = {
    "my-app": {
        "name": "my-app",
        "namespace": "production",
        "image": "registry.example.com/my-app:v2.3.0",
        "replicas": 3,
        "ready_replicas": 2,
        "memory_limit": "512Mi",
        "cpu_limit": "500m",
        "strategy": "RollingUpdate",
        "rollout_history": [
            {
                "revision": 14,
                "image": "registry.example.com/my-app:v2.3.0",
                "age": "47m",
                "change_cause": "Add in-memory session cache for /api/data",
            },
            {
                "revision": 13,
                "image": "registry.example.com/my-app:v2.2.4",
                "age": "3d",
                "change_cause": "Bump JVM base image",
            },
        ],
    },
    "payment-service": {
        "name": "payment-service",
        "namespace": "payments",
        "image": "registry.example.com/payment-service:v2.14.3",
        "replicas": 4,
        "ready_replicas": 4,
        "memory_limit": "4Gi",
        "cpu_limit": "2000m",
        "strategy": "RollingUpdate",
        "rollout_history": [
            {
                "revision": 31,
                "image": "registry.example.com/payment-service:v2.14.3",
                "age": "6d",
                "change_cause": "Retry budget for gateway client",
            },
        ],
    },
    "order-processor": {
        "name": "order-processor",
        "namespace": "fulfillment",
        "image": "registry.example.com/order-processor:v1.8.2",
        "replicas": 3,
        "ready_replicas": 3,
        "memory_limit": "2Gi",
        "cpu_limit": "1500m",
        "strategy": "RollingUpdate",
        "rollout_history": [
            {
                "revision": 9,
                "image": "registry.example.com/order-processor:v1.8.2",
                "age": "12d",
                "change_cause": "Batch size tuning",
            },
        ],
    },
}

# ---------------------------------------------------------------------------
# Pods
# ---------------------------------------------------------------------------

PODS: dict[str, dict[str, Any]] = {
    "my-app-pod-1": {
        "deployment": "my-app",
        "namespace": "production",
        "phase": "Running",
        "ready": False,
        "restarts": 7,
        "last_state": "Terminated (OOMKilled, exit code 137)",
    },
    "my-app-pod-2": {
        "deployment": "my-app",
        "namespace": "production",
        "phase": "Running",
        "ready": True,
        "restarts": 2,
        "last_state": "Terminated (OOMKilled, exit code 137)",
    },
    "my-app-pod-3": {
        "deployment": "my-app",
        "namespace": "production",
        "phase": "Running",
        "ready": True,
        "restarts": 0,
        "last_state": "",
    },
    "payment-service-pod-7f8d9": {
        "deployment": "payment-service",
        "namespace": "payments",
        "phase": "Running",
        "ready": True,
        "restarts": 0,
        "last_state": "",
    },
    "order-processor-pod-3a4b5": {
        "deployment": "order-processor",
        "namespace": "fulfillment",
        "phase": "Running",
        "ready": True,
        "restarts": 1,
        "last_state": "Terminated (Error, exit code 1)",
    },
}

# ---------------------------------------------------------------------------
# Log tails
# ---------------------------------------------------------------------------

POD_LOGS: dict[str, list[str]] = {
    "my-app-pod-1": [
        "INFO  SessionCache - cached session for user 'test' (entries=48211)",
        "WARN  GCMonitor - GC pause exceeded 500ms: type=Full, duration=1874ms",
        "ERROR Main - java.lang.OutOfMemoryError: Java heap space",
        "ERROR Main -   at com.example.app.SessionCache.put(SessionCache.java:42)",
    ],
    "my-app-pod-2": [
        "INFO  SessionCache - cached session for user 'alice' (entries=31877)",
        "WARN  GCMonitor - GC pause exceeded 500ms: type=Full, duration=1102ms",
    ],
    "my-app-pod-3": [
        "INFO  Main - Started application in 6.2 seconds",
    ],
    "payment-service-pod-7f8d9": [
        "INFO  GatewayClient - settlement batch completed in 812ms",
    ],
    "order-processor-pod-3a4b5": [
        "WARN  BatchWorker - batch 88213 retried once",
    ],
}


def pods_in_namespace(namespace: str) -> dict[str, dict[str, Any]]:
    """Return the pods scheduled in *namespace*."""
    return {name: pod for name, pod in PODS.items() if pod["namespace"] == namespace}
