"""Read-only cluster introspection tools for the First Responder.

The :class:`ClusterIntrospection` capability is injected into the pipeline;
:func:`build_introspection_tools` exposes it to the generation service as
three tool descriptors. :class:`MockClusterIntrospection` answers from the
mock cluster snapshot in :mod:`sre_team.mock_data.cluster`.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import structlog

from sre_team.generation.base import ToolDescriptor
from sre_team.mock_data.cluster import DEPLOYMENTS, POD_LOGS, PODS, pods_in_namespace

logger = structlog.get_logger(__name__)


@runtime_checkable
class ClusterIntrospection(Protocol):
    """Side-effect-free lookups against the runtime platform."""

    async def get_pod_status(self, namespace: str) -> str: ...

    async def get_pod_logs(self, pod_name: str) -> str: ...

    async def describe_deployment(self, deployment_name: str) -> str: ...


class MockClusterIntrospection:
    """Introspection over the bundled mock cluster snapshot."""

    async def get_pod_status(self, namespace: str) -> str:
        logger.info("get_pod_status", namespace=namespace)
        pods = pods_in_namespace(namespace)
        if not pods:
            return f"No pods found in namespace '{namespace}'."

        lines = [f"Pods in namespace '{namespace}':"]
        for name, pod in sorted(pods.items()):
            line = (
                f"- {name}: phase={pod['phase']} ready={str(pod['ready']).lower()} "
                f"restarts={pod['restarts']}"
            )
            if pod["last_state"]:
                line += f" last_state={pod['last_state']}"
            lines.append(line)
        return "\n".join(lines)

    async def get_pod_logs(self, pod_name: str) -> str:
        logger.info("get_pod_logs", pod=pod_name)
        if pod_name not in PODS:
            return f"Pod '{pod_name}' not found."
        tail = POD_LOGS.get(pod_name, [])
        if not tail:
            return f"No recent log lines for pod '{pod_name}'."
        return f"Last {len(tail)} log lines for pod '{pod_name}':\n" + "\n".join(tail)

    async def describe_deployment(self, deployment_name: str) -> str:
        logger.info("describe_deployment", deployment=deployment_name)
        deployment = DEPLOYMENTS.get(deployment_name)
        if deployment is None:
            return f"Deployment '{deployment_name}' not found."

        lines = [
            f"Deployment {deployment['name']} (namespace {deployment['namespace']})",
            f"Image: {deployment['image']}",
            f"Replicas: {deployment['ready_replicas']}/{deployment['replicas']} ready",
            f"Limits: memory={deployment['memory_limit']} cpu={deployment['cpu_limit']}",
            "Rollout history:",
        ]
        for entry in deployment["rollout_history"]:
            lines.append(
                f"- revision {entry['revision']} ({entry['age']} ago): "
                f"{entry['image']} -- {entry['change_cause']}"
            )
        return "\n".join(lines)


def build_introspection_tools(cluster: ClusterIntrospection) -> list[ToolDescriptor]:
    """Expose *cluster* as tool descriptors for the generation service."""
    return [
        ToolDescriptor(
            name="getPodStatus",
            description="Retrieves the status of the application pods in a namespace.",
            input_schema={
                "type": "object",
                "properties": {
                    "namespace": {
                        "type": "string",
                        "description": "The Kubernetes namespace of the application.",
                    }
                },
                "required": ["namespace"],
            },
            handler=cluster.get_pod_status,
        ),
        ToolDescriptor(
            name="getPodLogs",
            description="Retrieves recent logs from a specific pod.",
            input_schema={
                "type": "object",
                "properties": {
                    "pod_name": {
                        "type": "string",
                        "description": "The name of the pod to retrieve logs from.",
                    }
                },
                "required": ["pod_name"],
            },
            handler=cluster.get_pod_logs,
        ),
        ToolDescriptor(
            name="describeDeployment",
            description="Retrieves the deployment details and rollout history.",
            input_schema={
                "type": "object",
                "properties": {
                    "deployment_name": {
                        "type": "string",
                        "description": "The name of the deployment to describe.",
                    }
                },
                "required": ["deployment_name"],
            },
            handler=cluster.describe_deployment,
        ),
    ]
