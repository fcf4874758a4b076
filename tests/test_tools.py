"""Cluster introspection, playbook and event stream tests."""

from __future__ import annotations

import asyncio

import pytest

from sre_team.models import PipelineEvent, RunStatus
from sre_team.streaming import EVENT_RUN_FINISHED, EVENT_STAGE_RUNNING, PipelineEventStream
from sre_team.tools.introspection import (
    ClusterIntrospection,
    MockClusterIntrospection,
    build_introspection_tools,
)
from sre_team.tools.playbooks import DEFAULT_PLAYBOOK, PLAYBOOKS, select_playbook


# ---------------------------------------------------------------------------
# Cluster introspection
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_pod_status_lists_namespace():
    cluster = MockClusterIntrospection()
    status = await cluster.get_pod_status("production")

    assert status.startswith("Pods in namespace 'production':")
    assert "my-app-pod-1: phase=Running ready=false restarts=7" in status
    assert "OOMKilled" in status
    assert "payment-service" not in status


@pytest.mark.asyncio
async def test_pod_status_unknown_namespace():
    status = await MockClusterIntrospection().get_pod_status("staging")
    assert status == "No pods found in namespace 'staging'."


@pytest.mark.asyncio
async def test_pod_logs():
    cluster = MockClusterIntrospection()
    logs = await cluster.get_pod_logs("my-app-pod-1")
    assert "java.lang.OutOfMemoryError" in logs
    assert await cluster.get_pod_logs("nope") == "Pod 'nope' not found."


@pytest.mark.asyncio
async def test_describe_deployment():
    cluster = MockClusterIntrospection()
    description = await cluster.describe_deployment("my-app")

    assert description.splitlines()[0] == "Deployment my-app (namespace production)"
    assert "revision 14" in description
    assert await cluster.describe_deployment("ghost") == "Deployment 'ghost' not found."


@pytest.mark.asyncio
async def test_tool_descriptors_call_cluster():
    cluster = MockClusterIntrospection()
    assert isinstance(cluster, ClusterIntrospection)

    tools = {tool.name: tool for tool in build_introspection_tools(cluster)}
    assert set(tools) == {"getPodStatus", "getPodLogs", "describeDeployment"}
    assert tools["getPodLogs"].input_schema["required"] == ["pod_name"]

    result = await tools["getPodStatus"].call({"namespace": "payments"})
    assert "payment-service-pod-7f8d9" in result


# ---------------------------------------------------------------------------
# Playbooks
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("java.lang.OutOfMemoryError: Java heap space, pod OOMKilled", "memory_leak"),
        ("CPU throttling on every replica", "high_cpu"),
        ("connection refused, upstream timeout", "connection_timeout"),
        ("NullPointerException stack trace since the last deploy", "regression_after_deploy"),
        ("nothing recognisable here", DEFAULT_PLAYBOOK),
    ],
)
def test_select_playbook(text, expected):
    assert select_playbook(text) == expected


def test_playbook_steps_render():
    for playbook in PLAYBOOKS.values():
        steps = [s.format(deployment="my-app", namespace="production") for s in playbook["steps"]]
        assert steps
        assert all(step.strip() for step in steps)
        playbook["rollback_plan"].format(deployment="my-app")


# ---------------------------------------------------------------------------
# Event stream
# ---------------------------------------------------------------------------


def _event(sequence: int, event_type: str = EVENT_STAGE_RUNNING, run_id: str = "r1") -> PipelineEvent:
    return PipelineEvent(
        event_type=event_type,
        run_id=run_id,
        sequence=sequence,
        run_status=RunStatus.RUNNING,
    )


@pytest.mark.asyncio
async def test_stream_replays_history_for_late_subscriber():
    stream = PipelineEventStream()
    await stream.emit(_event(1))
    await stream.emit(_event(2))
    await stream.emit(_event(3, EVENT_RUN_FINISHED))

    received = [e.sequence async for e in stream.subscribe("r1")]
    assert received == [1, 2, 3]


@pytest.mark.asyncio
async def test_stream_ignores_duplicate_sequences():
    stream = PipelineEventStream()
    await stream.emit(_event(1))
    await stream.emit(_event(1))
    await stream.emit(_event(2))

    assert [e.sequence for e in stream.get_history("r1")] == [1, 2]


@pytest.mark.asyncio
async def test_stream_delivers_live_events():
    stream = PipelineEventStream()
    await stream.emit(_event(1))

    async def consume() -> list[int]:
        return [e.sequence async for e in stream.subscribe("r1")]

    task = asyncio.create_task(consume())
    await asyncio.sleep(0)
    await stream.emit(_event(2))
    await stream.emit(_event(3, EVENT_RUN_FINISHED))

    assert await asyncio.wait_for(task, timeout=1) == [1, 2, 3]


@pytest.mark.asyncio
async def test_stream_close_ends_subscription():
    stream = PipelineEventStream()

    async def consume() -> list[int]:
        return [e.sequence async for e in stream.subscribe("r2")]

    task = asyncio.create_task(consume())
    await asyncio.sleep(0)
    await stream.emit(_event(1, run_id="r2"))
    stream.close("r2")

    assert await asyncio.wait_for(task, timeout=1) == [1]


@pytest.mark.asyncio
async def test_stream_runs_are_isolated():
    stream = PipelineEventStream()
    await stream.emit(_event(1, run_id="a"))
    await stream.emit(_event(1, run_id="b"))
    stream.clear("a")

    assert stream.get_history("a") == []
    assert len(stream.get_history("b")) == 1
