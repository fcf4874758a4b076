"""Generation backend tests (Gemini REST and offline heuristics)."""

from __future__ import annotations

import json

import httpx
import pytest

from sre_team.agents.commander import CommanderOutput
from sre_team.agents.first_responder import FirstResponderOutput
from sre_team.agents.sentinel import SentinelOutput
from sre_team.config import Settings
from sre_team.errors import GenerationError
from sre_team.generation import (
    GeminiGenerationService,
    GenerationRequest,
    HeuristicGenerationService,
    build_generation_service,
)
from sre_team.generation.gemini import to_gemini_schema
from sre_team.mock_data.scenarios import OOM_LOGS, OOM_METRICS
from sre_team.models import AgentKind
from sre_team.tools.introspection import MockClusterIntrospection, build_introspection_tools


def _candidate(*parts: dict) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": list(parts)}}]}


def _gemini(handler) -> tuple[GeminiGenerationService, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request, len(seen))

    client = httpx.AsyncClient(transport=httpx.MockTransport(record))
    service = GeminiGenerationService(api_key="test-key", client=client)
    return service, seen


def _sentinel_request(**overrides) -> GenerationRequest:
    fields = {
        "stage": AgentKind.SENTINEL,
        "model": "googleai/gemini-1.5-flash-latest",
        "prompt": "Analyze these logs",
        "input": {"logs": "ERROR", "metrics": "cpu: 1"},
        "output_schema": SentinelOutput.model_json_schema(),
    }
    fields.update(overrides)
    return GenerationRequest(**fields)


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_gemini_structured_output():
    """Without tools the response is constrained to the output schema."""
    record = {"is_anomaly": True, "incident_summary": "OOM"}

    def handler(request, count):
        return httpx.Response(200, json=_candidate({"text": json.dumps(record)}))

    service, seen = _gemini(handler)
    result = await service.generate(_sentinel_request())

    assert result == record
    (request,) = seen
    assert request.url.path.endswith("/models/gemini-1.5-flash-latest:generateContent")
    assert request.headers["x-goog-api-key"] == "test-key"
    body = json.loads(request.content)
    assert body["contents"][0]["parts"][0]["text"] == "Analyze these logs"
    config = body["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    assert config["responseSchema"]["properties"]["is_anomaly"]["type"] == "BOOLEAN"
    assert "tools" not in body


@pytest.mark.asyncio
async def test_gemini_tool_loop():
    """Function calls are executed and fed back before the final answer."""
    answer = {
        "diagnosis_report": "OOM after revision 14",
        "affected_deployment": "my-app",
        "affected_namespace": "production",
    }

    def handler(request, count):
        if count == 1:
            return httpx.Response(
                200,
                json=_candidate(
                    {"functionCall": {"name": "describeDeployment", "args": {"deployment_name": "my-app"}}}
                ),
            )
        return httpx.Response(
            200, json=_candidate({"text": "```json\n" + json.dumps(answer) + "\n```"})
        )

    service, seen = _gemini(handler)
    request = GenerationRequest(
        stage=AgentKind.FIRST_RESPONDER,
        model="gemini-1.5-pro-latest",
        prompt="Diagnose",
        output_schema=FirstResponderOutput.model_json_schema(),
        tools=build_introspection_tools(MockClusterIntrospection()),
    )
    result = await service.generate(request)

    assert result == answer
    assert len(seen) == 2

    first = json.loads(seen[0].content)
    names = [f["name"] for f in first["tools"][0]["functionDeclarations"]]
    assert names == ["getPodStatus", "getPodLogs", "describeDeployment"]
    assert "generationConfig" not in first
    assert "JSON object" in first["contents"][0]["parts"][0]["text"]

    second = json.loads(seen[1].content)
    reply = second["contents"][-1]["parts"][0]["functionResponse"]
    assert reply["name"] == "describeDeployment"
    assert reply["response"]["content"].startswith("Deployment my-app (namespace production)")


@pytest.mark.asyncio
async def test_gemini_stops_after_max_tool_rounds():
    def handler(request, count):
        return httpx.Response(
            200,
            json=_candidate({"functionCall": {"name": "getPodStatus", "args": {"namespace": "production"}}}),
        )

    service, seen = _gemini(handler)
    request = _sentinel_request(tools=build_introspection_tools(MockClusterIntrospection()))
    with pytest.raises(GenerationError, match="kept calling tools"):
        await service.generate(request)
    assert len(seen) == 6


@pytest.mark.asyncio
async def test_gemini_unknown_tool():
    def handler(request, count):
        return httpx.Response(200, json=_candidate({"functionCall": {"name": "kubectlExec", "args": {}}}))

    service, _ = _gemini(handler)
    request = _sentinel_request(tools=build_introspection_tools(MockClusterIntrospection()))
    with pytest.raises(GenerationError, match="unknown tool"):
        await service.generate(request)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("response", "fragment"),
    [
        (httpx.Response(500, json={"error": {"message": "internal"}}), "HTTP 500"),
        (httpx.Response(200, text="<html>oops</html>"), "non-JSON response body"),
        (httpx.Response(200, json=_candidate({"text": "not json"})), "non-JSON output"),
        (httpx.Response(200, json=_candidate({"text": "[1, 2]"})), "not an object"),
        (httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}}), "SAFETY"),
    ],
)
async def test_gemini_failures_raise_generation_error(response, fragment):
    service, _ = _gemini(lambda request, count: response)
    with pytest.raises(GenerationError) as exc_info:
        await service.generate(_sentinel_request())
    assert fragment in exc_info.value.message


def test_gemini_requires_api_key():
    with pytest.raises(ValueError):
        GeminiGenerationService(api_key="")


def test_to_gemini_schema_inlines_and_folds():
    schema = to_gemini_schema(FirstResponderOutput.model_json_schema())
    assert schema["type"] == "OBJECT"
    assert "title" not in schema
    assert schema["properties"]["diagnosis_report"]["type"] == "STRING"
    deployment = schema["properties"]["affected_deployment"]
    assert deployment == {
        "type": "STRING",
        "nullable": True,
        "description": "The name of the affected deployment.",
    }
    assert schema["required"] == ["diagnosis_report"]

    plan = to_gemini_schema(CommanderOutput.model_json_schema())
    assert plan["properties"]["steps"] == {"type": "ARRAY", "items": {"type": "STRING"}}


def test_build_generation_service(settings):
    assert isinstance(build_generation_service(settings), HeuristicGenerationService)

    gemini_settings = Settings(generation_backend="gemini", google_api_key="k")
    assert isinstance(build_generation_service(gemini_settings), GeminiGenerationService)


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_heuristic_sentinel_detects_oom():
    service = HeuristicGenerationService()
    result = await service.generate(
        _sentinel_request(input={"logs": OOM_LOGS, "metrics": OOM_METRICS})
    )

    assert result["is_anomaly"] is True
    summary = result["incident_summary"]
    assert "6 error-level log lines" in summary
    assert "OutOfMemoryError: Java heap space." in summary
    assert "memory_usage=95%" in summary
    assert "Affected pods: my-app-pod-1." in summary


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("metrics", "anomaly"),
    [
        ("cpu_usage: 0.95", True),
        ("cpu_usage: 0.5", False),
        ("latency_p99: 1.2s", True),
        ("error_rate: 7%", True),
        ("memory_usage: 40%", False),
    ],
)
async def test_heuristic_sentinel_metric_thresholds(metrics, anomaly):
    service = HeuristicGenerationService()
    logs = "[2024-07-23 09:00:00] INFO: all good."
    result = await service.generate(_sentinel_request(input={"logs": logs, "metrics": metrics}))
    assert result["is_anomaly"] is anomaly


@pytest.mark.asyncio
async def test_heuristic_first_responder_uses_tools():
    service = HeuristicGenerationService()
    request = GenerationRequest(
        stage=AgentKind.FIRST_RESPONDER,
        model="gemini-1.5-pro-latest",
        prompt="Diagnose",
        input={"incident_summary": "Restarts. Affected pods: my-app-pod-1.", "sample_code": None},
        tools=build_introspection_tools(MockClusterIntrospection()),
    )
    result = await service.generate(request)

    assert result["affected_deployment"] == "my-app"
    assert result["affected_namespace"] == "production"
    assert "Rollout history:" in result["diagnosis_report"]
    assert "Last 4 log lines for pod 'my-app-pod-1'" in result["diagnosis_report"]


@pytest.mark.asyncio
async def test_heuristic_first_responder_unknown_workload():
    service = HeuristicGenerationService()
    request = GenerationRequest(
        stage=AgentKind.FIRST_RESPONDER,
        model="gemini-1.5-pro-latest",
        prompt="Diagnose",
        input={"incident_summary": "Errors on ghost-pod-1.", "sample_code": None},
        tools=build_introspection_tools(MockClusterIntrospection()),
    )
    result = await service.generate(request)

    assert result["affected_deployment"] is None
    assert result["affected_namespace"] is None
    assert "Conclusion:" in result["diagnosis_report"]


@pytest.mark.asyncio
async def test_heuristic_engineer_python_marker():
    service = HeuristicGenerationService()
    request = GenerationRequest(
        stage=AgentKind.ENGINEER,
        model="gemini-1.5-flash-latest",
        prompt="Fix",
        input={
            "remediation_plan": "Solution: cap the cache\nSteps:\n1. patch",
            "code_to_fix": "import functools\n\ncache = dict()\n",
        },
    )
    result = await service.generate(request)
    assert result["fix_result"].startswith("# Fix: cap the cache\nimport functools")
