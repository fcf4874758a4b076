"""Test fixtures for the Autonomous SRE Team."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

import pytest

from sre_team.config import AgentRegistry, Settings
from sre_team.generation.base import GenerationRequest
from sre_team.mock_data.scenarios import get_scenario
from sre_team.models import AgentKind, IncidentContext


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set up test environment variables."""
    monkeypatch.setenv("SRE_TEAM_ENVIRONMENT", "testing")
    monkeypatch.setenv("SRE_TEAM_LOG_LEVEL", "DEBUG")
    for key in ("SRE_TEAM_GOOGLE_API_KEY", "SRE_TEAM_GENERATION_BACKEND"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        environment="testing",
        log_level="DEBUG",
        generation_backend="heuristic",
        stage_timeout_seconds=5.0,
    )


@pytest.fixture()
def registry(settings: Settings) -> AgentRegistry:
    return AgentRegistry.from_settings(settings)


@pytest.fixture()
def oom_context() -> IncidentContext:
    """Incident context seeded from the bundled OOM scenario."""
    scenario = get_scenario("oom-memory-leak")
    assert scenario is not None
    return IncidentContext(
        logs=scenario.logs,
        metrics=scenario.metrics,
        sample_code=scenario.sample_code,
    )


@pytest.fixture()
def app(settings):
    """Create a test FastAPI application."""
    from sre_team.api import create_app

    return create_app(settings)


@pytest.fixture()
def client(app):
    """Create an async test client."""
    from httpx import ASGITransport, AsyncClient

    transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://test")


# ---------------------------------------------------------------------------
# Scripted generation service
# ---------------------------------------------------------------------------

Responder = Callable[[GenerationRequest], Awaitable[dict[str, Any]]]

SCRIPTED_OUTPUTS: dict[AgentKind, dict[str, Any]] = {
    AgentKind.SENTINEL: {
        "is_anomaly": True,
        "incident_summary": "OOM errors and restarts on my-app-pod-1",
    },
    AgentKind.FIRST_RESPONDER: {
        "diagnosis_report": "Memory leak in SessionCache after revision 14",
        "affected_deployment": "my-app",
        "affected_namespace": "production",
    },
    AgentKind.COMMANDER: {
        "incident_summary": "my-app pods are OOM-killed",
        "root_cause": "Unbounded session cache",
        "solution": "Roll back and bound the cache",
        "steps": ["Roll back my-app", "Bound the cache"],
        "rollback_plan": "Re-apply revision 14",
    },
    AgentKind.ENGINEER: {"fix_result": "// bounded cache\nclass SessionCache {}"},
    AgentKind.COMMUNICATOR: {"final_report": "Incident resolved."},
}


class ScriptedGeneration:
    """Generation service returning canned records and recording requests.

    A stage listed in ``overrides`` gets that record instead; a callable
    override is awaited with the request, and an exception instance is
    raised.
    """

    def __init__(self, overrides: dict[AgentKind, Any] | None = None) -> None:
        self.overrides = overrides or {}
        self.requests: list[GenerationRequest] = []

    def calls_for(self, kind: AgentKind) -> list[GenerationRequest]:
        return [r for r in self.requests if r.stage == kind]

    async def generate(self, request: GenerationRequest) -> dict[str, Any]:
        self.requests.append(request)
        override = self.overrides.get(request.stage)
        if isinstance(override, Exception):
            raise override
        if callable(override):
            return await override(request)
        if override is not None:
            return override
        return dict(SCRIPTED_OUTPUTS[request.stage])


@pytest.fixture()
def scripted() -> ScriptedGeneration:
    return ScriptedGeneration()
