"""FastAPI application for the autonomous SRE team.

Exposes REST endpoints for:
- Starting pipeline runs from raw logs/metrics or a bundled scenario
- Monitoring run state and streaming real-time progress (SSE)
- Cooperative cancellation of a running pipeline
- Viewing and switching the model used by each agent
- Health checks
"""

from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from sre_team.config import AgentRegistry, Settings
from sre_team.generation import GenerationService, build_generation_service
from sre_team.mock_data.scenarios import SCENARIOS, get_scenario
from sre_team.models import (
    AgentKind,
    ErrorResponse,
    HealthResponse,
    IncidentContext,
    PipelineEvent,
    PipelineRun,
    RunError,
    RunStatus,
)
from sre_team.streaming import EVENT_RUN_FINISHED, PipelineEventStream
from sre_team.tools.introspection import ClusterIntrospection, MockClusterIntrospection
from sre_team.workflow.pipeline import build_default_pipeline

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------


class StartRunRequest(BaseModel):
    """Request to start a pipeline run."""

    scenario_id: str | None = Field(
        default=None,
        description="ID of a bundled scenario. If not provided, logs and metrics are required.",
    )
    logs: str = Field(default="", description="Raw application logs")
    metrics: str = Field(default="", description="Raw metrics snapshot")
    sample_code: str | None = Field(default=None, description="Optional suspect code")


class UpdateAgentRequest(BaseModel):
    """Request to switch the model used by an agent."""

    model: str = Field(description="Model identifier, e.g. gemini-1.5-pro-latest")


# ---------------------------------------------------------------------------
# Run Manager (in-memory)
# ---------------------------------------------------------------------------


class RunManager:
    """In-memory store of pipeline runs and their background tasks."""

    def __init__(self) -> None:
        self._runs: dict[str, PipelineRun] = {}
        self._tasks: dict[str, asyncio.Task[Any]] = {}
        self._cancel_events: dict[str, asyncio.Event] = {}

    def create_run(self, context: IncidentContext) -> PipelineRun:
        """Register a new run in the running state."""
        run = PipelineRun(id=str(uuid.uuid4()), status=RunStatus.RUNNING, context=context)
        self._runs[run.id] = run
        self._cancel_events[run.id] = asyncio.Event()
        return run

    def get_run(self, run_id: str) -> PipelineRun | None:
        return self._runs.get(run_id)

    def cancel_event(self, run_id: str) -> asyncio.Event:
        return self._cancel_events[run_id]

    def track_task(self, run_id: str, task: asyncio.Task[Any]) -> None:
        self._tasks[run_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(run_id, None))

    def record_event(self, event: PipelineEvent) -> None:
        """Mirror a progress event into the stored run state."""
        run = self._runs.get(event.run_id)
        if run is None:
            return
        run.status = event.run_status
        if event.stage is not None:
            stages = [s for s in run.stages if s.agent != event.stage.agent]
            run.stages = [*stages, event.stage]

    def finish_run(self, result: PipelineRun) -> None:
        self._runs[result.id] = result
        self._cancel_events.pop(result.id, None)

    def list_runs(self, status: RunStatus | None = None) -> list[PipelineRun]:
        """Return all runs, newest first, optionally filtered by status."""
        runs = list(self._runs.values())
        if status is not None:
            runs = [r for r in runs if r.status == status]
        return sorted(runs, key=lambda r: r.created_at, reverse=True)


class _ManagedSink:
    """Progress sink feeding both the SSE stream and the run store."""

    def __init__(self, stream: PipelineEventStream, runs: RunManager) -> None:
        self._stream = stream
        self._runs = runs

    async def emit(self, event: PipelineEvent) -> None:
        self._runs.record_event(event)
        await self._stream.emit(event)


# ---------------------------------------------------------------------------
# Application State container
# ---------------------------------------------------------------------------


class AppState:
    """Shared application state accessible from route handlers."""

    def __init__(
        self,
        settings: Settings,
        generation: GenerationService,
        cluster: ClusterIntrospection,
    ) -> None:
        self.settings = settings
        self.generation = generation
        self.cluster = cluster
        self.registry = AgentRegistry.from_settings(settings)
        self.run_manager = RunManager()
        self.event_stream = PipelineEventStream()
        self.sink = _ManagedSink(self.event_stream, self.run_manager)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    generation: GenerationService | None = None,
    cluster: ClusterIntrospection | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings()

    app = FastAPI(
        title="Autonomous SRE Team",
        description=(
            "Five sequential AI agents (Sentinel, First Responder, Commander, "
            "Engineer, Communicator) that detect, diagnose, plan, fix and "
            "report on incidents."
        ),
        version=settings.service_version,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    state = AppState(
        settings,
        generation=generation or build_generation_service(settings),
        cluster=cluster or MockClusterIntrospection(),
    )
    app.state.app_state = state
    app.state.settings = settings

    def _get_run_or_404(run_id: str) -> PipelineRun:
        run = state.run_manager.get_run(run_id)
        if run is None:
            raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
        return run

    async def _fail_run(run_id: str, message: str) -> None:
        """Mark a crashed run failed and end its stream with a terminal event."""
        stored = state.run_manager.get_run(run_id)
        agent = AgentKind.SENTINEL
        if stored is not None:
            if stored.stages:
                agent = stored.stages[-1].agent
            stored.status = RunStatus.FAILED
            stored.error = RunError(agent=agent, message=message)
            stored.finished_at = datetime.now(tz=timezone.utc)
            state.run_manager.finish_run(stored)

        history = state.event_stream.get_history(run_id)
        if history and history[-1].event_type == EVENT_RUN_FINISHED:
            return
        await state.event_stream.emit(
            PipelineEvent(
                event_type=EVENT_RUN_FINISHED,
                run_id=run_id,
                sequence=history[-1].sequence + 1 if history else 1,
                run_status=RunStatus.FAILED,
                message=f"{agent.display_name}: {message}",
            )
        )

    def _parse_kind(kind: str) -> AgentKind:
        try:
            return AgentKind(kind)
        except ValueError:
            raise HTTPException(
                status_code=404,
                detail=f"Unknown agent '{kind}'. Valid: {[k.value for k in AgentKind]}",
            )

    # -------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        """Service health check."""
        return HealthResponse(
            status="healthy",
            service=settings.service_name,
            version=settings.service_version,
        )

    # -------------------------------------------------------------------
    # Run endpoints
    # -------------------------------------------------------------------

    @app.post("/api/v1/runs", tags=["runs"])
    async def start_run(req: StartRunRequest) -> dict[str, Any]:
        """Start a pipeline run in the background.

        Use the ``/stream`` endpoint to follow real-time progress.
        """
        if req.scenario_id:
            scenario = get_scenario(req.scenario_id)
            if scenario is None:
                raise HTTPException(
                    status_code=404,
                    detail=(
                        f"Scenario '{req.scenario_id}' not found. "
                        f"Available: {[s.id for s in SCENARIOS]}"
                    ),
                )
            context = IncidentContext(
                logs=scenario.logs,
                metrics=scenario.metrics,
                sample_code=req.sample_code or scenario.sample_code,
            )
        else:
            if not req.logs.strip() or not req.metrics.strip():
                raise HTTPException(
                    status_code=400,
                    detail="Either scenario_id or both logs and metrics are required.",
                )
            context = IncidentContext(
                logs=req.logs,
                metrics=req.metrics,
                sample_code=req.sample_code or None,
            )

        run = state.run_manager.create_run(context)
        # Snapshot of the agent configuration at start time
        pipeline = build_default_pipeline(
            settings,
            state.registry,
            state.generation,
            state.cluster,
            sink=state.sink,
        )
        cancel = state.run_manager.cancel_event(run.id)

        async def _run_pipeline() -> None:
            try:
                result = await pipeline.run(context, run_id=run.id, cancel=cancel)
                state.run_manager.finish_run(result)
            except Exception as exc:
                logger.error("pipeline_task_error", run_id=run.id, error=str(exc))
                await _fail_run(run.id, str(exc) or exc.__class__.__name__)

        state.run_manager.track_task(run.id, asyncio.create_task(_run_pipeline()))

        return {
            "run_id": run.id,
            "status": run.status.value,
            "message": "Autonomous SRE pipeline started",
            "stream_url": f"/api/v1/runs/{run.id}/stream",
        }

    @app.get("/api/v1/runs/{run_id}", tags=["runs"])
    async def get_run(run_id: str) -> dict[str, Any]:
        """Get the current state of a pipeline run."""
        return _get_run_or_404(run_id).model_dump(mode="json")

    @app.get("/api/v1/runs/{run_id}/stream", tags=["runs"])
    async def stream_run(run_id: str) -> EventSourceResponse:
        """SSE stream of pipeline progress events."""
        _get_run_or_404(run_id)

        async def event_generator():  # type: ignore[no-untyped-def]
            async for event in state.event_stream.subscribe(run_id):
                yield {
                    "event": event.event_type,
                    "id": str(event.sequence),
                    "data": json.dumps(event.model_dump(mode="json")),
                }

        return EventSourceResponse(event_generator())

    @app.post("/api/v1/runs/{run_id}/cancel", tags=["runs"])
    async def cancel_run(run_id: str) -> dict[str, Any]:
        """Request cooperative cancellation of a running pipeline.

        The current stage finishes; no further stage starts.
        """
        run = _get_run_or_404(run_id)
        if run.status.is_terminal:
            raise HTTPException(
                status_code=400,
                detail=f"Cannot cancel run in state '{run.status.value}'",
            )
        state.run_manager.cancel_event(run_id).set()
        logger.info("run_cancel_requested", run_id=run_id)
        return {
            "run_id": run_id,
            "status": "cancelling",
            "message": "Cancellation requested; the run stops after the current stage.",
        }

    @app.get("/api/v1/runs", tags=["runs"])
    async def list_runs(
        status_filter: RunStatus | None = Query(default=None, alias="status"),
    ) -> dict[str, Any]:
        """List all runs with an optional status filter."""
        runs = state.run_manager.list_runs(status=status_filter)
        return {
            "runs": [r.model_dump(mode="json") for r in runs],
            "total": len(runs),
            "filters": {"status": status_filter.value if status_filter else None},
        }

    # -------------------------------------------------------------------
    # Agent configuration endpoints
    # -------------------------------------------------------------------

    @app.get("/api/v1/agents", tags=["agents"])
    async def list_agents() -> dict[str, Any]:
        """List the agents and the model each one uses."""
        return {
            "agents": [
                {
                    "kind": config.kind.value,
                    "name": config.kind.display_name,
                    "model": config.model,
                }
                for config in state.registry.list()
            ],
            "backend": settings.generation_backend,
        }

    @app.put("/api/v1/agents/{kind}", tags=["agents"])
    async def update_agent(kind: str, req: UpdateAgentRequest) -> dict[str, Any]:
        """Switch an agent's model for runs started from now on."""
        agent_kind = _parse_kind(kind)
        try:
            config = state.registry.update_model(agent_kind, req.model)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        logger.info("agent_model_updated", agent=agent_kind.value, model=config.model)
        return {
            "kind": config.kind.value,
            "name": config.kind.display_name,
            "model": config.model,
        }

    # -------------------------------------------------------------------
    # Scenarios endpoint (for discovery)
    # -------------------------------------------------------------------

    @app.get("/api/v1/scenarios", tags=["scenarios"])
    async def list_scenarios() -> dict[str, Any]:
        """List the bundled sample scenarios."""
        return {
            "scenarios": [s.model_dump(mode="json") for s in SCENARIOS],
            "total": len(SCENARIOS),
        }

    # -------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unhandled exceptions."""
        logger.error("unhandled_exception", error=str(exc), path=request.url.path)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                detail=str(exc),
                status_code=500,
            ).model_dump(),
        )

    return app
