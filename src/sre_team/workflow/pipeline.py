"""Autonomous SRE Pipeline.

Runs the five agents strictly in sequence, threading the incident context
from each stage into the next:

1. **Sentinel** -- detect an anomaly (no anomaly ends the run here)
2. **First Responder** -- diagnose the root cause
3. **Commander** -- plan the remediation
4. **Engineer** -- prepare the fix
5. **Communicator** -- write the incident report

Every stage transition is pushed to a progress sink as an ordered event.
The first failing stage aborts the run; a cancel request is honoured
before the next stage is dispatched.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Sequence

import structlog

from sre_team.agents import AGENT_CLASSES
from sre_team.agents.base import AgentStage, StageOutcome
from sre_team.config import AgentRegistry, Settings
from sre_team.errors import PipelineAbort, SreTeamError
from sre_team.generation.base import GenerationService
from sre_team.models import (
    AgentKind,
    IncidentContext,
    PipelineEvent,
    PipelineRun,
    RunError,
    RunStatus,
    StageResult,
    StageStatus,
)
from sre_team.streaming import (
    EVENT_RUN_FINISHED,
    EVENT_RUN_STARTED,
    EVENT_STAGE_COMPLETED,
    EVENT_STAGE_FAILED,
    EVENT_STAGE_RUNNING,
    ProgressSink,
)
from sre_team.tools.introspection import ClusterIntrospection, build_introspection_tools

logger = structlog.get_logger(__name__)


class _RunReporter:
    """Per-run event numbering and delivery."""

    def __init__(self, run: PipelineRun, sink: ProgressSink | None) -> None:
        self.run = run
        self.sink = sink
        self.sequence = 0

    async def emit(
        self,
        event_type: str,
        message: str,
        stage: StageResult | None = None,
    ) -> None:
        self.sequence += 1
        if self.sink is None:
            return
        event = PipelineEvent(
            event_type=event_type,
            run_id=self.run.id,
            sequence=self.sequence,
            run_status=self.run.status,
            stage=stage.model_copy(deep=True) if stage is not None else None,
            message=message,
        )
        # A failing sink must not change the outcome of the run
        try:
            await self.sink.emit(event)
        except Exception as exc:
            logger.error(
                "progress_sink_error",
                event_type=event_type,
                sequence=self.sequence,
                error=str(exc),
            )


class PipelineOrchestrator:
    """Sequences agent stages over one incident context per run.

    The orchestrator keeps no per-run state, so one instance can serve
    many concurrent runs.
    """

    def __init__(
        self,
        stages: Sequence[AgentStage],
        sink: ProgressSink | None = None,
    ) -> None:
        if not stages:
            raise ValueError("A pipeline needs at least one stage")
        self.stages = list(stages)
        self.sink = sink

    async def run(
        self,
        context: IncidentContext,
        run_id: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> PipelineRun:
        """Execute one pipeline run and return its terminal state.

        Args:
            context: Incident context holding the observability inputs.
            run_id: Identifier for the run (generated when omitted).
            cancel: Set to request cooperative cancellation.

        Returns:
            The finished :class:`PipelineRun`; stage failures are reported
            through its status and ``error`` rather than raised.
        """
        run = PipelineRun(
            id=run_id or uuid.uuid4().hex,
            status=RunStatus.RUNNING,
            context=context,
        )
        reporter = _RunReporter(run, self.sink)

        with structlog.contextvars.bound_contextvars(run_id=run.id):
            logger.info("pipeline_start", stages=[s.kind.value for s in self.stages])
            await reporter.emit(EVENT_RUN_STARTED, "Pipeline run started")

            try:
                for stage in self.stages:
                    if cancel is not None and cancel.is_set():
                        return await self._finish(
                            reporter,
                            RunStatus.CANCELLED,
                            f"Run cancelled before {stage.name}",
                        )
                    outcome = await self._run_stage(stage, reporter)
                    run.context = outcome.context
                    if outcome.stop_pipeline:
                        return await self._finish(
                            reporter,
                            RunStatus.RESOLVED_NO_ANOMALY,
                            "No anomalies detected. Systems are stable.",
                        )
            except PipelineAbort as abort:
                run.error = RunError(agent=abort.agent, message=abort.message)
                return await self._finish(reporter, RunStatus.FAILED, str(abort))

            return await self._finish(
                reporter,
                RunStatus.RESOLVED,
                "The autonomous SRE team has resolved the incident.",
            )

    async def _run_stage(self, stage: AgentStage, reporter: _RunReporter) -> StageOutcome:
        """Run one stage, recording its transitions.

        Raises:
            PipelineAbort: if the stage fails for any reason.
        """
        result = StageResult(agent=stage.kind, title=stage.running_title)
        reporter.run.stages.append(result)
        result.transition(StageStatus.RUNNING)
        await reporter.emit(EVENT_STAGE_RUNNING, stage.running_title, stage=result)

        try:
            outcome = await stage.run(reporter.run.context)
        except Exception as exc:
            message = exc.message if isinstance(exc, SreTeamError) else str(exc)
            message = message or exc.__class__.__name__
            result.transition(StageStatus.FAILED, title="An error occurred", detail=message)
            logger.error("stage_failed", agent=stage.kind.value, error=message)
            await reporter.emit(
                EVENT_STAGE_FAILED, f"{stage.name}: {message}", stage=result
            )
            raise PipelineAbort(stage.kind, message, exc) from exc

        result.transition(StageStatus.COMPLETED, title=outcome.title, detail=outcome.detail)
        logger.info("stage_completed", agent=stage.kind.value)
        await reporter.emit(EVENT_STAGE_COMPLETED, outcome.title, stage=result)
        return outcome

    async def _finish(
        self,
        reporter: _RunReporter,
        status: RunStatus,
        message: str,
    ) -> PipelineRun:
        run = reporter.run
        run.status = status
        run.finished_at = datetime.now(tz=timezone.utc)
        if status == RunStatus.FAILED:
            logger.warning("pipeline_failed", status=status.value, error=message)
        else:
            logger.info("pipeline_complete", status=status.value, stages_run=len(run.stages))
        await reporter.emit(EVENT_RUN_FINISHED, message)
        return run


def build_default_pipeline(
    settings: Settings,
    registry: AgentRegistry,
    generation: GenerationService,
    cluster: ClusterIntrospection,
    sink: ProgressSink | None = None,
) -> PipelineOrchestrator:
    """Wire the five agents in order with the current agent configuration."""
    stages: list[AgentStage] = []
    for kind, agent_cls in AGENT_CLASSES.items():
        tools = build_introspection_tools(cluster) if kind == AgentKind.FIRST_RESPONDER else None
        stages.append(
            agent_cls(
                config=registry.get(kind),
                generation=generation,
                tools=tools,
                timeout_seconds=settings.stage_timeout_seconds,
            )
        )
    return PipelineOrchestrator(stages, sink=sink)
