"""Pydantic models for the autonomous SRE pipeline.

Covers agent identities, per-stage and per-run lifecycle states, the
incident context threaded through the pipeline, the structured remediation
plan, progress event payloads, and API envelopes.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sre_team.errors import ContextWriteError, PipelineAbort


def _now() -> datetime:
    """Return current UTC timestamp."""
    return datetime.now(tz=timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class AgentKind(str, enum.Enum):
    """The five agents of the SRE team, in pipeline order."""

    SENTINEL = "sentinel"
    FIRST_RESPONDER = "first_responder"
    COMMANDER = "commander"
    ENGINEER = "engineer"
    COMMUNICATOR = "communicator"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES: dict[AgentKind, str] = {
    AgentKind.SENTINEL: "Sentinel",
    AgentKind.FIRST_RESPONDER: "First Responder",
    AgentKind.COMMANDER: "Commander",
    AgentKind.ENGINEER: "Engineer",
    AgentKind.COMMUNICATOR: "Communicator",
}


class StageStatus(str, enum.Enum):
    """Lifecycle of a single stage within a run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunStatus(str, enum.Enum):
    """Lifecycle of a pipeline run."""

    IDLE = "idle"
    RUNNING = "running"
    RESOLVED = "resolved"
    RESOLVED_NO_ANOMALY = "resolved_no_anomaly"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_RUN_STATUSES


_TERMINAL_RUN_STATUSES = {
    RunStatus.RESOLVED,
    RunStatus.RESOLVED_NO_ANOMALY,
    RunStatus.FAILED,
    RunStatus.CANCELLED,
}

_STAGE_TRANSITIONS: dict[StageStatus, set[StageStatus]] = {
    StageStatus.PENDING: {StageStatus.RUNNING},
    StageStatus.RUNNING: {StageStatus.COMPLETED, StageStatus.FAILED},
    StageStatus.COMPLETED: set(),
    StageStatus.FAILED: set(),
}


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class RemediationPlan(BaseModel):
    """Structured remediation plan produced by the Commander."""

    incident_summary: str
    root_cause: str
    solution: str
    steps: list[str]
    rollback_plan: str

    def as_text(self) -> str:
        """Render the plan as plain text for downstream prompts."""
        numbered = "\n".join(f"{i}. {step}" for i, step in enumerate(self.steps, 1))
        return (
            f"Incident: {self.incident_summary}\n"
            f"Root cause: {self.root_cause}\n"
            f"Solution: {self.solution}\n"
            f"Steps:\n{numbered}\n"
            f"Rollback plan: {self.rollback_plan}"
        )


class IncidentContext(BaseModel):
    """Evolving record threaded through a pipeline run.

    The model is frozen. Stages add their fields through :meth:`extend`,
    which returns a new context and refuses to overwrite a field that is
    already populated.
    """

    model_config = ConfigDict(frozen=True)

    # --- Inputs ---
    logs: str
    metrics: str
    sample_code: str | None = None

    # --- Sentinel ---
    is_anomaly: bool | None = None
    incident_summary: str | None = None

    # --- First Responder ---
    diagnosis_report: str | None = None
    affected_deployment: str | None = None
    affected_namespace: str | None = None

    # --- Commander ---
    remediation_plan: RemediationPlan | None = None

    # --- Engineer ---
    fix_result: str | None = None

    # --- Communicator ---
    final_report: str | None = None

    def extend(self, **fields: Any) -> IncidentContext:
        """Return a validated copy with *fields* populated.

        A field counts as populated once it has been written, even when the
        value written was ``None``.

        Raises:
            ContextWriteError: if a field is unknown, already populated, or
                the new value does not validate.
        """
        for name in fields:
            if name not in type(self).model_fields:
                raise ContextWriteError(f"Unknown incident context field: {name}")
            if name in self.model_fields_set:
                raise ContextWriteError(
                    f"Incident context field '{name}' is already populated"
                )
        data = self.model_dump(exclude_unset=True)
        data.update(fields)
        try:
            return type(self).model_validate(data)
        except ValidationError as exc:
            raise ContextWriteError(
                f"Invalid incident context update: {', '.join(fields)}", exc
            ) from exc


class StageResult(BaseModel):
    """Per-stage outcome used for progress reporting."""

    agent: AgentKind
    title: str
    status: StageStatus = StageStatus.PENDING
    detail: str | dict[str, Any] = ""
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def display_name(self) -> str:
        return self.agent.display_name

    def transition(
        self,
        status: StageStatus,
        title: str | None = None,
        detail: str | dict[str, Any] | None = None,
    ) -> None:
        """Move to *status*, enforcing the pending/running/terminal order."""
        if status not in _STAGE_TRANSITIONS[self.status]:
            raise ValueError(
                f"Illegal stage transition {self.status.value} -> {status.value} "
                f"for {self.agent.display_name}"
            )
        self.status = status
        if title is not None:
            self.title = title
        if detail is not None:
            self.detail = detail
        if status == StageStatus.RUNNING:
            self.started_at = _now()
        else:
            self.finished_at = _now()


class RunError(BaseModel):
    """Failure cause surfaced for a failed run."""

    agent: AgentKind
    message: str


class PipelineRun(BaseModel):
    """Outcome and state of one pipeline run."""

    id: str
    status: RunStatus = RunStatus.IDLE
    context: IncidentContext
    stages: list[StageResult] = Field(default_factory=list)
    error: RunError | None = None
    created_at: datetime = Field(default_factory=_now)
    finished_at: datetime | None = None

    def raise_for_status(self) -> None:
        """Raise :class:`PipelineAbort` if the run failed."""
        if self.status == RunStatus.FAILED and self.error is not None:
            raise PipelineAbort(self.error.agent, self.error.message)


# ---------------------------------------------------------------------------
# Progress event model
# ---------------------------------------------------------------------------


class PipelineEvent(BaseModel):
    """Progress event pushed to a progress sink during a run."""

    event_type: str
    run_id: str
    sequence: int
    run_status: RunStatus
    stage: StageResult | None = None
    message: str = ""
    timestamp: datetime = Field(default_factory=_now)


# ---------------------------------------------------------------------------
# API envelopes
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str


class ErrorResponse(BaseModel):
    error: str
    detail: str = ""
    status_code: int = 500
