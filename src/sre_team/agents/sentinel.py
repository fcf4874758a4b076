"""Sentinel Agent.

Analyzes raw logs and metrics for anomalies. A negative verdict ends the
run after this single stage.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sre_team.agents.base import AgentStage
from sre_team.errors import StageError
from sre_team.models import AgentKind, IncidentContext

SENTINEL_TEMPLATE = """\
You are the Sentinel agent, responsible for detecting anomalies in application logs and metrics.
Analyze the provided logs and metrics to determine if there are any unusual patterns or indicators of a potential incident.

Logs:
{{ logs }}

Metrics:
{{ metrics }}

Consider factors such as error rates, latency, resource usage, pod restarts and any other relevant information that might indicate a problem.
Set is_anomaly to true if an anomaly is detected, and false otherwise.
If there is an anomaly, write incident_summary: a short human-readable description of what is wrong and which pods or services are affected. Otherwise leave it empty.
"""


class SentinelInput(BaseModel):
    logs: str = Field(min_length=1, description="Logs data from the application.")
    metrics: str = Field(
        min_length=1,
        description="Metrics such as CPU usage, memory usage, and network traffic.",
    )


class SentinelOutput(BaseModel):
    model_config = ConfigDict(strict=True)

    is_anomaly: bool = Field(description="Whether an anomaly is detected.")
    incident_summary: str = Field(
        default="", description="Human-readable anomaly description."
    )


class SentinelAgent(AgentStage[SentinelInput, SentinelOutput]):
    """Detects anomalies and summarizes the incident."""

    kind = AgentKind.SENTINEL
    input_model = SentinelInput
    output_model = SentinelOutput
    running_title = "Analyzing logs and metrics for anomalies..."
    completed_title = "Anomaly Detected!"
    default_template = SENTINEL_TEMPLATE

    def build_input(self, context: IncidentContext) -> dict[str, Any]:
        return {"logs": context.logs, "metrics": context.metrics}

    def check(self, output: SentinelOutput) -> None:
        if output.is_anomaly and not output.incident_summary.strip():
            raise StageError(self.kind, "Anomaly reported without an incident summary")

    def apply(self, context: IncidentContext, output: SentinelOutput) -> IncidentContext:
        if not output.is_anomaly:
            return context.extend(is_anomaly=False)
        return context.extend(is_anomaly=True, incident_summary=output.incident_summary)

    def title_for(self, output: SentinelOutput) -> str:
        if not output.is_anomaly:
            return "No anomalies detected. Systems are stable."
        return self.completed_title

    def describe(self, output: SentinelOutput) -> str:
        if not output.is_anomaly:
            return "Sentinel continues to monitor the system."
        return output.incident_summary

    def halts(self, output: SentinelOutput) -> bool:
        return not output.is_anomaly
