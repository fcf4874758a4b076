"""Communicator Agent.

Writes the natural-language incident report for human developers.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sre_team.agents.base import AgentStage
from sre_team.errors import StageError
from sre_team.models import AgentKind, IncidentContext

COMMUNICATOR_TEMPLATE = """\
You are an AI agent that generates a summary report explaining the incident, diagnosis, and resolution in natural language.

Here are the details of the incident:

Incident Detection: {{ incident_summary }}
Diagnosis Report: {{ diagnosis_report }}
Remediation Steps:
{{ remediation_steps }}

Generate a concise and easy-to-understand summary report for human developers in final_report.
"""


class CommunicatorInput(BaseModel):
    incident_summary: str = Field(min_length=1)
    diagnosis_report: str = Field(min_length=1)
    remediation_steps: str = Field(min_length=1)


class CommunicatorOutput(BaseModel):
    model_config = ConfigDict(strict=True)

    final_report: str = Field(description="Summary of incident, diagnosis and resolution.")


class CommunicatorAgent(AgentStage[CommunicatorInput, CommunicatorOutput]):
    kind = AgentKind.COMMUNICATOR
    input_model = CommunicatorInput
    output_model = CommunicatorOutput
    running_title = "Generating incident summary report..."
    completed_title = "Incident Report"
    default_template = COMMUNICATOR_TEMPLATE

    def build_input(self, context: IncidentContext) -> dict[str, Any]:
        return {
            "incident_summary": context.incident_summary,
            "diagnosis_report": context.diagnosis_report,
            "remediation_steps": remediation_steps_text(context),
        }

    def check(self, output: CommunicatorOutput) -> None:
        if not output.final_report.strip():
            raise StageError(self.kind, "Communicator failed to generate a report")

    def apply(
        self, context: IncidentContext, output: CommunicatorOutput
    ) -> IncidentContext:
        return context.extend(final_report=output.final_report)

    def describe(self, output: CommunicatorOutput) -> str:
        return output.final_report


def remediation_steps_text(context: IncidentContext) -> str | None:
    """Numbered plan steps followed by the Engineer's result."""
    plan = context.remediation_plan
    if plan is None or context.fix_result is None:
        return None
    steps = "\n".join(f"{i}. {step}" for i, step in enumerate(plan.steps, 1))
    return f"{steps}\n\nFix prepared by the Engineer:\n{context.fix_result}"
