"""Commander Agent.

Team lead of the SRE team. Turns the First Responder's diagnosis into a
structured remediation plan with ordered steps and a rollback plan.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sre_team.agents.base import AgentStage
from sre_team.errors import StageError
from sre_team.models import AgentKind, IncidentContext, RemediationPlan

COMMANDER_TEMPLATE = """\
You are the Commander, the team lead of an autonomous SRE team.
You receive a diagnostic report from the First Responder agent and decide on the best course of action to remediate the incident.

Diagnostic Report:
{{ diagnosis_report }}
{% if affected_deployment and affected_namespace %}
The affected deployment is '{{ affected_deployment }}' in the '{{ affected_namespace }}' namespace.
{% elif affected_deployment %}
The affected deployment is '{{ affected_deployment }}'.
{% endif %}
What is the best course of action? Produce a structured plan with:
- incident_summary: one or two sentences describing the incident
- root_cause: the most likely root cause
- solution: the chosen remediation approach and why
- steps: the ordered remediation steps, referencing the specific deployment and namespace when known
- rollback_plan: how to back out if the remediation makes things worse
"""


class CommanderInput(BaseModel):
    diagnosis_report: str = Field(
        min_length=1, description="Diagnostic report from the First Responder."
    )
    affected_deployment: str | None = None
    affected_namespace: str | None = None


class CommanderOutput(RemediationPlan):
    model_config = ConfigDict(strict=True)


class CommanderAgent(AgentStage[CommanderInput, CommanderOutput]):
    """Formulates the remediation plan."""

    kind = AgentKind.COMMANDER
    input_model = CommanderInput
    output_model = CommanderOutput
    running_title = "Formulating a remediation plan..."
    completed_title = "Remediation Plan Created"
    default_template = COMMANDER_TEMPLATE

    def build_input(self, context: IncidentContext) -> dict[str, Any]:
        return {
            "diagnosis_report": context.diagnosis_report,
            "affected_deployment": context.affected_deployment,
            "affected_namespace": context.affected_namespace,
        }

    def check(self, output: CommanderOutput) -> None:
        if not output.steps:
            raise StageError(self.kind, "Remediation plan has no steps")
        if any(not step.strip() for step in output.steps):
            raise StageError(self.kind, "Remediation plan contains an empty step")

    def apply(self, context: IncidentContext, output: CommanderOutput) -> IncidentContext:
        plan = RemediationPlan.model_validate(output.model_dump())
        return context.extend(remediation_plan=plan)
