"""First Responder Agent.

Diagnoses the root cause of a detected incident from the Sentinel's
summary and an optional code sample. It may call the read-only cluster
introspection tools (pod status, pod logs, deployment description).
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sre_team.agents.base import AgentStage
from sre_team.errors import StageError
from sre_team.models import AgentKind, IncidentContext

FIRST_RESPONDER_TEMPLATE = """\
You are the First Responder agent, a digital detective responsible for diagnosing incidents.
An incident has been detected. Your job is to determine the root cause.
Analyze the incident report, and if provided, the sample code.

Incident Report:
{{ incident_summary }}
{% if sample_code %}
Potentially Buggy Code:
'''
{{ sample_code }}
'''
{% endif %}
Think step-by-step:
1. Analyze the incident report and the code to form a hypothesis.
2. If this seems like a code-level bug, clearly state the problem in the code.
3. If this seems like an infrastructure issue, use your tools to investigate.
4. Compile a concise diagnosis report summarizing your findings. If you identify a specific deployment or namespace from your tool use, include them. If not, omit them.
"""


class FirstResponderInput(BaseModel):
    incident_summary: str = Field(min_length=1, description="The incident report from the Sentinel.")
    sample_code: str | None = Field(
        default=None, description="A sample of the potentially buggy code."
    )


class FirstResponderOutput(BaseModel):
    model_config = ConfigDict(strict=True)

    diagnosis_report: str = Field(description="The diagnosis report of the incident.")
    affected_deployment: str | None = Field(
        default=None, description="The name of the affected deployment."
    )
    affected_namespace: str | None = Field(
        default=None, description="The Kubernetes namespace of the application."
    )


class FirstResponderAgent(AgentStage[FirstResponderInput, FirstResponderOutput]):
    """Produces a diagnosis report and, when found, the affected workload."""

    kind = AgentKind.FIRST_RESPONDER
    input_model = FirstResponderInput
    output_model = FirstResponderOutput
    running_title = "Diagnosing the root cause..."
    completed_title = "Root Cause Analysis Complete"
    default_template = FIRST_RESPONDER_TEMPLATE

    def build_input(self, context: IncidentContext) -> dict[str, Any]:
        return {
            "incident_summary": context.incident_summary,
            "sample_code": context.sample_code,
        }

    def check(self, output: FirstResponderOutput) -> None:
        if not output.diagnosis_report.strip():
            raise StageError(self.kind, "First Responder failed to provide a diagnosis")

    def apply(
        self, context: IncidentContext, output: FirstResponderOutput
    ) -> IncidentContext:
        return context.extend(
            diagnosis_report=output.diagnosis_report,
            affected_deployment=output.affected_deployment or None,
            affected_namespace=output.affected_namespace or None,
        )

    def describe(self, output: FirstResponderOutput) -> str:
        return output.diagnosis_report
