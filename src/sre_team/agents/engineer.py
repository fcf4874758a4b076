"""Engineer Agent.

Applies the remediation plan as a text-to-text transform: corrected code
when a code sample is available, otherwise the proposed remediation
commands. Nothing the model produces is ever executed.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sre_team.agents.base import AgentStage
from sre_team.errors import StageError
from sre_team.models import AgentKind, IncidentContext

ENGINEER_TEMPLATE = """\
You are an expert software engineer on an autonomous SRE team.
{% if code_to_fix %}
Your task is to fix a bug in a provided code snippet based on a remediation plan.
Analyze the plan and the buggy code, then return the complete, corrected code block.

Remediation Plan:
{{ remediation_plan }}

Buggy Code:
'''
{{ code_to_fix }}
'''

Return only the fixed code in fix_result, with no additional explanations or markdown formatting.
{% else %}
Translate the remediation plan below into the exact commands an operator should run, in order, with a one-line comment above each.

Remediation Plan:
{{ remediation_plan }}

Return the commands in fix_result. They will be reviewed by a human and are never executed automatically.
{% endif %}"""


class EngineerInput(BaseModel):
    remediation_plan: str = Field(
        min_length=1, description="The remediation plan outlining the necessary changes."
    )
    code_to_fix: str | None = Field(
        default=None, description="The block of buggy code to be fixed."
    )


class EngineerOutput(BaseModel):
    model_config = ConfigDict(strict=True)

    fix_result: str = Field(description="The corrected code or proposed commands.")


class EngineerAgent(AgentStage[EngineerInput, EngineerOutput]):
    """Produces the fix for the remediation plan."""

    kind = AgentKind.ENGINEER
    input_model = EngineerInput
    output_model = EngineerOutput
    running_title = "Preparing the fix for the remediation plan..."
    completed_title = "Fix Prepared"
    default_template = ENGINEER_TEMPLATE

    def build_input(self, context: IncidentContext) -> dict[str, Any]:
        plan = context.remediation_plan
        return {
            "remediation_plan": plan.as_text() if plan is not None else None,
            "code_to_fix": context.sample_code,
        }

    def check(self, output: EngineerOutput) -> None:
        if not output.fix_result.strip():
            raise StageError(self.kind, "Failed to generate the fix")

    def apply(self, context: IncidentContext, output: EngineerOutput) -> IncidentContext:
        return context.extend(fix_result=output.fix_result)

    def describe(self, output: EngineerOutput) -> str:
        return output.fix_result
