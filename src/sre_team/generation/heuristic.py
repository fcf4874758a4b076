"""Deterministic offline backend for the generation service.

Answers each stage from its input record with keyword and threshold
heuristics so the pipeline runs end to end without an API key. The
First Responder heuristics call the introspection tools the request
carries, the same way a model would.
"""

from __future__ import annotations

import re
from typing import Any

import structlog

from sre_team.errors import GenerationError
from sre_team.generation.base import GenerationRequest
from sre_team.models import AgentKind
from sre_team.tools.playbooks import PLAYBOOKS, select_playbook

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Detection rules
# ---------------------------------------------------------------------------

_ERROR_LINE = re.compile(r"\b(ERROR|CRITICAL|FATAL)\b")

LOG_KEYWORDS = {
    "outofmemoryerror", "out of memory", "oomkilled", "restarting",
    "crashloopbackoff", "liveness probe failed", "readiness probe failed",
    "connection refused", "timed out", "deadlock",
}

_METRIC_LINE = re.compile(
    r"^\s*(?P<name>[A-Za-z_]\w*)(?:\{(?P<labels>[^}]*)\})?\s*[:=]\s*"
    r"(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>%|ms|s)?",
    re.MULTILINE,
)

# metric name fragment -> threshold (fractions are normalised to percent)
METRIC_THRESHOLDS: dict[str, float] = {
    "memory": 90.0,
    "cpu": 90.0,
    "latency": 500.0,
    "error_rate": 5.0,
}

_POD_IN_LOGS = re.compile(r"[Pp]od[ =:]*['\"]?([a-z0-9]+(?:-[a-z0-9]+)*)['\"]?")
_POD_LABEL = re.compile(r"pod=\"([^\"]+)\"")
_POD_NAME = re.compile(r"\b([a-z0-9]+(?:-[a-z0-9]+)*-pod-[a-z0-9]+)\b")
_NAMESPACE_IN_TEXT = re.compile(r"\(namespace ([a-z0-9-]+)\)")

# sample code pattern -> finding
CODE_SMELLS: list[tuple[re.Pattern[str], str]] = [
    (
        re.compile(r"static\s+(final\s+)?\w*(Map|List|Set)\b"),
        "a static collection is shared across requests and never shrinks",
    ),
    (
        re.compile(r"\.(put|add|append)\("),
        "entries are added on every call with no eviction or size bound",
    ),
    (
        re.compile(r"while\s*\(\s*true\s*\)|while True:"),
        "an unbounded loop can hold references indefinitely",
    ),
]


class HeuristicGenerationService:
    """Generation service that reasons with heuristics instead of a model."""

    async def generate(self, request: GenerationRequest) -> dict[str, Any]:
        logger.info(
            "heuristic_generate",
            stage=request.stage.value,
            model=request.model,
            mode="heuristic_fallback",
        )
        handler = _HANDLERS.get(request.stage)
        if handler is None:
            raise GenerationError(f"No heuristic available for stage '{request.stage.value}'")
        return await handler(request)


# ---------------------------------------------------------------------------
# Sentinel
# ---------------------------------------------------------------------------


async def _sentinel(request: GenerationRequest) -> dict[str, Any]:
    logs = request.input.get("logs", "")
    metrics = request.input.get("metrics", "")

    error_lines = [line for line in logs.splitlines() if _ERROR_LINE.search(line)]
    lowered = logs.lower()
    keywords = sorted(k for k in LOG_KEYWORDS if k in lowered)
    breaches = _metric_breaches(metrics)

    if not error_lines and not keywords and not breaches:
        return {"is_anomaly": False, "incident_summary": ""}

    pods = sorted(set(_POD_IN_LOGS.findall(logs)) | set(_POD_LABEL.findall(metrics)))
    pods = [p for p in pods if "-" in p]

    parts = ["Anomaly detected."]
    if error_lines:
        top = _most_common_message(error_lines)
        parts.append(f"{len(error_lines)} error-level log lines, most frequent: '{top}'.")
    if keywords:
        parts.append(f"Log signals: {', '.join(keywords)}.")
    if breaches:
        parts.append(f"Metric threshold breaches: {', '.join(breaches)}.")
    if pods:
        parts.append(f"Affected pods: {', '.join(pods)}.")
    return {"is_anomaly": True, "incident_summary": " ".join(parts)}


def _metric_breaches(metrics: str) -> list[str]:
    breaches: list[str] = []
    for match in _METRIC_LINE.finditer(metrics):
        name = match.group("name").lower()
        value = float(match.group("value"))
        unit = match.group("unit") or ""
        for fragment, threshold in METRIC_THRESHOLDS.items():
            if fragment not in name:
                continue
            normalised = value
            if unit == "s":
                normalised = value * 1000
            elif not unit and fragment != "latency" and value <= 1.0:
                normalised = value * 100
            if normalised >= threshold:
                breaches.append(f"{match.group('name')}={match.group('value')}{unit}")
            break
    return breaches


def _most_common_message(lines: list[str]) -> str:
    counts: dict[str, int] = {}
    for line in lines:
        message = _ERROR_LINE.split(line, maxsplit=1)[-1].lstrip(": ").strip()
        counts[message] = counts.get(message, 0) + 1
    # first-seen message wins ties
    return max(counts, key=counts.__getitem__)


# ---------------------------------------------------------------------------
# First Responder
# ---------------------------------------------------------------------------


async def _first_responder(request: GenerationRequest) -> dict[str, Any]:
    summary = request.input.get("incident_summary", "")
    sample_code = request.input.get("sample_code")
    tools = {tool.name: tool for tool in request.tools}

    findings: list[str] = [f"Incident under investigation: {summary}"]
    deployment: str | None = None
    namespace: str | None = None

    pods = _POD_NAME.findall(summary)
    if pods:
        deployment = pods[0].rsplit("-pod-", 1)[0]

    if deployment and "describeDeployment" in tools:
        description = await tools["describeDeployment"].call({"deployment_name": deployment})
        findings.append(description)
        match = _NAMESPACE_IN_TEXT.search(description)
        if match:
            namespace = match.group(1)
        else:
            deployment = None

    if namespace and "getPodStatus" in tools:
        findings.append(await tools["getPodStatus"].call({"namespace": namespace}))

    if pods and "getPodLogs" in tools:
        findings.append(await tools["getPodLogs"].call({"pod_name": pods[0]}))

    if sample_code:
        smells = [finding for pattern, finding in CODE_SMELLS if pattern.search(sample_code)]
        if smells:
            findings.append("Code review: " + "; ".join(smells) + ".")
        else:
            findings.append("Code review: no obvious defect in the provided sample.")

    symptom = select_playbook(" ".join(findings))
    findings.append(f"Conclusion: symptoms are consistent with {symptom.replace('_', ' ')}.")

    return {
        "diagnosis_report": "\n\n".join(findings),
        "affected_deployment": deployment,
        "affected_namespace": namespace,
    }


# ---------------------------------------------------------------------------
# Commander
# ---------------------------------------------------------------------------


async def _commander(request: GenerationRequest) -> dict[str, Any]:
    diagnosis = request.input.get("diagnosis_report", "")
    deployment = request.input.get("affected_deployment") or "the affected deployment"
    namespace = request.input.get("affected_namespace") or "the affected namespace"

    playbook = PLAYBOOKS[select_playbook(diagnosis)]
    first_paragraph = diagnosis.split("\n\n", 1)[0]
    return {
        "incident_summary": first_paragraph.removeprefix("Incident under investigation: "),
        "root_cause": playbook["root_cause"],
        "solution": playbook["solution"],
        "steps": [
            step.format(deployment=deployment, namespace=namespace)
            for step in playbook["steps"]
        ],
        "rollback_plan": playbook["rollback_plan"].format(deployment=deployment),
    }


# ---------------------------------------------------------------------------
# Engineer
# ---------------------------------------------------------------------------


async def _engineer(request: GenerationRequest) -> dict[str, Any]:
    plan = request.input.get("remediation_plan", "")
    code = request.input.get("code_to_fix")
    solution = _plan_field(plan, "Solution")

    if code:
        marker = "#" if _looks_like_python(code) else "//"
        return {"fix_result": f"{marker} Fix: {solution}\n{code.rstrip()}\n"}

    steps = [line for line in plan.splitlines() if re.match(r"^\d+\.\s", line)]
    lines = ["Proposed remediation (not executed; review before running):"]
    lines.extend(f"# {step}" for step in steps)
    return {"fix_result": "\n".join(lines)}


def _plan_field(plan: str, label: str) -> str:
    for line in plan.splitlines():
        if line.startswith(f"{label}:"):
            return line.split(":", 1)[1].strip()
    return "apply the remediation plan"


def _looks_like_python(code: str) -> bool:
    return bool(re.search(r"^\s*(def|import|from|class)\s", code, re.MULTILINE)) and "{" not in code


# ---------------------------------------------------------------------------
# Communicator
# ---------------------------------------------------------------------------


async def _communicator(request: GenerationRequest) -> dict[str, Any]:
    summary = request.input.get("incident_summary", "")
    diagnosis = request.input.get("diagnosis_report", "")
    steps = request.input.get("remediation_steps", "")

    conclusion = next(
        (p for p in diagnosis.split("\n\n") if p.startswith("Conclusion:")),
        diagnosis.split("\n\n", 1)[0],
    )
    report = (
        "Incident report\n\n"
        f"What happened: {summary}\n\n"
        f"Diagnosis: {conclusion.removeprefix('Conclusion: ')}\n\n"
        f"Remediation:\n{steps}\n\n"
        "Status: the autonomous SRE team has proposed and prepared the fix above."
    )
    return {"final_report": report}


_HANDLERS = {
    AgentKind.SENTINEL: _sentinel,
    AgentKind.FIRST_RESPONDER: _first_responder,
    AgentKind.COMMANDER: _commander,
    AgentKind.ENGINEER: _engineer,
    AgentKind.COMMUNICATOR: _communicator,
}
