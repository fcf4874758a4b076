"""Gemini REST backend for the generation service.

Calls ``models/{model}:generateContent`` with httpx. Without tools the
response is constrained to JSON through ``responseSchema``; with tools the
function-calling loop runs first and the final text part is parsed as JSON.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from sre_team.errors import GenerationError
from sre_team.generation.base import GenerationRequest, ToolDescriptor

logger = structlog.get_logger(__name__)

# Keys of the OpenAPI subset accepted by Gemini's schema fields
_SCHEMA_KEYS = {"type", "description", "properties", "required", "items", "enum", "nullable", "format"}


class GeminiGenerationService:
    """Generation service backed by the Gemini ``generateContent`` API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        max_tool_rounds: int = 5,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("A Google API key is required for the Gemini backend")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._max_tool_rounds = max_tool_rounds
        self._client = client or httpx.AsyncClient(timeout=None)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def generate(self, request: GenerationRequest) -> dict[str, Any]:
        model = request.model.removeprefix("googleai/")
        contents: list[dict[str, Any]] = [
            {"role": "user", "parts": [{"text": _prompt_text(request)}]}
        ]
        body: dict[str, Any] = {"contents": contents}
        if request.tools:
            body["tools"] = [
                {"functionDeclarations": [_function_declaration(t) for t in request.tools]}
            ]
        else:
            body["generationConfig"] = {
                "responseMimeType": "application/json",
                "responseSchema": to_gemini_schema(request.output_schema),
            }

        tools = {tool.name: tool for tool in request.tools}
        for round_no in range(self._max_tool_rounds + 1):
            content = await self._post(model, body)
            parts = content.get("parts", [])
            calls = [p["functionCall"] for p in parts if "functionCall" in p]
            if not calls:
                return _parse_json_text(parts)
            if round_no == self._max_tool_rounds:
                break

            contents.append(content)
            responses = []
            for call in calls:
                name = call.get("name", "")
                tool = tools.get(name)
                if tool is None:
                    raise GenerationError(f"Model called unknown tool '{name}'")
                logger.info("tool_call", stage=request.stage.value, tool=name)
                result = await tool.call(call.get("args") or {})
                responses.append(
                    {"functionResponse": {"name": name, "response": {"content": result}}}
                )
            contents.append({"role": "user", "parts": responses})

        raise GenerationError(
            f"Model kept calling tools after {self._max_tool_rounds} rounds"
        )

    async def _post(self, model: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/models/{model}:generateContent"
        try:
            response = await self._client.post(
                url, json=body, headers={"x-goog-api-key": self._api_key}
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise GenerationError(
                f"Gemini returned HTTP {exc.response.status_code} for {model}", exc
            ) from exc
        except httpx.HTTPError as exc:
            raise GenerationError(f"Gemini request failed: {exc}", exc) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise GenerationError("Gemini returned a non-JSON response body", exc) from exc
        candidates = payload.get("candidates") or []
        if not candidates or "content" not in candidates[0]:
            reason = (payload.get("promptFeedback") or {}).get("blockReason", "no candidates")
            raise GenerationError(f"Gemini returned no content ({reason})")
        return candidates[0]["content"]


def _prompt_text(request: GenerationRequest) -> str:
    if not request.tools:
        return request.prompt
    # JSON mode cannot be combined with function calling
    return (
        f"{request.prompt}\n\n"
        "When you are done, reply with only a JSON object matching this schema:\n"
        f"{json.dumps(request.output_schema)}"
    )


def _function_declaration(tool: ToolDescriptor) -> dict[str, Any]:
    return {
        "name": tool.name,
        "description": tool.description,
        "parameters": to_gemini_schema(tool.input_schema),
    }


def _parse_json_text(parts: list[dict[str, Any]]) -> dict[str, Any]:
    text = "".join(p.get("text", "") for p in parts).strip()
    if text.startswith("```"):
        text = text.strip("`").removeprefix("json").strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise GenerationError(f"Gemini returned non-JSON output: {text[:200]!r}", exc) from exc
    if not isinstance(data, dict):
        raise GenerationError("Gemini returned JSON that is not an object")
    return data


def to_gemini_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Convert a pydantic JSON schema into Gemini's OpenAPI subset.

    Inlines ``$ref`` definitions, folds ``anyOf [X, null]`` into a nullable
    ``X``, upper-cases type names and drops unsupported keywords.
    """
    defs = schema.get("$defs", {})

    def convert(node: dict[str, Any]) -> dict[str, Any]:
        if "$ref" in node:
            node = defs[node["$ref"].rsplit("/", 1)[-1]]
        if "anyOf" in node:
            options = [o for o in node["anyOf"] if o.get("type") != "null"]
            converted = convert(options[0])
            if len(options) < len(node["anyOf"]):
                converted["nullable"] = True
            if "description" in node:
                converted["description"] = node["description"]
            return converted

        out: dict[str, Any] = {}
        for key, value in node.items():
            if key not in _SCHEMA_KEYS:
                continue
            if key == "type":
                out[key] = value.upper()
            elif key == "properties":
                out[key] = {name: convert(prop) for name, prop in value.items()}
            elif key == "items":
                out[key] = convert(value)
            else:
                out[key] = value
        return out

    return convert(schema)
