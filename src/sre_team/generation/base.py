"""Generation service contract shared by every prompt stage."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from sre_team.models import AgentKind


class ToolDescriptor(BaseModel):
    """A read-only tool the generation service may call before answering."""

    name: str
    description: str
    input_schema: dict[str, Any]
    handler: Callable[..., Awaitable[str]]

    async def call(self, arguments: dict[str, Any]) -> str:
        return await self.handler(**arguments)


class GenerationRequest(BaseModel):
    """One outbound request to the generation service."""

    stage: AgentKind
    model: str
    prompt: str
    input: dict[str, Any] = Field(default_factory=dict)
    output_schema: dict[str, Any] = Field(default_factory=dict)
    tools: list[ToolDescriptor] = Field(default_factory=list)


@runtime_checkable
class GenerationService(Protocol):
    """Produces a structured record for a rendered prompt."""

    async def generate(self, request: GenerationRequest) -> dict[str, Any]:
        """Return a record intended to match ``request.output_schema``."""
        ...
