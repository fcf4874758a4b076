"""Generation service backends.

- :class:`GeminiGenerationService` -- Gemini REST API via httpx
- :class:`HeuristicGenerationService` -- deterministic offline fallback
"""

from __future__ import annotations

from sre_team.config import Settings
from sre_team.generation.base import GenerationRequest, GenerationService, ToolDescriptor
from sre_team.generation.gemini import GeminiGenerationService
from sre_team.generation.heuristic import HeuristicGenerationService

__all__ = [
    "GeminiGenerationService",
    "GenerationRequest",
    "GenerationService",
    "HeuristicGenerationService",
    "ToolDescriptor",
    "build_generation_service",
]


def build_generation_service(settings: Settings) -> GenerationService:
    """Select the backend configured in *settings*."""
    if settings.generation_backend == "gemini":
        api_key = settings.google_api_key.get_secret_value() if settings.google_api_key else ""
        return GeminiGenerationService(
            api_key=api_key,
            base_url=settings.gemini_base_url,
            max_tool_rounds=settings.max_tool_rounds,
        )
    return HeuristicGenerationService()
