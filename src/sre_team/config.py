"""Configuration management for the autonomous SRE pipeline.

Process settings are loaded from ``SRE_TEAM_``-prefixed environment
variables (or a ``.env`` file). Per-agent model and prompt template live in
an in-memory :class:`AgentRegistry` seeded from those settings; changing a
model only affects the current process and runs started afterwards.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from sre_team.models import AgentKind


class Settings(BaseSettings):
    """Autonomous SRE service configuration."""

    # Service identity
    service_name: str = "autonomous-sre-team"
    service_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8014
    environment: str = Field(default="development", description="Runtime environment")
    log_level: str = Field(default="INFO", description="Logging level")

    # Generation backend
    generation_backend: Literal["gemini", "heuristic"] = "heuristic"
    google_api_key: SecretStr | None = None
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    stage_timeout_seconds: float = Field(default=60.0, gt=0)
    max_tool_rounds: int = Field(default=5, ge=1)

    # Per-agent models
    sentinel_model: str = "gemini-1.5-flash-latest"
    first_responder_model: str = "gemini-1.5-pro-latest"
    commander_model: str = "gemini-1.5-pro-latest"
    engineer_model: str = "gemini-1.5-flash-latest"
    communicator_model: str = "gemini-1.5-flash-latest"

    model_config = SettingsConfigDict(
        env_prefix="SRE_TEAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def model_for(self, kind: AgentKind) -> str:
        """Return the configured model identifier for *kind*."""
        return getattr(self, f"{kind.value}_model")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()


class AgentConfig(BaseModel):
    """Owned configuration for one agent kind."""

    kind: AgentKind
    model: str
    template: str


class AgentRegistry:
    """In-memory, process-local agent configuration store."""

    def __init__(self, configs: dict[AgentKind, AgentConfig]) -> None:
        missing = [kind.value for kind in AgentKind if kind not in configs]
        if missing:
            raise ValueError(f"Missing agent configuration for: {missing}")
        self._configs = dict(configs)

    @classmethod
    def from_settings(cls, settings: Settings) -> AgentRegistry:
        """Seed every agent with its configured model and default template."""
        from sre_team.agents import DEFAULT_TEMPLATES

        return cls(
            {
                kind: AgentConfig(
                    kind=kind,
                    model=settings.model_for(kind),
                    template=DEFAULT_TEMPLATES[kind],
                )
                for kind in AgentKind
            }
        )

    def get(self, kind: AgentKind) -> AgentConfig:
        return self._configs[kind]

    def update_model(self, kind: AgentKind, model: str) -> AgentConfig:
        """Switch *kind* to *model* for runs started from now on."""
        model = model.strip()
        if not model:
            raise ValueError("Model identifier must not be empty")
        updated = self._configs[kind].model_copy(update={"model": model})
        self._configs[kind] = updated
        return updated

    def list(self) -> list[AgentConfig]:
        return [self._configs[kind] for kind in AgentKind]
