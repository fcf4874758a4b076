"""Exception hierarchy for the autonomous SRE pipeline.

- :class:`InvalidInputError` -- stage input rejected before any external call
- :class:`GenerationError` -- generation call failed, timed out, or returned
  output that does not match the declared shape
- :class:`StageError` -- an agent stage failed (wraps the two above, or a
  post-condition violation on an otherwise valid response)
- :class:`PipelineAbort` -- terminal orchestrator signal for a failed run
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sre_team.models import AgentKind


class SreTeamError(Exception):
    """Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error description.
        cause: Original exception that caused this error (optional).
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause


class InvalidInputError(SreTeamError):
    """Stage input failed shape validation; nothing was sent."""


class GenerationError(SreTeamError):
    """The generation service errored, timed out, or returned a bad shape."""


class ContextWriteError(SreTeamError):
    """An incident context field was written a second time."""


class StageError(SreTeamError):
    """An agent stage failed.

    Attributes:
        agent: The failing agent.
    """

    def __init__(
        self,
        agent: AgentKind,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause)
        self.agent = agent

    def __str__(self) -> str:
        return f"{self.agent.display_name}: {self.message}"


class PipelineAbort(SreTeamError):
    """A pipeline run stopped because one of its stages failed.

    Attributes:
        agent: The agent whose stage failed.
    """

    def __init__(
        self,
        agent: AgentKind,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause)
        self.agent = agent

    def __str__(self) -> str:
        return f"{self.agent.display_name}: {self.message}"
