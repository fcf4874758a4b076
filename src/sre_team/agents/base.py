"""Prompt stage and agent stage base classes.

- :class:`PromptStage` -- one templated, schema-checked request to the
  generation service
- :class:`AgentStage` -- abstract root of the five SRE agents; maps the
  incident context onto a prompt stage and writes the result back
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, TypeVar

import structlog
from jinja2 import Environment, StrictUndefined, TemplateError
from pydantic import BaseModel, ValidationError

from sre_team.config import AgentConfig
from sre_team.errors import GenerationError, InvalidInputError, StageError
from sre_team.generation.base import GenerationRequest, GenerationService, ToolDescriptor
from sre_team.models import AgentKind, IncidentContext

logger = structlog.get_logger(__name__)

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)

_templates = Environment(
    undefined=StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
)


class PromptStage(Generic[InputT, OutputT]):
    """A templated request with declared input and output shapes.

    Input is validated before anything is sent; output is validated on
    receipt. Each :meth:`invoke` makes exactly one call to the generation
    service and never retries.
    """

    def __init__(
        self,
        kind: AgentKind,
        config: AgentConfig,
        input_model: type[InputT],
        output_model: type[OutputT],
        generation: GenerationService,
        tools: list[ToolDescriptor] | None = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        self.kind = kind
        self.config = config
        self.input_model = input_model
        self.output_model = output_model
        self.generation = generation
        self.tools = tools or []
        self.timeout_seconds = timeout_seconds
        self._template = _templates.from_string(config.template)

    async def invoke(self, payload: InputT | dict[str, Any]) -> OutputT:
        """Render, dispatch and validate one generation round trip.

        Raises:
            InvalidInputError: *payload* does not fit the input shape.
            GenerationError: the call failed, timed out, or returned a
                record that does not fit the output shape.
        """
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        try:
            validated = self.input_model.model_validate(payload)
        except ValidationError as exc:
            raise InvalidInputError(
                f"Invalid input for {self.kind.display_name}: {_summarize(exc)}", exc
            ) from exc

        record = validated.model_dump()
        try:
            prompt = self._template.render(**record)
        except TemplateError as exc:
            raise InvalidInputError(
                f"Prompt template for {self.kind.display_name} failed to render: {exc}", exc
            ) from exc

        request = GenerationRequest(
            stage=self.kind,
            model=self.config.model,
            prompt=prompt,
            input=record,
            output_schema=self.output_model.model_json_schema(),
            tools=self.tools,
        )
        logger.info(
            "prompt_stage_dispatch",
            agent=self.kind.value,
            model=self.config.model,
            tools=[t.name for t in self.tools],
        )

        try:
            raw = await asyncio.wait_for(
                self.generation.generate(request), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            raise GenerationError(
                f"Generation timed out after {self.timeout_seconds:g}s", exc
            ) from exc
        except GenerationError:
            raise
        except Exception as exc:
            raise GenerationError(f"Generation service call failed: {exc}", exc) from exc

        try:
            output = self.output_model.model_validate(raw)
        except ValidationError as exc:
            raise GenerationError(
                f"Generation output does not match the expected shape: {_summarize(exc)}", exc
            ) from exc

        logger.info("prompt_stage_complete", agent=self.kind.value, model=self.config.model)
        return output


class StageOutcome(BaseModel):
    """What a stage hands back to the orchestrator."""

    context: IncidentContext
    title: str
    detail: str | dict[str, Any]
    stop_pipeline: bool = False


class AgentStage(ABC, Generic[InputT, OutputT]):
    """Abstract base class for the five SRE agents.

    Subclasses declare their kind, shapes, titles and default template,
    and implement :meth:`build_input` and :meth:`apply`. Post-conditions
    go in :meth:`check` and raise :class:`StageError`.
    """

    kind: ClassVar[AgentKind]
    input_model: ClassVar[type[BaseModel]]
    output_model: ClassVar[type[BaseModel]]
    running_title: ClassVar[str]
    completed_title: ClassVar[str]
    default_template: ClassVar[str]

    def __init__(
        self,
        config: AgentConfig,
        generation: GenerationService,
        tools: list[ToolDescriptor] | None = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        self.prompt: PromptStage[InputT, OutputT] = PromptStage(
            kind=self.kind,
            config=config,
            input_model=self.input_model,
            output_model=self.output_model,
            generation=generation,
            tools=tools,
            timeout_seconds=timeout_seconds,
        )

    @property
    def name(self) -> str:
        return self.kind.display_name

    @abstractmethod
    def build_input(self, context: IncidentContext) -> dict[str, Any]:
        """Select this stage's input fields from the context."""
        ...

    @abstractmethod
    def apply(self, context: IncidentContext, output: OutputT) -> IncidentContext:
        """Write this stage's output fields into the context."""
        ...

    def check(self, output: OutputT) -> None:
        """Enforce post-conditions on a well-formed response."""

    def describe(self, output: OutputT) -> str | dict[str, Any]:
        """Detail shown on the completed stage result."""
        return output.model_dump()

    def title_for(self, output: OutputT) -> str:
        return self.completed_title

    def halts(self, output: OutputT) -> bool:
        """Whether the pipeline should stop after this stage succeeds."""
        return False

    async def invoke(self, payload: InputT | dict[str, Any]) -> OutputT:
        """Run the prompt stage and post-conditions on a raw payload."""
        try:
            output = await self.prompt.invoke(payload)
        except (InvalidInputError, GenerationError) as exc:
            raise StageError(self.kind, exc.message, exc) from exc
        self.check(output)
        return output

    async def run(self, context: IncidentContext) -> StageOutcome:
        """Execute against *context* and return the extended context."""
        logger.info("agent_running", agent=self.kind.value, model=self.prompt.config.model)
        output = await self.invoke(self.build_input(context))
        return StageOutcome(
            context=self.apply(context, output),
            title=self.title_for(output),
            detail=self.describe(output),
            stop_pipeline=self.halts(output),
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.prompt.config.model!r})"


def _summarize(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}"
        for err in exc.errors()
    )
