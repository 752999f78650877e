"""Shared machinery for orchestration patterns.

A pattern is a procedure over a model provider that reports its progress
on the context's channel. ``Pattern.run`` owns the event contract:

    start -> (progress | step-complete | pattern events)* -> complete | error

Exactly one terminal event is emitted, unless the run is cancelled, in
which case nothing more is emitted. The channel is closed when the run
ends either way.
"""

from __future__ import annotations

import inspect
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Literal

from pydantic import BaseModel

from plexus.core.errors import CancellationRequested, ConfigurationError, StepFailure
from plexus.core.graph.nodes import text_of
from plexus.core.progress import EventKind
from plexus.core.run_logging import log_complete, log_error, log_info, log_start
from plexus.core.steps.base import ExtractRequest, TextRequest

if TYPE_CHECKING:
    from plexus.core.context import ExecutionContext

logger = logging.getLogger(__name__)

StepType = Literal["text-generation", "structured-data", "transform"]

PromptBuilder = Callable[[Any], str]


@dataclass(frozen=True)
class StepSpec:
    """One step of a pattern.

    ``prompt`` is either a string, where ``{input}`` is replaced by the
    step's input, or a function of the input returning the prompt. With no
    prompt the input itself is the prompt.

    Attributes:
        name: Step label reported in events.
        type: text-generation, structured-data or transform.
        prompt: Prompt template or builder.
        temperature: Sampling temperature for generation steps.
        system_prompt: Optional system prompt.
        schema: JSON schema or pydantic model for structured-data steps.
        schema_name: Schema name sent to the provider.
        transformer: Function applied by transform steps.
        model: Model override for this step.
        stream: Emit text-chunk events while generating.
    """

    name: str
    type: StepType = "text-generation"
    prompt: str | PromptBuilder | None = None
    temperature: float | None = None
    system_prompt: str | None = None
    schema: dict[str, Any] | type[BaseModel] | None = None
    schema_name: str = "result"
    transformer: Callable[[Any], Any] | None = None
    model: str | None = None
    stream: bool = False

    def build_prompt(self, value: Any) -> str:
        if self.prompt is None:
            return text_of(value)
        if callable(self.prompt):
            return self.prompt(value)
        return self.prompt.replace("{input}", text_of(value))

    def output_of(self, result: dict[str, Any]) -> Any:
        """Value handed to the next step: text, extracted data or transformed value."""
        if self.type == "text-generation":
            return result["text"]
        return result["data"]


async def run_step(
    step: StepSpec,
    value: Any,
    context: ExecutionContext,
    event_tags: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Invoke one step and return its result record.

    Text generation returns ``{text, usage, model}``, extraction
    ``{data, usage, model}`` and transforms ``{data}``.

    Raises:
        CancellationRequested: If the run was cancelled before the call.
        ConfigurationError: If the step is missing its schema or transformer.
        StepFailure: If the provider fails.
    """
    context.check_cancelled()

    if step.type == "transform":
        if step.transformer is None:
            raise ConfigurationError(f"Transform step '{step.name}' has no transformer")
        transformed = step.transformer(value)
        if inspect.isawaitable(transformed):
            transformed = await transformed
        return {"data": transformed}

    provider = context.require_provider()
    model = context.resolve_model(step.model)
    prompt = step.build_prompt(value)

    if step.type == "structured-data":
        if not step.schema:
            raise ConfigurationError(f"Structured step '{step.name}' requires a schema")
        request = ExtractRequest(
            prompt=prompt,
            model=model,
            schema=step.schema,
            schema_name=step.schema_name,
            temperature=step.temperature,
            system_prompt=step.system_prompt,
        )
        result = (await provider.extract_structured(request)).to_dict()
    elif step.type == "text-generation":
        text_request = TextRequest(
            prompt=prompt,
            model=model,
            temperature=step.temperature,
            system_prompt=step.system_prompt,
        )
        if step.stream:
            stream = provider.stream_text(text_request)
            async for chunk in stream:
                await context.emit(
                    EventKind.TEXT_CHUNK,
                    {**(event_tags or {}), "chunk": chunk, "fullText": stream.text},
                )
            result = stream.result.to_dict()
        else:
            result = (await provider.generate_text(text_request)).to_dict()
    else:
        raise ConfigurationError(f"Unknown step type: {step.type!r}")

    context.usage.add_step_call(result.get("usage"))
    return result


@dataclass(frozen=True)
class WorkflowResult:
    """Terminal value of a run. Created once, never modified.

    Attributes:
        pattern: Pattern name.
        success: True when the run completed.
        payload: Pattern-specific success payload.
        error: Failure message.
        diagnostics: Extra failure data (attempt count, failed task...).
        cancelled: True when the consumer stopped the run.
        metadata: Usage snapshot (node executions, tokens, duration).
    """

    pattern: str
    success: bool
    payload: dict[str, Any] | None = None
    error: str | None = None
    diagnostics: dict[str, Any] = field(default_factory=dict)
    cancelled: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "pattern": self.pattern,
            "success": self.success,
            "cancelled": self.cancelled,
            "metadata": self.metadata,
        }
        if self.payload is not None:
            data["result"] = self.payload
        if self.error is not None:
            data["error"] = self.error
            data.update(self.diagnostics)
        return data


class Pattern(ABC):
    """Base class for orchestration patterns.

    Subclasses set ``name`` and implement ``execute``, which emits the
    pattern's intermediate events and returns the success payload. Errors
    raised from ``execute`` become the single ``error`` event.
    """

    name: ClassVar[str]

    def start_payload(self, input: Any) -> dict[str, Any]:
        """Extra fields for the ``start`` event."""
        return {}

    @abstractmethod
    async def execute(self, input: Any, context: ExecutionContext) -> dict[str, Any]: ...

    async def run(self, input: Any, context: ExecutionContext) -> WorkflowResult:
        """Run the pattern, emitting its events and closing the channel.

        Never raises for step or configuration failures; they are reported
        through the ``error`` event and the returned WorkflowResult.
        """
        start = time.monotonic()
        log_start(logger, context.run_id, "pattern_start", pattern=self.name, model=context.model)
        try:
            await context.emit(
                EventKind.START,
                {"workflowType": self.name, "model": context.model, **self.start_payload(input)},
            )
            payload = await self.execute(input, context)
            await context.emit(EventKind.COMPLETE, {"result": payload})
        except CancellationRequested:
            log_info(logger, context.run_id, "pattern_cancelled", pattern=self.name)
            return await self._finish(context, success=False, cancelled=True)
        except (StepFailure, ConfigurationError) as e:
            log_error(logger, context.run_id, "pattern_failed", e, pattern=self.name)
            details = e.to_dict() if isinstance(e, StepFailure) else {"error": str(e)}
            return await self._fail(context, str(e), details)
        except Exception as e:
            logger.exception("[%s] pattern '%s' failed unexpectedly", context.run_id, self.name)
            return await self._fail(context, f"{type(e).__name__}: {e}", {"error": str(e)})

        log_complete(
            logger, context.run_id, "pattern_complete", time.monotonic() - start, pattern=self.name
        )
        return await self._finish(context, success=True, payload=payload)

    async def _fail(
        self, context: ExecutionContext, message: str, details: dict[str, Any]
    ) -> WorkflowResult:
        details = {**details, "error": message}
        try:
            await context.emit(EventKind.ERROR, details)
        except CancellationRequested:
            return await self._finish(context, success=False, cancelled=True)
        diagnostics = {k: v for k, v in details.items() if k != "error"}
        return await self._finish(context, success=False, error=message, diagnostics=diagnostics)

    async def _finish(self, context: ExecutionContext, **fields: Any) -> WorkflowResult:
        if context.channel is not None:
            await context.channel.close()
        return WorkflowResult(pattern=self.name, metadata=context.usage.to_metadata(), **fields)


def json_list(value: Any) -> str:
    """Compact JSON for embedding structured values in prompts."""
    return json.dumps(value, default=str)
