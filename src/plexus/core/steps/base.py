"""Step invocable interface.

A step invocable is the narrow capability the executor and patterns call
into: "given parameters, produce a result or fail". ModelProvider groups
the three operations graph nodes need. Implementations must be safe to
call concurrently from several runs and raise StepFailure on failure.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ValidationError

from plexus.core.errors import ConfigurationError, StepFailure


@dataclass(frozen=True)
class Usage:
    """Token usage reported by a provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass(frozen=True)
class TextRequest:
    prompt: str
    model: str
    temperature: float | None = None
    system_prompt: str | None = None
    max_tokens: int | None = None


@dataclass(frozen=True)
class ExtractRequest:
    """Structured extraction request.

    ``schema`` is either a JSON schema dict or a pydantic model class. With a
    model class the provider's output is validated and dumped back to plain
    JSON data.
    """

    prompt: str
    model: str
    schema: dict[str, Any] | type[BaseModel]
    schema_name: str = "result"
    temperature: float | None = None
    system_prompt: str | None = None

    def __post_init__(self) -> None:
        if not self.schema:
            raise ConfigurationError("Structured extraction requires a non-empty schema")

    def json_schema(self) -> dict[str, Any]:
        if isinstance(self.schema, type) and issubclass(self.schema, BaseModel):
            return self.schema.model_json_schema()
        return dict(self.schema)

    def validate(self, data: Any) -> Any:
        """Check provider output against the schema.

        Raises:
            StepFailure: If the data does not satisfy the schema.
        """
        if isinstance(self.schema, type) and issubclass(self.schema, BaseModel):
            try:
                return self.schema.model_validate(data).model_dump(mode="json", by_alias=True)
            except ValidationError as e:
                raise StepFailure(f"Extracted data failed validation: {e}") from e

        schema = self.schema
        if schema.get("type") == "object":
            if not isinstance(data, dict):
                raise StepFailure("Extracted data is not an object")
            missing = [key for key in schema.get("required", []) if key not in data]
            if missing:
                raise StepFailure(f"Extracted data is missing required fields: {missing}")
        return data


@dataclass(frozen=True)
class TextResult:
    text: str
    model: str
    usage: Usage | None = None
    finish_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "usage": self.usage.to_dict() if self.usage else None,
            "model": self.model,
        }


@dataclass(frozen=True)
class ExtractResult:
    data: Any
    model: str
    usage: Usage | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "usage": self.usage.to_dict() if self.usage else None,
            "model": self.model,
        }


@dataclass(frozen=True)
class TextDelta:
    """One increment of streamed text. The last delta may carry usage only."""

    text: str = ""
    usage: Usage | None = None
    finish_reason: str | None = None


@dataclass
class TextStream:
    """Lazy, finite, non-restartable sequence of text deltas.

    Iterate it to receive text pieces as the provider produces them; once
    drained, ``result`` holds the complete TextResult. Iterating a second
    time raises RuntimeError.

    Example:
        >>> stream = provider.stream_text(request)
        >>> async for piece in stream:
        ...     print(piece, end="")
        >>> stream.result.text
    """

    source: AsyncIterator[TextDelta]
    model: str
    _parts: list[str] = field(default_factory=list)
    _usage: Usage | None = None
    _finish_reason: str | None = None
    _started: bool = False
    _result: TextResult | None = None

    def __aiter__(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("TextStream can only be iterated once")
        self._started = True
        return self._pieces()

    async def _pieces(self) -> AsyncIterator[str]:
        async for delta in self.source:
            if delta.usage is not None:
                self._usage = delta.usage
            if delta.finish_reason is not None:
                self._finish_reason = delta.finish_reason
            if delta.text:
                self._parts.append(delta.text)
                yield delta.text
        self._result = TextResult(
            text="".join(self._parts),
            model=self.model,
            usage=self._usage,
            finish_reason=self._finish_reason,
        )

    @property
    def text(self) -> str:
        """Text received so far."""
        return "".join(self._parts)

    @property
    def result(self) -> TextResult:
        """Complete result.

        Raises:
            RuntimeError: If the stream has not been fully drained.
        """
        if self._result is None:
            raise RuntimeError("TextStream has not been fully consumed")
        return self._result

    async def collect(self) -> TextResult:
        """Drain the stream and return the complete result."""
        async for _ in self:
            pass
        return self.result


@runtime_checkable
class ModelProvider(Protocol):
    """Generative operations invoked by nodes and patterns."""

    async def generate_text(self, request: TextRequest) -> TextResult:
        """Complete a prompt.

        Raises:
            StepFailure: On any provider, network or validation failure.
        """
        ...

    def stream_text(self, request: TextRequest) -> TextStream:
        """Complete a prompt as a stream of text deltas.

        Nothing is sent until the stream is iterated.
        """
        ...

    async def extract_structured(self, request: ExtractRequest) -> ExtractResult:
        """Extract data matching ``request.schema`` from the prompt.

        Raises:
            StepFailure: On failure, including schema validation failure.
        """
        ...
