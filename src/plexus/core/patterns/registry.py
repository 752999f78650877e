"""Pattern lookup and the run-request entry point.

A run request names a pattern and carries the input:

    {"patternName": "sequential", "model": "gpt-4o-mini", "input": "..."}

``workflowType`` is accepted in place of ``patternName``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from plexus.core.errors import ConfigurationError
from plexus.core.patterns.base import Pattern
from plexus.core.patterns.complex import ComplexPattern
from plexus.core.patterns.conditional import ConditionalPattern
from plexus.core.patterns.delayed import DelayedPattern
from plexus.core.patterns.human_in_loop import HumanInLoopPattern
from plexus.core.patterns.parallel import ParallelPattern
from plexus.core.patterns.retry import RetryPattern
from plexus.core.patterns.sequential import SequentialPattern

if TYPE_CHECKING:
    from plexus.core.context import ExecutionContext
    from plexus.core.graph.graph import Graph
    from plexus.core.patterns.base import WorkflowResult


PATTERNS: dict[str, Callable[[], Pattern]] = {
    SequentialPattern.name: SequentialPattern,
    ParallelPattern.name: ParallelPattern,
    ConditionalPattern.name: ConditionalPattern,
    RetryPattern.name: RetryPattern,
    ComplexPattern.name: ComplexPattern,
    DelayedPattern.name: DelayedPattern,
    HumanInLoopPattern.name: HumanInLoopPattern,
}

DESCRIPTIONS = {
    "sequential": "Summarize, extract keywords, then generate a title",
    "parallel": "Translate into French, Spanish and German at once",
    "conditional": "Summarize long text, expand short text",
    "retry": "Generate with up to 3 retries and exponential backoff",
    "complex": "Technical and business analyses, then a synthesis",
    "delayed": "Wait 5 seconds, then generate",
    "human-in-loop": "Draft, then approve, revise or reject on reviewer feedback",
}


def get_pattern(name: str) -> Pattern:
    """Create a fresh pattern instance with its default configuration.

    Raises:
        ConfigurationError: If no pattern has that name.
    """
    try:
        factory = PATTERNS[name]
    except KeyError:
        known = ", ".join(sorted(PATTERNS))
        raise ConfigurationError(f"Unknown pattern: {name!r} (expected one of: {known})") from None
    return factory()


def list_patterns() -> list[dict[str, str]]:
    return [{"name": name, "description": DESCRIPTIONS.get(name, "")} for name in PATTERNS]


class RunRequest(BaseModel):
    """Validated run request."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    pattern_name: str = Field(
        validation_alias=AliasChoices("patternName", "workflowType", "pattern_name")
    )
    model: str | None = None
    input: Any

    @field_validator("pattern_name")
    @classmethod
    def _known_pattern(cls, value: str) -> str:
        if value not in PATTERNS:
            raise ValueError(f"unknown pattern {value!r}")
        return value

    @field_validator("input")
    @classmethod
    def _has_input(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("input cannot be empty")
        return value


async def run_request(request: RunRequest, context: ExecutionContext) -> WorkflowResult:
    """Run the pattern a request names, on the request's input."""
    pattern = get_pattern(request.pattern_name)
    if request.model:
        context = context.with_model(request.model)
    return await pattern.run(request.input, context)


class GraphPattern(Pattern):
    """Run a custom Graph under the pattern event contract.

    Emits ``start``, whatever the graph's nodes emit, then ``complete``
    with ``{success, outputs, results}``. The input, when given, is ignored
    by the graph itself; input nodes carry their own data.
    """

    name = "graph"

    def __init__(self, graph: Graph) -> None:
        self.graph = graph

    def start_payload(self, input: Any) -> dict[str, Any]:
        return {"graphId": self.graph.id, "nodeCount": len(self.graph)}

    async def execute(self, input: Any, context: ExecutionContext) -> dict[str, Any]:
        results = await self.graph.execute(context)
        return {"success": True, "outputs": self.graph.outputs(), "results": results}
