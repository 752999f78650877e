"""Sequential pattern: run steps in order, each consuming the previous output."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from plexus.core.errors import ConfigurationError
from plexus.core.patterns.base import Pattern, StepSpec, json_list, run_step
from plexus.core.progress import EventKind
from plexus.core.schemas import KeywordAnalysis
from plexus.core.variables import stringify

if TYPE_CHECKING:
    from plexus.core.context import ExecutionContext


def _title_prompt(analysis: Any) -> str:
    keywords = analysis.get("keywords", analysis) if isinstance(analysis, dict) else analysis
    return f"Create a catchy title using these keywords: {json_list(keywords)}"


def default_steps() -> list[StepSpec]:
    """Summarize, extract keywords from the summary, then title from the keywords."""
    return [
        StepSpec(
            name="summarize",
            prompt="Summarize this in 2 sentences: {input}",
            temperature=0.3,
        ),
        StepSpec(
            name="extract-keywords",
            type="structured-data",
            prompt="Extract keywords from: {input}",
            schema=KeywordAnalysis,
            schema_name="keywords",
        ),
        StepSpec(
            name="generate-title",
            prompt=_title_prompt,
            temperature=0.8,
        ),
    ]


@dataclass
class SequentialConfig:
    steps: Sequence[StepSpec] = field(default_factory=default_steps)

    def __post_init__(self) -> None:
        if not self.steps:
            raise ConfigurationError("Sequential pattern needs at least one step")


class SequentialPattern(Pattern):
    """Chain of steps; the first failure ends the run.

    Emits ``progress`` and ``step-complete`` per step and completes with
    ``{success, results, finalOutput}``, where ``finalOutput`` is the last
    step's output rendered as text.
    """

    name = "sequential"

    def __init__(self, config: SequentialConfig | None = None) -> None:
        self.config = config or SequentialConfig()

    async def execute(self, input: Any, context: ExecutionContext) -> dict[str, Any]:
        results: list[dict[str, Any]] = []
        current = input

        for number, step in enumerate(self.config.steps, start=1):
            await context.emit(
                EventKind.PROGRESS,
                {"step": f"Executing step {number}...", "stepNumber": number, "name": step.name},
            )
            result = await run_step(step, current, context, {"stepNumber": number})
            results.append({"step": number, "name": step.name, "type": step.type, "result": result})
            await context.emit(
                EventKind.STEP_COMPLETE,
                {"stepNumber": number, "name": step.name, "type": step.type, "result": result},
            )
            current = step.output_of(result)

        return {"success": True, "results": results, "finalOutput": stringify(current)}
