"""Conditional pattern: evaluate a predicate, then run only the chosen branch."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from plexus.core.graph.nodes import text_of
from plexus.core.patterns.base import Pattern, StepSpec, run_step
from plexus.core.progress import EventKind

if TYPE_CHECKING:
    from plexus.core.context import ExecutionContext

LONG_TEXT_THRESHOLD = 100


def is_long_text(value: Any) -> bool:
    """Default predicate: longer than 100 characters."""
    return len(text_of(value)) > LONG_TEXT_THRESHOLD


def default_true_branch() -> StepSpec:
    return StepSpec(
        name="summarize",
        prompt="Summarize this text concisely: {input}",
        temperature=0.3,
    )


def default_false_branch() -> StepSpec:
    return StepSpec(
        name="expand",
        prompt="Expand on this text with more details and examples: {input}",
        temperature=0.7,
    )


@dataclass
class ConditionalConfig:
    predicate: Callable[[Any], Any] = is_long_text
    true_branch: StepSpec = field(default_factory=default_true_branch)
    false_branch: StepSpec = field(default_factory=default_false_branch)


class ConditionalPattern(Pattern):
    """Two pre-declared branches selected by a predicate over the input.

    Emits ``condition-evaluated {isLongText, textLength}`` then
    ``branch-executed {branchTaken, result}`` where ``branchTaken`` is
    ``"true"`` or ``"false"``.
    """

    name = "conditional"

    def __init__(self, config: ConditionalConfig | None = None) -> None:
        self.config = config or ConditionalConfig()

    async def execute(self, input: Any, context: ExecutionContext) -> dict[str, Any]:
        await context.emit(EventKind.PROGRESS, {"step": "Evaluating condition..."})

        condition_met = self.config.predicate(input)
        if inspect.isawaitable(condition_met):
            condition_met = await condition_met
        condition_met = bool(condition_met)

        await context.emit(
            EventKind.CONDITION_EVALUATED,
            {"isLongText": condition_met, "textLength": len(text_of(input))},
        )

        branch = self.config.true_branch if condition_met else self.config.false_branch
        branch_taken = "true" if condition_met else "false"
        await context.emit(
            EventKind.PROGRESS, {"step": f"Executing {branch_taken} ({branch.name}) branch..."}
        )

        result = await run_step(branch, input, context, {"branch": branch_taken})
        await context.emit(
            EventKind.BRANCH_EXECUTED, {"branchTaken": branch_taken, "result": result}
        )
        return {"success": True, "branchTaken": branch_taken, "result": result}
