"""Delayed pattern: wait, then run one task.

The wait uses the context's cancellable sleep, so cancelling the run
during the delay ends it without calling the provider.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from plexus.core.errors import ConfigurationError
from plexus.core.patterns.base import Pattern, StepSpec, run_step
from plexus.core.progress import EventKind

if TYPE_CHECKING:
    from plexus.core.context import ExecutionContext

DEFAULT_DELAY = 5.0


@dataclass
class DelayedConfig:
    """Delay in seconds before ``task`` runs."""

    delay: float = DEFAULT_DELAY
    task: StepSpec = field(default_factory=lambda: StepSpec(name="delayed-task"))

    def __post_init__(self) -> None:
        if self.delay < 0:
            raise ConfigurationError("delay cannot be negative")


class DelayedPattern(Pattern):
    name = "delayed"

    def __init__(self, config: DelayedConfig | None = None) -> None:
        self.config = config or DelayedConfig()

    def start_payload(self, input: Any) -> dict[str, Any]:
        return {"delaySeconds": self.config.delay}

    async def execute(self, input: Any, context: ExecutionContext) -> dict[str, Any]:
        delay = self.config.delay
        task = self.config.task
        await context.emit(
            EventKind.PROGRESS,
            {"step": f"Waiting {delay:g}s before running...", "delaySeconds": delay},
        )
        await context.sleep(delay)

        await context.emit(EventKind.PROGRESS, {"step": "Executing task...", "stepNumber": 1})
        result = await run_step(task, input, context, {"stepNumber": 1})
        await context.emit(
            EventKind.STEP_COMPLETE, {"stepNumber": 1, "type": task.type, "result": result}
        )
        return {"success": True, "delaySeconds": delay, "result": result}
