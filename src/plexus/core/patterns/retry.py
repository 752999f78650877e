"""Retry pattern: re-attempt one task with exponential backoff.

The task runs up to ``max_retries + 1`` times. After failed attempt ``i``
(0-based) the pattern waits ``backoff_base ** i`` seconds, so with the
defaults the waits are 1s, 2s, 4s. Only StepFailure is retried;
configuration errors end the run immediately.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from plexus.core.errors import ConfigurationError, StepFailure
from plexus.core.patterns.base import Pattern, StepSpec, run_step
from plexus.core.progress import EventKind
from plexus.core.run_logging import log_warning

if TYPE_CHECKING:
    from plexus.core.context import ExecutionContext

logger = logging.getLogger(__name__)


def default_task() -> StepSpec:
    """Generate from the input itself."""
    return StepSpec(name="generate", temperature=0.7)


@dataclass
class RetryConfig:
    """Retry settings.

    Attributes:
        task: The step to attempt.
        max_retries: Retries after the first attempt.
        backoff_base: Base of the exponential backoff, in seconds.
        max_backoff: Optional cap on a single wait.
        sleep: Wait function; defaults to the context's cancellable sleep.
    """

    task: StepSpec = field(default_factory=default_task)
    max_retries: int = 3
    backoff_base: float = 2.0
    max_backoff: float | None = None
    sleep: Callable[[float], Awaitable[None]] | None = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigurationError("max_retries cannot be negative")
        if self.backoff_base <= 0:
            raise ConfigurationError("backoff_base must be positive")

    def delay_for(self, attempt_index: int) -> float:
        delay = self.backoff_base**attempt_index
        if self.max_backoff is not None:
            delay = min(delay, self.max_backoff)
        return delay


class RetryPattern(Pattern):
    """Bounded retry with backoff.

    Success emits ``step-complete {attempt, result}`` and
    ``retry-complete {attempts, result}``. Exhaustion ends the run with
    ``error {error, attempts}`` carrying the last failure.
    """

    name = "retry"

    def __init__(self, config: RetryConfig | None = None) -> None:
        self.config = config or RetryConfig()

    def start_payload(self, input: Any) -> dict[str, Any]:
        return {"maxRetries": self.config.max_retries}

    async def execute(self, input: Any, context: ExecutionContext) -> dict[str, Any]:
        total = self.config.max_retries + 1
        sleep = self.config.sleep or context.sleep
        last_error: StepFailure | None = None

        for index in range(total):
            attempt = index + 1
            await context.emit(
                EventKind.PROGRESS, {"step": f"Attempt {attempt} of {total}...", "attempt": attempt}
            )
            try:
                result = await run_step(self.config.task, input, context, {"attempt": attempt})
            except StepFailure as e:
                last_error = e
                log_warning(
                    logger, context.run_id, "retry_attempt_failed", attempt=attempt, error=e
                )
                await context.emit(
                    EventKind.PROGRESS,
                    {"step": f"Attempt {attempt} failed: {e}", "error": str(e), "attempt": attempt},
                )
                if index < self.config.max_retries:
                    delay = self.config.delay_for(index)
                    await context.emit(
                        EventKind.PROGRESS,
                        {"step": f"Waiting {delay:g}s before retry...", "backoffSeconds": delay},
                    )
                    await sleep(delay)
                    context.check_cancelled()
                continue

            await context.emit(EventKind.STEP_COMPLETE, {"attempt": attempt, "result": result})
            await context.emit(EventKind.RETRY_COMPLETE, {"attempts": attempt, "result": result})
            return {"success": True, "attempts": attempt, "result": result}

        assert last_error is not None
        raise StepFailure(
            str(last_error),
            step=self.config.task.name,
            status_code=last_error.status_code,
            details={"attempts": total},
        ) from last_error
