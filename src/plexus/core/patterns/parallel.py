"""Parallel pattern: fan the same input out to several tasks at once.

Each task reports ``step-complete`` as soon as it finishes, so those
events arrive in completion order; every event carries its ``taskNumber``.
The final ``parallel-complete`` lists results in declaration order.

Failure policy (``ParallelConfig.fail_fast``):
    True   the first failing task cancels the others and is reported alone
    False  every task runs to completion, then all failures are reported
           together with the results that did succeed
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from plexus.core.errors import CancellationRequested, ConfigurationError, StepFailure
from plexus.core.patterns.base import Pattern, StepSpec, run_step
from plexus.core.progress import EventKind
from plexus.core.run_logging import log_warning

if TYPE_CHECKING:
    from plexus.core.context import ExecutionContext

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGES = ("French", "Spanish", "German")


def default_tasks() -> list[StepSpec]:
    """Translate the input into French, Spanish and German."""
    return [
        StepSpec(
            name=f"translate-{language.lower()}",
            prompt=f"Translate to {language}: {{input}}",
            temperature=0.3,
        )
        for language in DEFAULT_LANGUAGES
    ]


@dataclass
class ParallelConfig:
    tasks: Sequence[StepSpec] = field(default_factory=default_tasks)
    fail_fast: bool = True

    def __post_init__(self) -> None:
        if not self.tasks:
            raise ConfigurationError("Parallel pattern needs at least one task")


class ParallelPattern(Pattern):
    name = "parallel"

    def __init__(self, config: ParallelConfig | None = None) -> None:
        self.config = config or ParallelConfig()

    def start_payload(self, input: Any) -> dict[str, Any]:
        return {"taskCount": len(self.config.tasks), "failFast": self.config.fail_fast}

    async def _run_task(
        self, number: int, task: StepSpec, input: Any, context: ExecutionContext
    ) -> dict[str, Any]:
        await context.emit(
            EventKind.PROGRESS,
            {
                "step": f"Executing parallel task {number}...",
                "taskNumber": number,
                "name": task.name,
            },
        )
        try:
            result = await run_step(task, input, context, {"taskNumber": number})
        except StepFailure as e:
            e.details.setdefault("taskNumber", number)
            raise
        await context.emit(
            EventKind.STEP_COMPLETE,
            {"taskNumber": number, "name": task.name, "type": task.type, "result": result},
        )
        return {"task": number, "name": task.name, "type": task.type, "result": result}

    async def execute(self, input: Any, context: ExecutionContext) -> dict[str, Any]:
        tasks = self.config.tasks
        await context.emit(EventKind.PROGRESS, {"step": f"Starting {len(tasks)} parallel tasks..."})

        running = [
            asyncio.create_task(
                self._run_task(number, task, input, context),
                name=f"{context.run_id}-task-{number}",
            )
            for number, task in enumerate(tasks, start=1)
        ]
        if self.config.fail_fast:
            results = await self._join_fail_fast(running, context)
        else:
            results = await self._join_all(running)

        await context.emit(EventKind.PARALLEL_COMPLETE, {"results": results})
        return {"success": True, "results": results}

    async def _join_fail_fast(
        self, running: list[asyncio.Task[dict[str, Any]]], context: ExecutionContext
    ) -> list[dict[str, Any]]:
        try:
            for finished in asyncio.as_completed(running):
                await finished
        except BaseException:
            outstanding = [t for t in running if not t.done()]
            if outstanding:
                log_warning(
                    logger, context.run_id, "parallel_abort", cancelled_tasks=len(outstanding)
                )
            for task in outstanding:
                task.cancel()
            await asyncio.gather(*running, return_exceptions=True)
            raise
        return [task.result() for task in running]

    async def _join_all(self, running: list[asyncio.Task[dict[str, Any]]]) -> list[dict[str, Any]]:
        outcomes = await asyncio.gather(*running, return_exceptions=True)

        failures: list[tuple[int, BaseException]] = []
        results: list[dict[str, Any]] = []
        for number, outcome in enumerate(outcomes, start=1):
            if isinstance(outcome, BaseException):
                failures.append((number, outcome))
            else:
                results.append(outcome)

        if not failures:
            return results

        for _, error in failures:
            if isinstance(error, CancellationRequested) or not isinstance(error, Exception):
                raise error

        first = failures[0][1]
        raise StepFailure(
            f"{len(failures)} of {len(outcomes)} parallel tasks failed: {first}",
            details={
                "failedTasks": [{"taskNumber": n, "error": str(e)} for n, e in failures],
                "results": results,
            },
        ) from first
