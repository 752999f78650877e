"""Complex pattern: two analyses, then a synthesis of both.

The technical and business analyses run one after the other by default.
With ``concurrent=True`` they run at the same time; their
``step-complete`` events then follow completion order, and
``parallel-analysis-complete`` is still emitted only once both are done.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from plexus.core.graph.nodes import text_of
from plexus.core.patterns.base import Pattern, StepSpec, run_step
from plexus.core.progress import EventKind

if TYPE_CHECKING:
    from plexus.core.context import ExecutionContext


def _synthesis_prompt(results: dict[str, str]) -> str:
    combined = (
        f"Technical Perspective:\n{results['technical']}\n\n"
        f"Business Perspective:\n{results['business']}"
    )
    return f"Synthesize these perspectives into a balanced conclusion:\n\n{combined}"


@dataclass
class ComplexConfig:
    technical: StepSpec = field(
        default_factory=lambda: StepSpec(
            name="technical-analysis", prompt="Analyze from a technical perspective: {input}"
        )
    )
    business: StepSpec = field(
        default_factory=lambda: StepSpec(
            name="business-analysis", prompt="Analyze from a business perspective: {input}"
        )
    )
    synthesis: StepSpec = field(
        default_factory=lambda: StepSpec(name="synthesis", prompt=_synthesis_prompt)
    )
    concurrent: bool = False


class ComplexPattern(Pattern):
    name = "complex"

    def __init__(self, config: ComplexConfig | None = None) -> None:
        self.config = config or ComplexConfig()

    def start_payload(self, input: Any) -> dict[str, Any]:
        return {"concurrent": self.config.concurrent}

    async def _analyze(
        self, number: int, step: StepSpec, input: Any, context: ExecutionContext
    ) -> dict[str, Any]:
        perspective = step.name.removesuffix("-analysis")
        await context.emit(
            EventKind.PROGRESS, {"step": f"Analyzing from {perspective} perspective..."}
        )
        result = await run_step(step, input, context, {"stepNumber": number})
        await context.emit(
            EventKind.STEP_COMPLETE, {"stepNumber": number, "type": step.name, "result": result}
        )
        return result

    async def execute(self, input: Any, context: ExecutionContext) -> dict[str, Any]:
        await context.emit(EventKind.PROGRESS, {"step": "Starting parallel analysis..."})

        if self.config.concurrent:
            technical_task = asyncio.create_task(
                self._analyze(1, self.config.technical, input, context)
            )
            business_task = asyncio.create_task(
                self._analyze(2, self.config.business, input, context)
            )
            try:
                technical, business = await asyncio.gather(technical_task, business_task)
            except BaseException:
                technical_task.cancel()
                business_task.cancel()
                await asyncio.gather(technical_task, business_task, return_exceptions=True)
                raise
        else:
            technical = await self._analyze(1, self.config.technical, input, context)
            business = await self._analyze(2, self.config.business, input, context)

        await context.emit(
            EventKind.PARALLEL_ANALYSIS_COMPLETE,
            {
                "results": [
                    {"type": "technical", "result": technical},
                    {"type": "business", "result": business},
                ]
            },
        )

        await context.emit(EventKind.PROGRESS, {"step": "Synthesizing perspectives..."})
        synthesis = await run_step(
            self.config.synthesis,
            {
                "technical": text_of(self.config.technical.output_of(technical)),
                "business": text_of(self.config.business.output_of(business)),
            },
            context,
            {"stepNumber": 3},
        )
        await context.emit(EventKind.SYNTHESIS_COMPLETE, {"synthesis": synthesis})

        return {
            "success": True,
            "parallelResults": [
                {"task": 1, "type": self.config.technical.name, "result": technical},
                {"task": 2, "type": self.config.business.name, "result": business},
            ],
            "synthesis": synthesis,
        }
