"""Human-in-loop pattern: draft, then wait for a reviewer.

The initial task runs first. The pattern then emits a ``progress`` event
with ``awaitingApproval`` and the run id, and waits for the first
decision from the approval source (the config's, else the context's):

    approve  complete with the draft
    revise   regenerate from the draft and the feedback, complete with that
    reject   fail the run; the error carries the draft and the feedback

The wait ends early if the run is cancelled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from plexus.core.errors import ConfigurationError, StepFailure
from plexus.core.graph.nodes import text_of
from plexus.core.patterns.base import Pattern, StepSpec, run_step
from plexus.core.progress import EventKind
from plexus.core.run_logging import log_info

if TYPE_CHECKING:
    from plexus.core.approvals import ApprovalDecision, ApprovalSource
    from plexus.core.context import ExecutionContext

logger = logging.getLogger(__name__)


def _revision_prompt(value: dict[str, Any]) -> str:
    return (
        f'Revise the following based on feedback: "{value["feedback"] or ""}"\n\n'
        f"Original: {value['original']}"
    )


@dataclass
class HumanInLoopConfig:
    """Human-in-loop settings.

    Attributes:
        task: Produces the draft the reviewer sees.
        approvals: Decision source; falls back to ``context.approvals``.
        revision: Step run on ``revise``, fed ``{feedback, original}``.
    """

    task: StepSpec = field(default_factory=lambda: StepSpec(name="draft", temperature=0.7))
    approvals: ApprovalSource | None = None
    revision: StepSpec = field(
        default_factory=lambda: StepSpec(name="revision", prompt=_revision_prompt)
    )


class HumanInLoopPattern(Pattern):
    name = "human-in-loop"

    def __init__(self, config: HumanInLoopConfig | None = None) -> None:
        self.config = config or HumanInLoopConfig()

    def start_payload(self, input: Any) -> dict[str, Any]:
        return {"task": self.config.task.name}

    async def _await_decision(
        self, source: ApprovalSource, context: ExecutionContext
    ) -> ApprovalDecision:
        decisions = aiter(source(context.run_id))
        try:
            await context.emit(
                EventKind.PROGRESS,
                {
                    "step": "Waiting for approval...",
                    "awaitingApproval": True,
                    "runId": context.run_id,
                },
            )
            decision = await context.wait_for(anext(decisions, None))
        finally:
            aclose = getattr(decisions, "aclose", None)
            if aclose is not None:
                await aclose()

        if decision is None:
            raise StepFailure("Approval source ended without a decision", step="approval")
        return decision

    async def execute(self, input: Any, context: ExecutionContext) -> dict[str, Any]:
        source = self.config.approvals or context.approvals
        if source is None:
            raise ConfigurationError("Human-in-loop pattern needs an approval source")

        task = self.config.task
        await context.emit(
            EventKind.PROGRESS, {"step": "Executing initial task...", "stepNumber": 1}
        )
        draft = await run_step(task, input, context, {"stepNumber": 1})
        await context.emit(
            EventKind.STEP_COMPLETE, {"stepNumber": 1, "type": task.type, "result": draft}
        )

        decision = await self._await_decision(source, context)
        log_info(logger, context.run_id, "approval_received", decision=decision.action)
        await context.emit(
            EventKind.PROGRESS,
            {
                "step": f"Approval received: {decision.action}",
                "action": decision.action,
                "feedback": decision.feedback,
            },
        )

        if decision.action == "reject":
            message = "Rejected by reviewer"
            if decision.feedback:
                message = f"{message}: {decision.feedback}"
            raise StepFailure(
                message,
                step="approval",
                details={"approved": False, "feedback": decision.feedback, "result": draft},
            )

        if decision.action == "approve":
            return {
                "success": True,
                "approved": True,
                "revised": False,
                "result": draft,
                "feedback": decision.feedback,
            }

        await context.emit(EventKind.PROGRESS, {"step": "Revising draft...", "stepNumber": 2})
        revision_step = self.config.revision
        if revision_step.model is None and task.model is not None:
            revision_step = replace(revision_step, model=task.model)
        revised = await run_step(
            revision_step,
            {"feedback": decision.feedback, "original": text_of(task.output_of(draft))},
            context,
            {"stepNumber": 2},
        )
        await context.emit(
            EventKind.STEP_COMPLETE,
            {"stepNumber": 2, "type": revision_step.type, "result": revised},
        )
        return {
            "success": True,
            "approved": True,
            "revised": True,
            "result": revised,
            "feedback": decision.feedback,
        }
