"""Human approval decisions for runs that pause on a reviewer.

An approval source is a callable taking a run id and returning an async
iterator of ApprovalDecision. The human-in-loop pattern reads the first
decision and closes the iterator.

ApprovalInbox is the in-process source the server uses: a run registers
when it starts waiting, and decisions posted for that run id are handed
to it.

Example:
    >>> inbox = ApprovalInbox()
    >>> context = ExecutionContext(provider=provider, approvals=inbox)
    >>> task = asyncio.create_task(get_pattern("human-in-loop").run("draft", context))
    >>> inbox.submit(context.run_id, ApprovalDecision(action="approve"))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Literal

from pydantic import BaseModel, ConfigDict

from plexus.core.errors import ApprovalNotPendingError, ConfigurationError

logger = logging.getLogger(__name__)

ApprovalAction = Literal["approve", "revise", "reject"]


class ApprovalDecision(BaseModel):
    """A reviewer's answer. ``feedback`` drives the revision on ``revise``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    action: ApprovalAction
    feedback: str | None = None


ApprovalSource = Callable[[str], AsyncIterator[ApprovalDecision]]


class ApprovalInbox:
    """Routes submitted decisions to the run waiting for them."""

    def __init__(self) -> None:
        self._waiting: dict[str, asyncio.Queue[ApprovalDecision]] = {}

    def __call__(self, run_id: str) -> InboxSubscription:
        """Register ``run_id`` as waiting; decisions submitted from now on are queued.

        Raises:
            ConfigurationError: If the run is already waiting.
        """
        if run_id in self._waiting:
            raise ConfigurationError(f"Run {run_id} is already waiting for approval")
        queue: asyncio.Queue[ApprovalDecision] = asyncio.Queue()
        self._waiting[run_id] = queue
        logger.debug("approval pending: run=%s", run_id)
        return InboxSubscription(self, run_id, queue)

    def pending(self) -> list[str]:
        """Run ids currently waiting for a decision."""
        return list(self._waiting)

    def submit(self, run_id: str, decision: ApprovalDecision) -> None:
        """Hand ``decision`` to the run waiting under ``run_id``.

        Raises:
            ApprovalNotPendingError: If no run is waiting under that id.
        """
        try:
            queue = self._waiting[run_id]
        except KeyError:
            raise ApprovalNotPendingError(run_id) from None
        queue.put_nowait(decision)
        logger.debug("approval submitted: run=%s, action=%s", run_id, decision.action)

    def _release(self, run_id: str) -> None:
        self._waiting.pop(run_id, None)


class InboxSubscription:
    """Decisions for one waiting run. Closing it unregisters the run."""

    def __init__(
        self, inbox: ApprovalInbox, run_id: str, queue: asyncio.Queue[ApprovalDecision]
    ) -> None:
        self._inbox = inbox
        self._run_id = run_id
        self._queue = queue
        self._closed = False

    def __aiter__(self) -> InboxSubscription:
        return self

    async def __anext__(self) -> ApprovalDecision:
        if self._closed:
            raise StopAsyncIteration
        return await self._queue.get()

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            self._inbox._release(self._run_id)
