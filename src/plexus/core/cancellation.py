"""Cooperative cancellation for runs.

CancellationToken lets a consumer stop a run that is in flight. Cancellation
is cooperative: the executor and patterns check the token before every step
invocation and before every event emission, so once it fires no new work is
scheduled and nothing more is written to the progress channel. A step call
that was already issued is allowed to finish.

Typical usage:
1. Create a CancellationToken before starting the run
2. Pass it via ExecutionContext
3. Call token.cancel() from another task when the consumer goes away
4. The run stops at its next check point
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable
from typing import TypeVar

from plexus.core.errors import CancellationRequested

T = TypeVar("T")


class CancellationToken:
    """Token for cooperative cancellation.

    Example:
        >>> token = CancellationToken()
        >>> context = ExecutionContext(provider=provider, cancellation=token)
        >>> task = asyncio.create_task(pattern.run("text", context))
        >>> token.cancel()
        >>> result = await task
        >>> result.cancelled
        True
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Request cancellation. Safe to call more than once."""
        self._cancelled = True
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def check(self) -> None:
        """Raise CancellationRequested if cancel() was called.

        Raises:
            CancellationRequested: If cancellation was requested.
        """
        if self._cancelled:
            raise CancellationRequested()

    async def wait(self) -> None:
        """Block until cancel() is called."""
        await self._event.wait()

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds, waking early on cancellation.

        Raises:
            CancellationRequested: If the token fires before or during the wait.
        """
        self.check()
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        self.check()

    async def run_until_cancelled(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable``, abandoning it if the token fires first.

        Raises:
            CancellationRequested: If the token fires before ``awaitable`` finishes.
        """
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self.check()
        return task.result()

    def reset(self) -> None:
        """Clear the cancelled flag. Prefer creating a new token."""
        self._cancelled = False
        self._event.clear()
