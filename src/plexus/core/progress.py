"""Progress events and the channel that carries them to a consumer.

A run writes ProgressEvents to exactly one ProgressChannel. The consumer
reads them in emission order with ``async for event in channel`` or
receives them through an ``on_event`` callback. Writes from concurrent
tasks (the parallel pattern's fan-out) are serialized by a lock, so each
event is appended whole and timestamps strictly increase.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from plexus.core.errors import ChannelClosedError

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Event ``type`` values written to the channel and the wire."""

    START = "start"
    PROGRESS = "progress"
    STEP_COMPLETE = "step-complete"
    PARALLEL_COMPLETE = "parallel-complete"
    PARALLEL_ANALYSIS_COMPLETE = "parallel-analysis-complete"
    CONDITION_EVALUATED = "condition-evaluated"
    BRANCH_EXECUTED = "branch-executed"
    SYNTHESIS_COMPLETE = "synthesis-complete"
    RETRY_COMPLETE = "retry-complete"
    TEXT_CHUNK = "text-chunk"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (EventKind.COMPLETE, EventKind.ERROR)


@dataclass(frozen=True)
class ProgressEvent:
    """One record in a run's progress stream.

    Attributes:
        kind: Event type.
        payload: Event-specific JSON-serializable data.
        timestamp: Milliseconds since the epoch, strictly increasing per channel.
    """

    kind: EventKind
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to the ``{type, data, timestamp}`` wire shape."""
        return {"type": self.kind.value, "data": self.payload, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProgressEvent:
        """Build an event from the wire shape.

        Raises:
            KeyError: If ``type`` is missing.
            ValueError: If ``type`` is not a known event kind.
        """
        payload = data.get("data")
        if payload is None:
            payload = {}
        elif not isinstance(payload, dict):
            payload = {"value": payload}
        return cls(
            kind=EventKind(data["type"]),
            payload=payload,
            timestamp=int(data.get("timestamp", 0)),
        )


EventCallback = Callable[[ProgressEvent], Awaitable[None]]

_CLOSED = object()


class ProgressChannel:
    """Ordered, append-only sink of progress events for one run.

    ``emit`` does not return until the event is recorded and handed to the
    consumer side, so a writer never runs ahead of its own events. The owner
    closes the channel once, after the terminal event; later emits raise
    ChannelClosedError.

    Example:
        >>> channel = ProgressChannel()
        >>> task = asyncio.create_task(pattern.run("text", context.with_channel(channel)))
        >>> async for event in channel:
        ...     print(event.kind, event.payload)
    """

    def __init__(self, on_event: EventCallback | None = None, maxsize: int = 0) -> None:
        self._on_event = on_event
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize)
        self._lock = asyncio.Lock()
        self._history: list[ProgressEvent] = []
        self._last_timestamp = 0
        self._closed = False
        self._iterating = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def events(self) -> tuple[ProgressEvent, ...]:
        """Every event emitted so far, in order."""
        return tuple(self._history)

    def _next_timestamp(self) -> int:
        now = int(time.time() * 1000)
        self._last_timestamp = max(now, self._last_timestamp + 1)
        return self._last_timestamp

    async def emit(
        self,
        kind: EventKind | str,
        payload: Mapping[str, Any] | None = None,
        guard: Callable[[], None] | None = None,
    ) -> ProgressEvent:
        """Append an event.

        Args:
            kind: Event kind.
            payload: Event data.
            guard: Called once the lock is held; if it raises, nothing is
                emitted. Writers queued behind a slow callback use it to
                re-check cancellation.

        Raises:
            ChannelClosedError: If the channel was already closed.
            ValueError: If ``kind`` is not a known event kind.
        """
        event_kind = EventKind(kind)
        async with self._lock:
            if guard is not None:
                guard()
            if self._closed:
                raise ChannelClosedError(f"Cannot emit '{event_kind.value}' on a closed channel")
            event = ProgressEvent(
                kind=event_kind,
                payload=dict(payload or {}),
                timestamp=self._next_timestamp(),
            )
            self._history.append(event)
            if self._on_event is not None:
                await self._on_event(event)
            await self._queue.put(event)
        logger.debug("event emitted: type=%s", event_kind.value)
        return event

    async def close(self) -> None:
        """Close the channel and end consumer iteration. Repeat calls are ignored."""
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            await self._queue.put(_CLOSED)

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        if self._iterating:
            raise RuntimeError("ProgressChannel supports a single consumer")
        self._iterating = True
        return self._drain()

    async def _drain(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
