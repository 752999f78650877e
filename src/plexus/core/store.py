"""Key-value store used by cache nodes.

The store is injected through ExecutionContext rather than held globally,
so each caller decides the scope and lifetime of cached values. MemoryStore
bounds both: entries expire after ``ttl_seconds`` and the least recently
used entry is evicted once ``max_entries`` is reached.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """Async key-value interface for cache nodes."""

    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None on a miss."""
        ...

    async def set(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemoryStore:
    """In-process store with TTL expiry and an LRU size bound.

    Args:
        max_entries: Maximum number of live entries. Must be positive.
        ttl_seconds: Lifetime of an entry, or None for no expiry.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_entries: int = 1024,
        ttl_seconds: float | None = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float | None, Any]] = OrderedDict()

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._entries)

    def _expired(self, expires_at: float | None) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def _purge_expired(self) -> None:
        for key in [k for k, (exp, _) in self._entries.items() if self._expired(exp)]:
            del self._entries[key]

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._expired(expires_at):
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    async def set(self, key: str, value: Any) -> None:
        expires_at = None if self.ttl_seconds is None else self._clock() + self.ttl_seconds
        self._entries[key] = (expires_at, value)
        self._entries.move_to_end(key)
        if len(self._entries) > self.max_entries:
            self._purge_expired()
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def clear(self) -> None:
        self._entries.clear()
