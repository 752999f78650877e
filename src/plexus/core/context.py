"""ExecutionContext - per-run state passed through graph and pattern execution.

ExecutionContext carries everything a node or pattern needs at run time:
- The progress channel events are written to
- The cancellation token checked before every step call and emission
- The model provider (step invocables) and default model
- The key-value store used by cache nodes
- The approval source human-in-loop runs wait on
- Resource usage tracking for the run

It is owned by the caller, shared by reference with every node execution
and never persisted.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, TypeVar

from plexus.core.errors import ConfigurationError
from plexus.core.run_logging import generate_run_id
from plexus.core.usage import ResourceUsage

if TYPE_CHECKING:
    from plexus.core.approvals import ApprovalSource
    from plexus.core.cancellation import CancellationToken
    from plexus.core.progress import EventKind, ProgressChannel, ProgressEvent
    from plexus.core.steps.base import ModelProvider
    from plexus.core.store import KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ExecutionContext:
    """Context passed through a run.

    Use the with_* methods to derive modified copies; copies share the
    same usage tracker, so counts from every part of a run add up.

    Attributes:
        provider: Step invocables for generation and extraction.
        channel: Progress channel for this run (optional).
        cancellation: Token for cooperative cancellation (optional).
        store: Key-value store for cache nodes (optional).
        model: Default model identifier when a step does not name one.
        run_id: Identifier used in logs.
        usage: Resource usage for the run.
        approvals: Source of reviewer decisions for human-in-loop runs (optional).

    Example:
        >>> context = ExecutionContext(provider=provider, model="gpt-4o-mini")
        >>> results = await graph.execute(context)
    """

    provider: ModelProvider | None = None
    channel: ProgressChannel | None = None
    cancellation: CancellationToken | None = None
    store: KeyValueStore | None = None
    model: str | None = None
    run_id: str = field(default_factory=generate_run_id)
    usage: ResourceUsage = field(default_factory=ResourceUsage)
    approvals: ApprovalSource | None = None

    def with_channel(self, channel: ProgressChannel | None) -> ExecutionContext:
        return replace(self, channel=channel)

    def with_cancellation(self, cancellation: CancellationToken | None) -> ExecutionContext:
        return replace(self, cancellation=cancellation)

    def with_model(self, model: str | None) -> ExecutionContext:
        return replace(self, model=model)

    @property
    def is_cancelled(self) -> bool:
        return self.cancellation is not None and self.cancellation.is_cancelled

    def check_cancelled(self) -> None:
        """Raise CancellationRequested if the run was cancelled."""
        if self.cancellation is not None:
            self.cancellation.check()

    async def emit(
        self, kind: EventKind | str, payload: Mapping[str, Any] | None = None
    ) -> ProgressEvent | None:
        """Emit a progress event if a channel is attached.

        Raises:
            CancellationRequested: If the run was cancelled; nothing is emitted.
        """
        self.check_cancelled()
        if self.channel is None:
            return None
        return await self.channel.emit(kind, payload, guard=self.check_cancelled)

    async def sleep(self, delay: float) -> None:
        """Timed wait that ends early, raising, when the run is cancelled."""
        if self.cancellation is not None:
            await self.cancellation.sleep(delay)
        else:
            await asyncio.sleep(delay)

    async def wait_for(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable``; raises CancellationRequested if the run is cancelled first."""
        if self.cancellation is None:
            return await awaitable
        return await self.cancellation.run_until_cancelled(awaitable)

    def require_provider(self) -> ModelProvider:
        if self.provider is None:
            raise ConfigurationError("No model provider configured for this run")
        return self.provider

    def resolve_model(self, override: str | None = None) -> str:
        """Pick the step's own model, else the run default.

        Raises:
            ConfigurationError: If neither is set.
        """
        model = override or self.model
        if not model:
            raise ConfigurationError("No model selected for this step")
        return model
