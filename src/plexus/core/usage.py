"""Resource tracking for a run.

ResourceUsage accumulates what a run consumed: node executions, step
invocations and token counts reported by providers. Patterns and graphs
attach a snapshot to their WorkflowResult.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class ResourceUsage:
    """Tracks resource consumption during a run.

    Elapsed time uses the monotonic clock; ``start_time`` is for display only.

    Attributes:
        node_executions: Graph nodes executed.
        step_calls: Calls made into step invocables.
        prompt_tokens: Prompt tokens reported by providers.
        completion_tokens: Completion tokens reported by providers.
        start_time: When the run started.
    """

    node_executions: int = 0
    step_calls: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    start_time: datetime = field(default_factory=datetime.now)
    _start_monotonic: float = field(default_factory=time.monotonic, repr=False)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._start_monotonic

    def add_node_execution(self) -> None:
        self.node_executions += 1

    def add_step_call(self, usage: dict[str, Any] | None = None) -> None:
        """Count one step call and add the provider's reported token usage."""
        self.step_calls += 1
        if not usage:
            return
        self.prompt_tokens += int(usage.get("promptTokens") or 0)
        self.completion_tokens += int(usage.get("completionTokens") or 0)

    def to_metadata(self) -> dict[str, Any]:
        """Snapshot in the shape attached to WorkflowResult.metadata."""
        return {
            "nodeExecutions": self.node_executions,
            "stepCalls": self.step_calls,
            "totalTokens": self.total_tokens,
            "durationMs": int(self.elapsed_seconds * 1000),
        }
