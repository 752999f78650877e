"""Orchestration patterns.

Fixed procedures over a model provider, each reporting progress on the
run's channel:
- Sequential: steps in order, each fed the previous output
- Parallel: one input fanned out to several tasks at once
- Conditional: a predicate picks one of two branches
- Retry: one task re-attempted with exponential backoff
- Complex: two analyses, then a synthesis
- Delayed: one task after a cancellable wait
- Human-in-loop: a draft held for a reviewer to approve, revise or reject
"""

from plexus.core.patterns.base import Pattern, StepSpec, WorkflowResult, run_step
from plexus.core.patterns.complex import ComplexConfig, ComplexPattern
from plexus.core.patterns.conditional import ConditionalConfig, ConditionalPattern
from plexus.core.patterns.delayed import DelayedConfig, DelayedPattern
from plexus.core.patterns.human_in_loop import HumanInLoopConfig, HumanInLoopPattern
from plexus.core.patterns.parallel import ParallelConfig, ParallelPattern
from plexus.core.patterns.registry import (
    PATTERNS,
    GraphPattern,
    RunRequest,
    get_pattern,
    list_patterns,
    run_request,
)
from plexus.core.patterns.retry import RetryConfig, RetryPattern
from plexus.core.patterns.sequential import SequentialConfig, SequentialPattern

__all__ = [
    "PATTERNS",
    "ComplexConfig",
    "ComplexPattern",
    "ConditionalConfig",
    "ConditionalPattern",
    "DelayedConfig",
    "DelayedPattern",
    "GraphPattern",
    "HumanInLoopConfig",
    "HumanInLoopPattern",
    "ParallelConfig",
    "ParallelPattern",
    "Pattern",
    "RetryConfig",
    "RetryPattern",
    "RunRequest",
    "SequentialConfig",
    "SequentialPattern",
    "StepSpec",
    "WorkflowResult",
    "get_pattern",
    "list_patterns",
    "run_request",
    "run_step",
]
