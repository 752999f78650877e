"""Plexus - graph execution engine and orchestration patterns for LLM workflows.

Plexus runs model-backed workflows two ways: as a directed acyclic graph
of typed nodes, or as one of seven fixed orchestration patterns. Every run
reports its progress as an ordered stream of events.

Layers:
    core/       Pure logic (graph, nodes, patterns, progress, providers)
    server/     aiohttp app streaming runs as Server-Sent Events
    frontends/  User interfaces (CLI, SDK)

Key Concepts:
    Graph:      Nodes wired by slot-to-slot edges, run dependencies first
    Pattern:    Fixed procedure (sequential, parallel, retry, human-in-loop...)
    Channel:    Ordered progress events for one run
    Provider:   Text generation, streaming and structured extraction

Quick Start (graph):
    >>> from plexus import ExecutionContext, WorkflowBuilder
    >>> from plexus.core.steps import OpenAICompatibleProvider
    >>>
    >>> async with OpenAICompatibleProvider() as provider:
    ...     graph = (
    ...         WorkflowBuilder("demo")
    ...         .input("Plexus runs graphs.", id="text")
    ...         .generate(prompt="Summarize: {{input}}", id="summary")
    ...         .output()
    ...         .build()
    ...     )
    ...     context = ExecutionContext(provider=provider, model="gpt-4o-mini")
    ...     results = await graph.execute(context)

Quick Start (pattern):
    >>> from plexus import ExecutionContext, ProgressChannel, get_pattern
    >>>
    >>> channel = ProgressChannel()
    >>> context = ExecutionContext(provider=provider, channel=channel, model="gpt-4o-mini")
    >>> result = await get_pattern("sequential").run("Some long text...", context)
"""

from plexus.__version__ import __version__
from plexus.core import (
    CancellationRequested,
    CancellationToken,
    ConfigurationError,
    CyclicGraphError,
    EventKind,
    ExecutionContext,
    Graph,
    MemoryStore,
    PlexusError,
    ProgressChannel,
    ProgressEvent,
    StepFailure,
    WorkflowBuilder,
    WorkflowResult,
    get_pattern,
)

__all__ = [
    "__version__",
    "CancellationRequested",
    "CancellationToken",
    "ConfigurationError",
    "CyclicGraphError",
    "EventKind",
    "ExecutionContext",
    "Graph",
    "MemoryStore",
    "PlexusError",
    "ProgressChannel",
    "ProgressEvent",
    "StepFailure",
    "WorkflowBuilder",
    "WorkflowResult",
    "get_pattern",
]
