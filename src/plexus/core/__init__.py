"""Core - pure execution logic.

This module contains no knowledge of:
- Servers, clients, or networking beyond the model provider
- How events are transported to a consumer

Architecture:
    graph/      Nodes, edges, graph container, executor, builder, templates
    patterns/   Sequential, parallel, conditional, retry, complex, delayed, human-in-loop
    steps/      Model provider protocol and OpenAI-compatible implementation
    progress    Event kinds, events and the per-run channel
    wire        Server-Sent Events encoding and decoding
    variables   {{placeholder}} resolution over recorded node outputs
    store       Key-value store for cache nodes
    approvals   Reviewer decisions for human-in-loop runs
    context     Per-run ExecutionContext
"""

from plexus.core.approvals import ApprovalDecision, ApprovalInbox
from plexus.core.cancellation import CancellationToken
from plexus.core.context import ExecutionContext
from plexus.core.errors import (
    ApprovalNotPendingError,
    CancellationRequested,
    ChannelClosedError,
    ConfigurationError,
    CyclicGraphError,
    GraphMembershipError,
    MalformedEventError,
    PlexusError,
    StepFailure,
)
from plexus.core.graph import Graph, WorkflowBuilder
from plexus.core.patterns import WorkflowResult, get_pattern
from plexus.core.progress import EventKind, ProgressChannel, ProgressEvent
from plexus.core.store import KeyValueStore, MemoryStore
from plexus.core.usage import ResourceUsage

__all__ = [
    "ApprovalDecision",
    "ApprovalInbox",
    "ApprovalNotPendingError",
    "CancellationRequested",
    "CancellationToken",
    "ChannelClosedError",
    "ConfigurationError",
    "CyclicGraphError",
    "EventKind",
    "ExecutionContext",
    "Graph",
    "GraphMembershipError",
    "KeyValueStore",
    "MalformedEventError",
    "MemoryStore",
    "PlexusError",
    "ProgressChannel",
    "ProgressEvent",
    "ResourceUsage",
    "StepFailure",
    "WorkflowBuilder",
    "WorkflowResult",
    "get_pattern",
]
