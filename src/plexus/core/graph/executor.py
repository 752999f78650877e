"""Dependency-ordered, memoized graph execution.

The executor collects every node reachable upstream of the requested
roots and orders them with graphlib, so a cycle is reported as
CyclicGraphError before any node runs. Nodes that already hold a result
are treated as leaves. Every node is executed at most once, so a node
reached through several paths (a diamond) runs once and all dependents
see the same cached result.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from graphlib import CycleError, TopologicalSorter
from typing import TYPE_CHECKING, Any

from plexus.core.errors import CyclicGraphError
from plexus.core.run_logging import log_complete, log_start

if TYPE_CHECKING:
    from plexus.core.context import ExecutionContext
    from plexus.core.graph.nodes import GraphNode

logger = logging.getLogger(__name__)


class Executor:
    """Runs nodes in dependency order.

    Example:
        >>> order = Executor.plan(graph.nodes.values())
        >>> results = await Executor().run(graph.nodes.values(), context)
    """

    @staticmethod
    def plan(roots: Iterable[GraphNode]) -> list[GraphNode]:
        """Order ``roots`` and everything they depend on, dependencies first.

        Raises:
            CyclicGraphError: If a node depends on itself transitively.
        """
        nodes: dict[str, GraphNode] = {}
        depends_on: dict[str, list[str]] = {}
        pending = list(roots)
        while pending:
            node = pending.pop()
            if node.id in nodes:
                continue
            nodes[node.id] = node
            upstream = [] if node.has_result else node.upstream()
            depends_on[node.id] = [dep.id for dep in upstream]
            pending.extend(upstream)

        try:
            order = list(TopologicalSorter(depends_on).static_order())
        except CycleError as e:
            # the reported path follows data flow: each node feeds the next
            raise CyclicGraphError(e.args[1]) from e
        return [nodes[node_id] for node_id in order]

    async def run(self, roots: Iterable[GraphNode], context: ExecutionContext) -> dict[str, Any]:
        """Execute ``roots`` and their dependencies.

        Returns:
            Map of node id to result for every node visited.

        Raises:
            CyclicGraphError: If the nodes contain a cycle.
            CancellationRequested: If the run is cancelled between nodes.
            StepFailure: Propagated unchanged from the failing node.
        """
        order = self.plan(roots)
        start = time.monotonic()
        log_start(logger, context.run_id, "execute_start", nodes=len(order))

        for node in order:
            context.check_cancelled()
            await node.execute(context)

        log_complete(
            logger, context.run_id, "execute_complete", time.monotonic() - start, nodes=len(order)
        )
        return {node.id: node.result for node in order}
