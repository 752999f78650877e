"""Graph - an owned collection of nodes and the edges between them."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from plexus.core.errors import ConfigurationError, CyclicGraphError, GraphMembershipError
from plexus.core.graph.executor import Executor
from plexus.core.graph.nodes import DEFAULT_SLOT, Edge, GraphNode, NodeKind
from plexus.core.run_logging import log_complete, log_error, log_start
from plexus.core.variables import NodeOutput, available_variables

if TYPE_CHECKING:
    from plexus.core.context import ExecutionContext

logger = logging.getLogger(__name__)


class Graph:
    """Directed acyclic graph of nodes.

    Nodes are added with ``add_node`` and wired with ``connect``; edges are
    recorded on both endpoints. ``execute`` runs every node once in
    dependency order and returns each node's result.

    Args:
        id: Identifier used in logs and serialized form.

    Example:
        >>> graph = Graph("pipeline")
        >>> text = graph.add_node(InputNode("text", InputConfig("Hello")))
        >>> upper = graph.add_node(TransformNode("upper", TransformConfig(str.upper)))
        >>> out = graph.add_node(OutputNode("out"))
        >>> text >> upper >> out
        >>> results = await graph.execute(ExecutionContext())
        >>> results["out"]
        'HELLO'
    """

    def __init__(self, id: str = "graph") -> None:
        if not id or not id.strip():
            raise ValueError("graph id cannot be empty")
        self.id = id
        self._nodes: dict[str, GraphNode] = {}

    def __repr__(self) -> str:
        return f"Graph(id={self.id!r}, nodes={len(self._nodes)})"

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[GraphNode]:
        return iter(self._nodes.values())

    def __contains__(self, node: object) -> bool:
        if isinstance(node, GraphNode):
            return self._nodes.get(node.id) is node
        return node in self._nodes

    def __getitem__(self, node_id: str) -> GraphNode:
        return self._nodes[node_id]

    @property
    def nodes(self) -> dict[str, GraphNode]:
        """Nodes keyed by id, in insertion order."""
        return dict(self._nodes)

    @property
    def edges(self) -> list[Edge]:
        return [edge for node in self._nodes.values() for edge in node.outgoing_edges]

    def add_node(self, node: GraphNode) -> GraphNode:
        """Add ``node`` and take ownership of it.

        Raises:
            ConfigurationError: If the id is already used in this graph.
            GraphMembershipError: If the node belongs to another graph.
        """
        if node.graph is not None and node.graph is not self:
            raise GraphMembershipError(
                f"Node '{node.id}' already belongs to graph '{node.graph.id}'"
            )
        existing = self._nodes.get(node.id)
        if existing is node:
            return node
        if existing is not None:
            raise ConfigurationError(f"Node '{node.id}' already exists in graph '{self.id}'")
        node.graph = self
        self._nodes[node.id] = node
        return node

    def _member(self, node: GraphNode | str) -> GraphNode:
        if isinstance(node, str):
            try:
                return self._nodes[node]
            except KeyError:
                raise GraphMembershipError(
                    f"Node '{node}' is not part of graph '{self.id}'"
                ) from None
        if node not in self:
            raise GraphMembershipError(f"Node '{node.id}' is not part of graph '{self.id}'")
        return node

    def connect(
        self,
        source: GraphNode | str,
        target: GraphNode | str,
        output_slot: str = DEFAULT_SLOT,
        input_slot: str = DEFAULT_SLOT,
    ) -> Edge:
        """Wire ``source``'s output slot into ``target``'s input slot.

        A slot that is already wired is rewired to the new source.

        Raises:
            GraphMembershipError: If either node is not part of this graph.
        """
        source_node = self._member(source)
        target_node = self._member(target)
        edge = Edge(source_node, target_node, output_slot, input_slot)
        source_node._attach(edge)
        return edge

    def reset(self) -> None:
        """Clear every cached result so the graph can run again."""
        for node in self._nodes.values():
            node.reset()

    def execution_order(self) -> list[str]:
        """Node ids in the order ``execute`` would run them.

        Raises:
            CyclicGraphError: If the graph contains a cycle.
        """
        return [node.id for node in Executor.plan(self._nodes.values())]

    def validate(self) -> list[str]:
        """Check the graph's structure without running it.

        Returns:
            Problems found; empty when the graph is well formed.
        """
        errors: list[str] = []
        if not self._nodes:
            return ["Graph has no nodes"]

        kinds = {node.kind for node in self._nodes.values()}
        if NodeKind.INPUT not in kinds:
            errors.append("Graph has no input node")
        if NodeKind.OUTPUT not in kinds:
            errors.append("Graph has no output node")

        if len(self._nodes) > 1:
            for node in self._nodes.values():
                if not node.incoming_edges and not node.outgoing_edges:
                    errors.append(f"Node '{node.id}' is not connected")

        try:
            Executor.plan(self._nodes.values())
        except CyclicGraphError as e:
            errors.append(str(e))

        return errors

    async def execute(self, context: ExecutionContext) -> dict[str, Any]:
        """Run every node once, dependencies first.

        Results cached by an earlier run are reused; call ``reset`` first to
        recompute them.

        Returns:
            Map of node id to result for every node.

        Raises:
            CyclicGraphError: If the graph contains a cycle.
            CancellationRequested: If the run is cancelled.
            StepFailure: If a node's step invocable fails.
        """
        start = time.monotonic()
        log_start(logger, context.run_id, "graph_start", graph=self.id, nodes=len(self._nodes))
        try:
            await Executor().run(self._nodes.values(), context)
        except Exception as e:
            log_error(logger, context.run_id, "graph_failed", e, graph=self.id)
            raise
        elapsed = time.monotonic() - start
        log_complete(logger, context.run_id, "graph_complete", elapsed, graph=self.id)
        return {node_id: node.result for node_id, node in self._nodes.items()}

    def outputs(self) -> dict[str, Any]:
        """Results of the graph's output nodes that have executed."""
        return {
            node.id: node.result
            for node in self._nodes.values()
            if node.kind is NodeKind.OUTPUT and node.has_result
        }

    def variable_snapshot(self) -> list[NodeOutput]:
        """Recorded outputs, as seen by the variable resolver."""
        return [
            NodeOutput(node.id, node.result, node.name, node.label)
            for node in self._nodes.values()
            if node.has_result
        ]

    def available_variables(self, node_id: str) -> list[str]:
        """Placeholders that would currently resolve for ``node_id``."""
        node = self._member(node_id)
        return available_variables(node.id, self.variable_snapshot(), node.incoming_edges)

    def to_dict(self) -> dict[str, Any]:
        from plexus.core.graph.serialization import graph_to_dict

        return graph_to_dict(self)
