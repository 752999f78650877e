"""Fluent construction of workflow graphs.

WorkflowBuilder chains nodes, each new node wired to the previous one:

    graph = (
        WorkflowBuilder("content", model="gpt-4o-mini")
        .input("Artificial intelligence is transforming...", id="article")
        .generate("Summarize this: {{input}}", id="summary")
        .extract(KEYWORDS_SCHEMA, id="keywords")
        .output()
        .build()
    )

Nodes can also be wired directly with the >> operator:

    a >> b >> c         # c reads b, b reads a
    a >> [b, c]         # b and c both read a
    NodeList([a, b]) >> merge   # merge reads a on input1 and b on input2
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel

from plexus.core.graph.graph import Graph
from plexus.core.graph.nodes import (
    CacheConfig,
    CacheNode,
    ConditionConfig,
    ConditionNode,
    ExtractConfig,
    ExtractNode,
    GenerateConfig,
    GenerateNode,
    GraphNode,
    InputConfig,
    InputNode,
    MergeConfig,
    MergeNode,
    MergeStrategy,
    NodeKind,
    OutputNode,
    TemplateConfig,
    TemplateNode,
    TransformConfig,
    TransformNode,
)


def merge_slot(index: int) -> str:
    """Input slot name for the ``index``-th (0-based) merge source."""
    return f"input{index + 1}"


class NodeList(list[GraphNode]):
    """List of nodes supporting ``[a, b] >> target`` fan-in.

    Each source gets its own input slot on the target (input1, input2, ...),
    so a merge node sees every value.
    """

    def __rshift__(self, other: GraphNode) -> GraphNode:
        if not isinstance(other, GraphNode):
            return NotImplemented
        for index, source in enumerate(self):
            source.connect_to(other, input_slot=merge_slot(index))
        return other


class WorkflowBuilder:
    """Chain-style graph builder.

    Each method adds one node, wires the current node into it and makes it
    current. Ids default to ``<kind>-<n>``.

    Args:
        graph_id: Id of the graph being built.
        model: Default model for generate and extract nodes that do not set one.
    """

    def __init__(self, graph_id: str = "workflow", model: str | None = None) -> None:
        self.graph = Graph(graph_id)
        self.model = model
        self._current: GraphNode | None = None
        self._counts: dict[NodeKind, int] = {}

    @property
    def current(self) -> GraphNode | None:
        return self._current

    def _next_id(self, kind: NodeKind) -> str:
        while True:
            self._counts[kind] = self._counts.get(kind, 0) + 1
            candidate = f"{kind.value}-{self._counts[kind]}"
            if candidate not in self.graph:
                return candidate

    def _add(self, node: GraphNode, connect: bool = True) -> WorkflowBuilder:
        self.graph.add_node(node)
        if connect and self._current is not None:
            self._current.connect_to(node)
        self._current = node
        return self

    def at(self, node_id: str) -> WorkflowBuilder:
        """Continue the chain from an existing node (for branches)."""
        self._current = self.graph[node_id]
        return self

    def input(
        self, data: Any, *, id: str | None = None, name: str | None = None
    ) -> WorkflowBuilder:
        """Add an input node. Input nodes start a new chain."""
        node = InputNode(id or self._next_id(NodeKind.INPUT), InputConfig(data), name=name)
        return self._add(node, connect=False)

    def generate(
        self,
        prompt: str | None = None,
        *,
        id: str | None = None,
        name: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        stream: bool = False,
    ) -> WorkflowBuilder:
        config = GenerateConfig(
            prompt=prompt,
            model=model or self.model,
            temperature=temperature,
            system_prompt=system_prompt,
            max_tokens=max_tokens,
            stream=stream,
        )
        return self._add(GenerateNode(id or self._next_id(NodeKind.GENERATE), config, name=name))

    def extract(
        self,
        schema: dict[str, Any] | type[BaseModel],
        prompt: str | None = None,
        *,
        id: str | None = None,
        name: str | None = None,
        schema_name: str = "result",
        model: str | None = None,
        temperature: float | None = None,
    ) -> WorkflowBuilder:
        config = ExtractConfig(
            schema=schema,
            prompt=prompt,
            schema_name=schema_name,
            model=model or self.model,
            temperature=temperature,
        )
        return self._add(ExtractNode(id or self._next_id(NodeKind.EXTRACT), config, name=name))

    def transform(
        self, fn: Callable[[Any], Any], *, id: str | None = None, name: str | None = None
    ) -> WorkflowBuilder:
        node_id = id or self._next_id(NodeKind.TRANSFORM)
        node = TransformNode(node_id, TransformConfig(fn), name=name)
        return self._add(node)

    def template(
        self, template: str, *, id: str | None = None, name: str | None = None
    ) -> WorkflowBuilder:
        node = TemplateNode(
            id or self._next_id(NodeKind.TEMPLATE), TemplateConfig(template), name=name
        )
        return self._add(node)

    def condition(
        self,
        predicate: Callable[[Any], Any] | None = None,
        *,
        id: str | None = None,
        name: str | None = None,
    ) -> WorkflowBuilder:
        node = ConditionNode(
            id or self._next_id(NodeKind.CONDITION), ConditionConfig(predicate), name=name
        )
        return self._add(node)

    def cache(
        self,
        key: str,
        operation: str = "get",
        value: str | None = None,
        *,
        write_if_miss: bool = False,
        id: str | None = None,
        name: str | None = None,
    ) -> WorkflowBuilder:
        config = CacheConfig(
            key=key,
            operation=operation,  # type: ignore[arg-type]
            value=value,
            write_if_miss=write_if_miss,
        )
        return self._add(CacheNode(id or self._next_id(NodeKind.CACHE), config, name=name))

    def merge(
        self,
        *sources: str,
        strategy: MergeStrategy = "object",
        separator: str = "\n\n",
        id: str | None = None,
        name: str | None = None,
    ) -> WorkflowBuilder:
        """Add a merge node reading ``sources`` (node ids) on input1, input2, ...

        With no sources, the current node is merged alone.
        """
        node = MergeNode(
            id or self._next_id(NodeKind.MERGE),
            MergeConfig(strategy=strategy, separator=separator),
            name=name,
        )
        self.graph.add_node(node)
        source_nodes = [self.graph[s] for s in sources]
        if not source_nodes and self._current is not None:
            source_nodes = [self._current]
        NodeList(source_nodes) >> node
        self._current = node
        return self

    def output(self, *, id: str | None = None, name: str | None = None) -> WorkflowBuilder:
        return self._add(OutputNode(id or self._next_id(NodeKind.OUTPUT), name=name))

    def build(self) -> Graph:
        return self.graph
