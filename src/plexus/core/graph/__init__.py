"""Graph model: typed nodes, slot-to-slot edges and dependency-ordered execution.

Example:
    >>> graph = Graph("pipeline")
    >>> text = graph.add_node(InputNode("text", InputConfig("hello")))
    >>> upper = graph.add_node(TransformNode("upper", TransformConfig(str.upper)))
    >>> text >> upper
    >>> await graph.execute(ExecutionContext())
"""

from plexus.core.graph.builder import NodeList, WorkflowBuilder
from plexus.core.graph.executor import Executor
from plexus.core.graph.graph import Graph
from plexus.core.graph.nodes import (
    NODE_TYPES,
    CacheConfig,
    CacheNode,
    ConditionConfig,
    ConditionNode,
    Edge,
    ExtractConfig,
    ExtractNode,
    GenerateConfig,
    GenerateNode,
    GraphNode,
    InputConfig,
    InputNode,
    MergeConfig,
    MergeNode,
    NodeKind,
    OutputConfig,
    OutputNode,
    TemplateConfig,
    TemplateNode,
    TransformConfig,
    TransformNode,
)
from plexus.core.graph.serialization import graph_from_dict, graph_to_dict, load_graph
from plexus.core.graph.templates import TEMPLATES

__all__ = [
    "NODE_TYPES",
    "TEMPLATES",
    "CacheConfig",
    "CacheNode",
    "ConditionConfig",
    "ConditionNode",
    "Edge",
    "Executor",
    "ExtractConfig",
    "ExtractNode",
    "GenerateConfig",
    "GenerateNode",
    "Graph",
    "GraphNode",
    "InputConfig",
    "InputNode",
    "MergeConfig",
    "MergeNode",
    "NodeKind",
    "NodeList",
    "OutputConfig",
    "OutputNode",
    "TemplateConfig",
    "TemplateNode",
    "TransformConfig",
    "TransformNode",
    "WorkflowBuilder",
    "graph_from_dict",
    "graph_to_dict",
    "load_graph",
]
