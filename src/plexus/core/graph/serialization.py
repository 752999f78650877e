"""Graph import and export.

Serialized form::

    {
      "id": "content-pipeline",
      "nodes": [{"id": "text", "kind": "input", "config": {"data": "..."}}, ...],
      "connections": [{"from": "text", "to": "summarize",
                       "outputSlot": "default", "inputSlot": "prompt"}, ...]
    }

Configuration keys are the fields of each kind's config record. Functions
(transform ``fn``, condition ``predicate``) cannot be serialized; pass them
back on import through ``functions``, keyed by node id.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel

from plexus.core.errors import ConfigurationError
from plexus.core.graph.graph import Graph
from plexus.core.graph.nodes import (
    DEFAULT_SLOT,
    NODE_TYPES,
    ConditionConfig,
    GraphNode,
    NodeKind,
    TransformConfig,
)

logger = logging.getLogger(__name__)

_FUNCTION_FIELDS = {TransformConfig: "fn", ConditionConfig: "predicate"}


def _config_to_dict(config: Any) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for f in dataclasses.fields(config):
        value = getattr(config, f.name)
        if value is None or (callable(value) and not isinstance(value, type)):
            continue
        if isinstance(value, type) and issubclass(value, BaseModel):
            value = value.model_json_schema()
        data[f.name] = value
    return data


def node_to_dict(node: GraphNode) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": node.id,
        "kind": node.kind.value,
        "config": _config_to_dict(node.config),
    }
    if node.name:
        record["name"] = node.name
    if node.label:
        record["label"] = node.label
    return record


def graph_to_dict(graph: Graph) -> dict[str, Any]:
    return {
        "id": graph.id,
        "nodes": [node_to_dict(node) for node in graph],
        "connections": [edge.to_dict() for edge in graph.edges],
    }


def node_from_dict(
    record: Mapping[str, Any],
    functions: Mapping[str, Callable[..., Any]] | None = None,
) -> GraphNode:
    """Build a node from its serialized record.

    Raises:
        ConfigurationError: If the record has no id or an unknown kind.
    """
    node_id = record.get("id")
    if not node_id:
        raise ConfigurationError(f"Node record has no id: {dict(record)}")
    kind_value = record.get("kind", record.get("type"))
    try:
        kind = NodeKind(kind_value)
    except ValueError:
        raise ConfigurationError(f"Node '{node_id}' has unknown kind {kind_value!r}") from None

    node_cls = NODE_TYPES[kind]
    config_cls = node_cls.config_type
    known = {f.name for f in dataclasses.fields(config_cls)}
    raw = dict(record.get("config") or {})
    unknown = set(raw) - known
    if unknown:
        logger.warning("Ignoring unknown config keys for node '%s': %s", node_id, sorted(unknown))

    kwargs = {k: v for k, v in raw.items() if k in known}
    fn_field = _FUNCTION_FIELDS.get(config_cls)
    if fn_field and functions and node_id in functions:
        kwargs[fn_field] = functions[node_id]

    try:
        config = config_cls(**kwargs)
    except TypeError as e:
        raise ConfigurationError(f"Invalid config for node '{node_id}': {e}") from e
    return node_cls(node_id, config, name=record.get("name"), label=record.get("label"))


def graph_from_dict(
    data: Mapping[str, Any],
    functions: Mapping[str, Callable[..., Any]] | None = None,
) -> Graph:
    """Rebuild a graph from ``graph_to_dict`` output.

    Args:
        data: Serialized graph.
        functions: Transform and condition functions keyed by node id.

    Raises:
        ConfigurationError: On malformed records or unknown node references.
    """
    graph = Graph(data.get("id") or "graph")
    for record in data.get("nodes") or []:
        graph.add_node(node_from_dict(record, functions))

    for conn in data.get("connections") or []:
        try:
            graph.connect(
                conn["from"],
                conn["to"],
                conn.get("outputSlot", DEFAULT_SLOT),
                conn.get("inputSlot", DEFAULT_SLOT),
            )
        except KeyError as e:
            raise ConfigurationError(f"Connection record is missing {e}: {dict(conn)}") from e
    return graph


def load_graph(
    path: str | Path,
    functions: Mapping[str, Callable[..., Any]] | None = None,
) -> Graph:
    """Load a serialized graph from a JSON or YAML file."""
    path = Path(path)
    text = path.read_text()
    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} does not contain a graph object")
    return graph_from_dict(data, functions)
