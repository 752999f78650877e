"""Variable substitution in step configuration.

Templates may reference the output of other nodes:

    {{input}}             output of the first node wired into the current node
    {{summarize}}         output of the node whose id, name or label matches
    {{summarize.text}}    one property of that node's structured output
    {{summarize.data}}    the whole output, serialized

Names are matched case-sensitively first, then case-insensitively. Strings
are substituted as-is and structured values as JSON. A placeholder that
does not resolve is left in the text unchanged, so a partially wired graph
still renders.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

INPUT_PATTERN = re.compile(r"\{\{\s*input\s*\}\}")
NODE_PATTERN = re.compile(r"\{\{\s*([a-zA-Z0-9\-_ ]+?)\s*\}\}")
PROPERTY_PATTERN = re.compile(r"\{\{\s*([a-zA-Z0-9\-_ ]+?)\.([a-zA-Z0-9\-_]+)\s*\}\}")

WHOLE_OUTPUT = "data"


@dataclass(frozen=True)
class NodeOutput:
    """A node's recorded output as seen by the resolver."""

    id: str
    output: Any
    name: str | None = None
    label: str | None = None

    def matches(self, reference: str, case_sensitive: bool = True) -> bool:
        candidates = [c for c in (self.id, self.name, self.label) if c]
        if case_sensitive:
            return reference in candidates
        lowered = reference.lower()
        return any(c.lower() == lowered for c in candidates)


class EdgeLike(Protocol):
    @property
    def source_id(self) -> str: ...

    @property
    def target_id(self) -> str: ...


def stringify(value: Any) -> str:
    """Render a value for substitution into text."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, default=str)


def _find(reference: str, outputs: Sequence[NodeOutput]) -> NodeOutput | None:
    for case_sensitive in (True, False):
        for candidate in outputs:
            if candidate.output is not None and candidate.matches(reference, case_sensitive):
                return candidate
    return None


def _index(value: Any, prop: str) -> tuple[bool, Any]:
    if prop == WHOLE_OUTPUT:
        return True, value
    if isinstance(value, dict) and prop in value:
        return True, value[prop]
    if isinstance(value, (list, tuple)) and prop.isdigit() and int(prop) < len(value):
        return True, value[int(prop)]
    return False, None


def resolve(
    template: str,
    current_node_id: str,
    outputs: Sequence[NodeOutput],
    edges: Sequence[EdgeLike] = (),
) -> str:
    """Substitute ``{{...}}`` placeholders in ``template``.

    Args:
        template: Text containing placeholders.
        current_node_id: Node whose configuration is being resolved.
        outputs: Snapshot of recorded node outputs.
        edges: Edges of the graph; only those targeting the current node
            are used, in order, to resolve ``{{input}}``.

    Returns:
        The substituted text. Never raises for unresolved names.
    """
    if not template or "{{" not in template:
        return template

    by_id = {o.id: o for o in outputs}
    result = template

    upstream = [e.source_id for e in edges if e.target_id == current_node_id]
    if upstream:
        first = by_id.get(upstream[0])
        if first is not None and first.output is not None:
            rendered = stringify(first.output)
            result = INPUT_PATTERN.sub(lambda _m: rendered, result)

    def _replace_node(match: re.Match[str]) -> str:
        found = _find(match.group(1).strip(), outputs)
        return stringify(found.output) if found is not None else match.group(0)

    def _replace_property(match: re.Match[str]) -> str:
        found = _find(match.group(1).strip(), outputs)
        if found is None:
            return match.group(0)
        ok, value = _index(found.output, match.group(2))
        return stringify(value) if ok and value is not None else match.group(0)

    result = NODE_PATTERN.sub(_replace_node, result)
    return PROPERTY_PATTERN.sub(_replace_property, result)


def available_variables(
    current_node_id: str,
    outputs: Sequence[NodeOutput],
    edges: Sequence[EdgeLike] = (),
) -> list[str]:
    """List placeholders that would resolve for the current node.

    Used by editors and the CLI to hint what a prompt may reference.
    """
    variables: list[str] = []
    if any(e.target_id == current_node_id for e in edges):
        variables.append("{{input}}")
    for candidate in outputs:
        if candidate.id == current_node_id or candidate.output is None:
            continue
        reference = candidate.name or candidate.label or candidate.id
        variables.append(f"{{{{{reference}}}}}")
        if isinstance(candidate.output, dict):
            variables.extend(f"{{{{{reference}.{key}}}}}" for key in candidate.output)
    return variables
