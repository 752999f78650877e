"""Node kinds for workflow graphs.

Every node has an id, a kind, an immutable configuration record, named
input slots (each fed by one upstream node) and named output slots (each
feeding any number of downstream slots). ``execute`` is memoized: once a
node has a result it is returned as-is until the graph is reset.

Kinds:
    input      fixed payload supplied at construction
    generate   text generation through the provider
    extract    structured extraction against a schema
    transform  caller-supplied function over the input
    merge      combine every wired input (object / array / concat)
    condition  predicate over the input, {conditionMet, data}
    template   fill {{key}} or {{input}} placeholders from the input
    output     forward the input as a graph result
    cache      read or write the context's key-value store
"""

from __future__ import annotations

import inspect
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Literal

from pydantic import BaseModel

from plexus.core.errors import (
    CancellationRequested,
    ConfigurationError,
    GraphMembershipError,
)
from plexus.core.progress import EventKind
from plexus.core.run_logging import log_complete, log_error, log_start
from plexus.core.steps.base import ExtractRequest, TextRequest
from plexus.core.variables import NodeOutput, resolve, stringify

if TYPE_CHECKING:
    from plexus.core.context import ExecutionContext
    from plexus.core.graph.graph import Graph

logger = logging.getLogger(__name__)


class NodeKind(str, Enum):
    INPUT = "input"
    GENERATE = "generate"
    EXTRACT = "extract"
    TRANSFORM = "transform"
    MERGE = "merge"
    CONDITION = "condition"
    TEMPLATE = "template"
    OUTPUT = "output"
    CACHE = "cache"


DEFAULT_SLOT = "default"

_UNSET: Any = object()


def text_of(value: Any) -> str:
    """Text view of a node result. Generation results contribute their text."""
    if isinstance(value, dict) and isinstance(value.get("text"), str):
        return value["text"]
    return stringify(value)


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass(frozen=True)
class Edge:
    """A (source, source_slot) -> (target, target_slot) connection."""

    source: GraphNode
    target: GraphNode
    source_slot: str = DEFAULT_SLOT
    target_slot: str = DEFAULT_SLOT

    @property
    def source_id(self) -> str:
        return self.source.id

    @property
    def target_id(self) -> str:
        return self.target.id

    def to_dict(self) -> dict[str, str]:
        return {
            "from": self.source.id,
            "to": self.target.id,
            "outputSlot": self.source_slot,
            "inputSlot": self.target_slot,
        }


# ---------------------------------------------------------------------------
# Configuration records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InputConfig:
    data: Any = None


@dataclass(frozen=True)
class GenerateConfig:
    """Text generation settings. ``prompt`` may reference other nodes."""

    prompt: str | None = None
    model: str | None = None
    temperature: float | None = None
    system_prompt: str | None = None
    max_tokens: int | None = None
    stream: bool = False


@dataclass(frozen=True)
class ExtractConfig:
    schema: dict[str, Any] | type[BaseModel] | None = None
    prompt: str | None = None
    schema_name: str = "result"
    model: str | None = None
    temperature: float | None = None
    system_prompt: str | None = None


@dataclass(frozen=True)
class TransformConfig:
    fn: Callable[[Any], Any] | None = None


MergeStrategy = Literal["object", "array", "concat"]


@dataclass(frozen=True)
class MergeConfig:
    strategy: MergeStrategy = "object"
    separator: str = "\n\n"

    def __post_init__(self) -> None:
        if self.strategy not in ("object", "array", "concat"):
            raise ConfigurationError(f"Unknown merge strategy: {self.strategy!r}")


@dataclass(frozen=True)
class ConditionConfig:
    predicate: Callable[[Any], Any] | None = None


@dataclass(frozen=True)
class TemplateConfig:
    template: str = ""


@dataclass(frozen=True)
class OutputConfig:
    pass


@dataclass(frozen=True)
class CacheConfig:
    """Cache read/write. ``key`` and ``value`` may reference other nodes."""

    key: str = ""
    operation: Literal["get", "set"] = "get"
    value: str | None = None
    write_if_miss: bool = False

    def __post_init__(self) -> None:
        if self.operation not in ("get", "set"):
            raise ConfigurationError(f"Unknown cache operation: {self.operation!r}")


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


class GraphNode(ABC):
    """Base class for graph nodes.

    Subclasses set ``kind`` and ``config_type`` and implement ``evaluate``.
    ``execute`` wraps it with memoization, cancellation checks, usage
    counting and logging.

    Args:
        id: Identifier, unique within a graph.
        config: Configuration record of the node's ``config_type``.
        name: Optional display name usable in ``{{name}}`` references.
        label: Optional label usable in ``{{label}}`` references.
    """

    kind: ClassVar[NodeKind]
    config_type: ClassVar[type]
    default_input_slot: ClassVar[str] = DEFAULT_SLOT

    def __init__(
        self,
        id: str,
        config: Any = None,
        *,
        name: str | None = None,
        label: str | None = None,
    ) -> None:
        if not id or not id.strip():
            raise ValueError("node id cannot be empty")
        if config is None:
            config = self.config_type()
        if not isinstance(config, self.config_type):
            raise TypeError(
                f"{type(self).__name__} expects {self.config_type.__name__}, "
                f"got {type(config).__name__}"
            )
        self.id = id
        self.name = name
        self.label = label
        self.config = config
        self.graph: Graph | None = None
        self._incoming: dict[str, Edge] = {}
        self._outgoing: dict[str, list[Edge]] = {}
        self._result: Any = _UNSET

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"

    # -- structure ---------------------------------------------------------

    @property
    def inputs(self) -> dict[str, GraphNode]:
        """Input slot -> node supplying it, in connection order."""
        return {slot: edge.source for slot, edge in self._incoming.items()}

    @property
    def outputs(self) -> dict[str, list[tuple[GraphNode, str]]]:
        """Output slot -> downstream (node, slot) pairs."""
        return {
            slot: [(edge.target, edge.target_slot) for edge in edges]
            for slot, edges in self._outgoing.items()
        }

    @property
    def incoming_edges(self) -> list[Edge]:
        return list(self._incoming.values())

    @property
    def outgoing_edges(self) -> list[Edge]:
        return [edge for edges in self._outgoing.values() for edge in edges]

    def upstream(self) -> list[GraphNode]:
        """Distinct nodes wired into this node, in connection order."""
        seen: dict[str, GraphNode] = {}
        for edge in self._incoming.values():
            seen.setdefault(edge.source.id, edge.source)
        return list(seen.values())

    def _attach(self, edge: Edge) -> None:
        """Record ``edge`` on both ends, replacing any edge already on the input slot."""
        previous = edge.target._incoming.get(edge.target_slot)
        if previous is not None:
            previous.source._outgoing[previous.source_slot].remove(previous)
        edge.target._incoming[edge.target_slot] = edge
        edge.source._outgoing.setdefault(edge.source_slot, []).append(edge)

    def connect_to(
        self,
        target: GraphNode,
        output_slot: str = DEFAULT_SLOT,
        input_slot: str | None = None,
    ) -> Edge:
        """Connect this node to ``target`` within the owning graph."""
        if self.graph is None:
            raise GraphMembershipError(f"Node '{self.id}' does not belong to a graph")
        return self.graph.connect(
            self, target, output_slot, input_slot or target.default_input_slot
        )

    def __rshift__(self, other: GraphNode | Sequence[GraphNode]) -> Any:
        """``a >> b`` wires a into b's default input; ``a >> [b, c]`` fans out."""
        if isinstance(other, GraphNode):
            self.connect_to(other)
            return other
        if isinstance(other, (list, tuple)):
            for target in other:
                self.connect_to(target)
            return other
        return NotImplemented

    # -- results -----------------------------------------------------------

    @property
    def has_result(self) -> bool:
        return self._result is not _UNSET

    @property
    def result(self) -> Any:
        """Cached result.

        Raises:
            RuntimeError: If the node has not executed yet.
        """
        if self._result is _UNSET:
            raise RuntimeError(f"Node '{self.id}' has not been executed")
        return self._result

    def reset(self) -> None:
        self._result = _UNSET

    # -- execution ---------------------------------------------------------

    async def get_input(self, context: ExecutionContext, slot: str = DEFAULT_SLOT) -> Any:
        """Value wired to ``slot``, executing the supplying node first if needed.

        Returns None for an unwired slot.
        """
        edge = self._incoming.get(slot)
        if edge is None:
            return None
        source = edge.source
        if not source.has_result:
            from plexus.core.graph.executor import Executor

            await Executor().run([source], context)
        return source.result

    async def first_input(self, context: ExecutionContext, *slots: str) -> Any:
        """Value of the first wired slot among ``slots``, else of any wired slot."""
        for slot in slots:
            if slot in self._incoming:
                return await self.get_input(context, slot)
        if self._incoming:
            return await self.get_input(context, next(iter(self._incoming)))
        return None

    async def _resolve_all_inputs(self, context: ExecutionContext) -> None:
        for slot in self._incoming:
            await self.get_input(context, slot)

    def resolve_template(self, template: str) -> str:
        """Substitute ``{{...}}`` references using recorded outputs."""
        if self.graph is not None:
            outputs = self.graph.variable_snapshot()
        else:
            outputs = [
                NodeOutput(n.id, n.result, n.name, n.label) for n in self.upstream() if n.has_result
            ]
        return resolve(template, self.id, outputs, self.incoming_edges)

    async def execute(self, context: ExecutionContext) -> Any:
        """Run the node once and cache its result.

        Raises:
            CancellationRequested: If the run was cancelled before the node ran.
            StepFailure: If a step invocable failed.
            ConfigurationError: If the node is misconfigured.
        """
        if self.has_result:
            return self._result

        context.check_cancelled()
        start = time.monotonic()
        log_start(logger, context.run_id, "node_start", node=self.id, kind=self.kind.value)
        try:
            result = await self.evaluate(context)
        except CancellationRequested:
            raise
        except Exception as e:
            log_error(logger, context.run_id, "node_failed", e, node=self.id)
            raise

        self._result = result
        context.usage.add_node_execution()
        log_complete(
            logger,
            context.run_id,
            "node_complete",
            time.monotonic() - start,
            node=self.id,
            kind=self.kind.value,
        )
        return result

    @abstractmethod
    async def evaluate(self, context: ExecutionContext) -> Any:
        """Compute this node's result. Called at most once per pass."""
        ...


class InputNode(GraphNode):
    kind = NodeKind.INPUT
    config_type = InputConfig

    async def evaluate(self, context: ExecutionContext) -> Any:
        return self.config.data


class GenerateNode(GraphNode):
    """Text generation.

    The prompt is the configured ``prompt`` with references resolved, or
    the text of the value wired to the ``prompt`` slot when no prompt is
    configured. With ``stream=True`` each delta is emitted as a
    ``text-chunk`` event.
    """

    kind = NodeKind.GENERATE
    config_type = GenerateConfig
    default_input_slot = "prompt"

    async def _prompt(self, context: ExecutionContext) -> str:
        if self.config.prompt:
            await self._resolve_all_inputs(context)
            return self.resolve_template(self.config.prompt)
        value = await self.first_input(context, "prompt", DEFAULT_SLOT)
        if value is None:
            raise ConfigurationError(f"Node '{self.id}' has no prompt configured or wired")
        return text_of(value)

    async def evaluate(self, context: ExecutionContext) -> Any:
        provider = context.require_provider()
        request = TextRequest(
            prompt=await self._prompt(context),
            model=context.resolve_model(self.config.model),
            temperature=self.config.temperature,
            system_prompt=self.config.system_prompt,
            max_tokens=self.config.max_tokens,
        )

        await context.emit(
            EventKind.PROGRESS, {"step": f"Generating text ({self.id})...", "nodeId": self.id}
        )
        context.check_cancelled()
        if self.config.stream:
            stream = provider.stream_text(request)
            async for chunk in stream:
                await context.emit(
                    EventKind.TEXT_CHUNK,
                    {"nodeId": self.id, "chunk": chunk, "fullText": stream.text},
                )
            text_result = stream.result
        else:
            text_result = await provider.generate_text(request)

        result = text_result.to_dict()
        context.usage.add_step_call(result["usage"])
        await context.emit(
            EventKind.STEP_COMPLETE,
            {"nodeId": self.id, "type": "text-generation", "result": result},
        )
        return result


class ExtractNode(GraphNode):
    """Structured extraction against a JSON schema or pydantic model."""

    kind = NodeKind.EXTRACT
    config_type = ExtractConfig
    default_input_slot = "data"

    async def evaluate(self, context: ExecutionContext) -> Any:
        if not self.config.schema:
            raise ConfigurationError(f"Extract node '{self.id}' requires a schema")
        provider = context.require_provider()

        if self.config.prompt:
            await self._resolve_all_inputs(context)
            prompt = self.resolve_template(self.config.prompt)
        else:
            value = await self.first_input(context, "data", "prompt", DEFAULT_SLOT)
            if value is None:
                raise ConfigurationError(f"Node '{self.id}' has no prompt configured or wired")
            prompt = text_of(value)

        request = ExtractRequest(
            prompt=prompt,
            model=context.resolve_model(self.config.model),
            schema=self.config.schema,
            schema_name=self.config.schema_name,
            temperature=self.config.temperature,
            system_prompt=self.config.system_prompt,
        )

        await context.emit(
            EventKind.PROGRESS, {"step": f"Extracting data ({self.id})...", "nodeId": self.id}
        )
        context.check_cancelled()
        result = (await provider.extract_structured(request)).to_dict()
        context.usage.add_step_call(result["usage"])
        await context.emit(
            EventKind.STEP_COMPLETE,
            {"nodeId": self.id, "type": "structured-data", "result": result},
        )
        return result


class TransformNode(GraphNode):
    kind = NodeKind.TRANSFORM
    config_type = TransformConfig

    async def evaluate(self, context: ExecutionContext) -> Any:
        if self.config.fn is None:
            raise ConfigurationError(
                f"Transform node '{self.id}' has no function; supply one on import"
            )
        value = await self.first_input(context, DEFAULT_SLOT)
        return await _call(self.config.fn, value)


class MergeNode(GraphNode):
    """Combine every wired input.

    object: {slot: value}; array: values in connection order; concat:
    text of each value joined by ``separator``.
    """

    kind = NodeKind.MERGE
    config_type = MergeConfig

    async def evaluate(self, context: ExecutionContext) -> Any:
        values: dict[str, Any] = {}
        for slot in self._incoming:
            values[slot] = await self.get_input(context, slot)

        if self.config.strategy == "array":
            return list(values.values())
        if self.config.strategy == "concat":
            return self.config.separator.join(
                text_of(v) for v in values.values() if v is not None
            )
        return values


class ConditionNode(GraphNode):
    kind = NodeKind.CONDITION
    config_type = ConditionConfig

    async def evaluate(self, context: ExecutionContext) -> Any:
        value = await self.first_input(context, DEFAULT_SLOT)
        predicate = self.config.predicate or bool
        condition_met = bool(await _call(predicate, value))
        await context.emit(
            EventKind.CONDITION_EVALUATED, {"nodeId": self.id, "conditionMet": condition_met}
        )
        return {"conditionMet": condition_met, "data": value}


class TemplateNode(GraphNode):
    kind = NodeKind.TEMPLATE
    config_type = TemplateConfig

    async def evaluate(self, context: ExecutionContext) -> Any:
        value = await self.first_input(context, DEFAULT_SLOT)
        text = self.config.template
        if isinstance(value, dict):
            for key, item in value.items():
                text = text.replace(f"{{{{{key}}}}}", stringify(item))
        elif value is not None:
            text = text.replace("{{input}}", stringify(value))
        return text


class OutputNode(GraphNode):
    kind = NodeKind.OUTPUT
    config_type = OutputConfig

    async def evaluate(self, context: ExecutionContext) -> Any:
        return await self.first_input(context, DEFAULT_SLOT)


class CacheNode(GraphNode):
    """Read or write the run's key-value store.

    get: returns the stored value; on a miss with ``write_if_miss`` the
    resolved ``value`` template is stored and returned. set: stores the
    resolved ``value`` template, or the wired input when no template is
    configured. Result ``{hit, key, value}``.
    """

    kind = NodeKind.CACHE
    config_type = CacheConfig

    async def evaluate(self, context: ExecutionContext) -> Any:
        if context.store is None:
            raise ConfigurationError(f"Cache node '{self.id}' requires a key-value store")
        if not self.config.key:
            raise ConfigurationError(f"Cache node '{self.id}' requires a key")

        await self._resolve_all_inputs(context)
        key = self.resolve_template(self.config.key)

        if self.config.operation == "get":
            value = await context.store.get(key)
            if value is not None:
                return {"hit": True, "key": key, "value": value}
            if self.config.write_if_miss and self.config.value:
                value = self.resolve_template(self.config.value)
                await context.store.set(key, value)
            return {"hit": False, "key": key, "value": value}

        if self.config.value:
            value = self.resolve_template(self.config.value)
        else:
            value = await self.first_input(context, DEFAULT_SLOT)
        await context.store.set(key, value)
        return {"hit": False, "key": key, "value": value}


NODE_TYPES: dict[NodeKind, type[GraphNode]] = {
    cls.kind: cls
    for cls in (
        InputNode,
        GenerateNode,
        ExtractNode,
        TransformNode,
        MergeNode,
        ConditionNode,
        TemplateNode,
        OutputNode,
        CacheNode,
    )
}

