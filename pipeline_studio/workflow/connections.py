"""Connection Manager — the single authority for creating, editing and retiring edges.

Every operation here is a pure transition: it takes a Graph, deep-copies it,
applies the change, and returns the new Graph (plus the created edge / node /
port where relevant). A rejected operation raises a GraphEditError subclass
before anything is returned, so the caller's graph is never partially edited.

Triggers covered:
  connect()        — user drags from one port to another (may materialize the
                     target input port when it does not exist yet)
  rename_port()    — a port key changes; edges follow the new key
  remove_port()    — a port is deleted; every edge on it is deleted
  rebind_input()   — mapping dropdown sets (or clears) an input's single source
  update_port()    — type / required / name / default edits; a type change
                     retires edges the lattice no longer accepts
  set_prompt_version() / sync_prompt_variables()
                   — a prompt template version is picked; config variables
                     follow its keys, keeping values already entered

plus node placement and deletion (place_node, place_tool, delete_node) and
delete_edge.

Direction rules:
  - End is never a source; Start is never a target.
  - Start's inputs are the values supplied at run time and act as its outputs:
    edges *source* from them. Start has no output list of its own.
  - End's outputs mirror its inputs and are re-derived after every edit.
"""

from __future__ import annotations

import copy
import logging
from enum import Enum
from typing import Any
from uuid import uuid4

from pipeline_studio.workflow.errors import (
    ConnectionRejected,
    GraphEditError,
    NodeLocked,
    PortEditRejected,
    UnknownNode,
)
from pipeline_studio.workflow.handles import encode_handle
from pipeline_studio.workflow.model import (
    Edge,
    Graph,
    Node,
    NodeKind,
    Port,
    PortDirection,
)
from pipeline_studio.workflow.port_types import (
    TEXT,
    PortType,
    compatible,
    mismatch_message,
)
from pipeline_studio.workflow.registry import get_spec, is_known_kind
from pipeline_studio.workflow.schemas import ToolDefinition

logger = logging.getLogger("pipeline_studio.workflow.connections")


class _Keep(Enum):
    TOKEN = 0


# Sentinel for update_port(): leave the field unchanged.
KEEP = _Keep.TOKEN


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _require_node(graph: Graph, node_id: str | None) -> Node:
    node = graph.get_node(node_id) if node_id else None
    if node is None:
        raise UnknownNode(str(node_id))
    return node


def _direction(direction: PortDirection | str) -> PortDirection:
    try:
        return PortDirection(direction)
    except ValueError:
        raise PortEditRejected(f"Unknown port direction '{direction}'") from None


def _check_editable(node: Node, direction: PortDirection) -> None:
    """Start has no editable outputs; End's outputs are a mirror of its inputs."""
    if direction is PortDirection.OUTPUTS and node.is_start:
        raise PortEditRejected("Start exposes its inputs as outputs; edit its inputs instead")
    if direction is PortDirection.OUTPUTS and node.is_end:
        raise PortEditRejected("End outputs mirror its inputs; edit its inputs instead")


def _require_port(node: Node, direction: PortDirection, key: str) -> Port:
    port = node.find_port(direction, key)
    if port is None:
        raise PortEditRejected(f"Port '{key}' not found in {direction.value} of node '{node.id}'")
    return port


def _sync_mirror(node: Node) -> None:
    if node.is_end:
        node.outputs = copy.deepcopy(node.inputs)


def _is_source_side(node: Node, direction: PortDirection) -> bool:
    """True when edges attach to this port as their *source*."""
    return direction is PortDirection.OUTPUTS or node.is_start


def _short_id() -> str:
    return uuid4().hex[:8]


def _unique(base: str, taken: set[str]) -> str:
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


def _edge_id(graph: Graph, source: str, source_key: str, target: str, target_key: str) -> str:
    base = (
        f"e-{source}-{encode_handle(source_key)}"
        f"-{target}-{encode_handle(target_key)}"
    )
    return _unique(base, graph.edge_ids())


def _next_port_key(prefix: str, ports: list[Port]) -> str:
    taken = {p.key for p in ports}
    n = len(ports) + 1
    key = f"{prefix}_{n}"
    while key in taken:
        n += 1
        key = f"{prefix}_{n}"
    return key


def _without(edges: list[Edge], removed: list[Edge]) -> list[Edge]:
    gone = {id(e) for e in removed}
    return [e for e in edges if id(e) not in gone]


def _insert_node(graph: Graph, node: Node) -> None:
    """Append ``node``, keeping a trailing End node last."""
    if graph.nodes and graph.nodes[-1].is_end:
        graph.nodes.insert(len(graph.nodes) - 1, node)
    else:
        graph.nodes.append(node)


def resolve_source_port(node: Node, key: str | None = None) -> Port:
    """Resolve the port a connection from ``node`` starts at.

    Start offers its inputs, every other node its outputs. Without an explicit
    key the first offered port is used.
    """
    candidates = node.source_ports()
    if not candidates:
        raise ConnectionRejected(f"Node '{node.label or node.id}' has no output ports")
    if not key:
        return candidates[0]
    port = next((p for p in candidates if p.key == key), None)
    if port is None:
        raise ConnectionRejected(f"Source port '{key}' not found on node '{node.label or node.id}'")
    return port


def _check_direction(source: Node, target: Node) -> None:
    if source.is_end:
        raise ConnectionRejected("End node cannot be used as a source")
    if target.is_start:
        raise ConnectionRejected("Start node cannot be used as a target")


# ---------------------------------------------------------------------------
# (a) Direct connection
# ---------------------------------------------------------------------------


def connect(
    graph: Graph,
    source_id: str,
    target_id: str,
    source_key: str | None = None,
    target_key: str | None = None,
    *,
    edge_id: str | None = None,
) -> tuple[Graph, Edge]:
    """Connect a source port to a target input port.

    When ``target_key`` names an input that does not exist on the target, a new
    required input with that key and the source port's type is materialized.
    Without a ``target_key`` the target's first input is used, or ``input_<n+1>``
    is materialized when the target has none.

    An existing target port of a different type is never overwritten: the
    lattice decides, and an incompatible pair is rejected.

    Raises ConnectionRejected (or UnknownNode) without modifying ``graph``.
    """
    _check_direction(_require_node(graph, source_id), _require_node(graph, target_id))

    out = graph.copy()
    source = out.get_node(source_id)
    target = out.get_node(target_id)
    src_port = resolve_source_port(source, source_key)

    if target_key:
        tgt_port = target.find_port(PortDirection.INPUTS, target_key)
    else:
        tgt_port = target.inputs[0] if target.inputs else None

    materialized = tgt_port is None
    if materialized:
        new_key = target_key or _next_port_key("input", target.inputs)
        tgt_port = Port(key=new_key, name=new_key, type=src_port.type, required=True)

    result = compatible(src_port.type, tgt_port.type)
    if not result.ok:
        raise ConnectionRejected(mismatch_message(src_port.type, tgt_port.type))

    for existing in out.incoming(target.id, tgt_port.key):
        if existing.source == source.id and existing.source_key == src_port.key:
            raise ConnectionRejected("These ports are already connected")

    if materialized:
        target.inputs.append(tgt_port)
        _sync_mirror(target)
        logger.info(
            "Materialized input '%s' (%s) on node %s", tgt_port.key, tgt_port.type, target.id,
        )

    if edge_id is not None and edge_id in out.edge_ids():
        raise ConnectionRejected(f"Edge id '{edge_id}' already exists")
    edge = Edge(
        id=edge_id or _edge_id(out, source.id, src_port.key, target.id, tgt_port.key),
        source=source.id,
        source_key=src_port.key,
        target=target.id,
        target_key=tgt_port.key,
        coercion=result.coercion,
    )
    out.edges.append(edge)
    logger.debug("Connected %s.%s -> %s.%s", source.id, src_port.key, target.id, tgt_port.key)
    return out, edge


# ---------------------------------------------------------------------------
# (b) Port rename
# ---------------------------------------------------------------------------


def rename_port(
    graph: Graph,
    node_id: str,
    direction: PortDirection | str,
    old_key: str,
    new_key: str,
) -> Graph:
    """Change a port key and move every edge on it to the new key.

    A display name that was never customized (empty or equal to the old key)
    follows the new key.
    """
    side = _direction(direction)
    _check_editable(_require_node(graph, node_id), side)
    new_key = (new_key or "").strip()
    if not new_key:
        raise PortEditRejected("Port key cannot be empty")

    out = graph.copy()
    node = out.get_node(node_id)
    port = _require_port(node, side, old_key)
    if new_key == old_key:
        return out
    if node.find_port(side, new_key) is not None:
        raise PortEditRejected(f"Port '{new_key}' already exists in {side.value} of node '{node.id}'")

    port.key = new_key
    if not port.name or port.name == old_key:
        port.name = new_key

    moved = 0
    if _is_source_side(node, side):
        for edge in out.outgoing(node.id, old_key):
            edge.source_key = new_key
            moved += 1
    else:
        for edge in out.incoming(node.id, old_key):
            edge.target_key = new_key
            moved += 1
    _sync_mirror(node)
    logger.debug("Renamed %s.%s -> %s (%d edges moved)", node.id, old_key, new_key, moved)
    return out


# ---------------------------------------------------------------------------
# (c) Port removal
# ---------------------------------------------------------------------------


def remove_port(
    graph: Graph,
    node_id: str,
    direction: PortDirection | str,
    key: str,
) -> Graph:
    """Delete a port and every edge attached to it. Other nodes' ports are untouched."""
    side = _direction(direction)
    _check_editable(_require_node(graph, node_id), side)

    out = graph.copy()
    node = out.get_node(node_id)
    port = _require_port(node, side, key)
    node.ports(side).remove(port)

    def _attached(edge: Edge) -> bool:
        if _is_source_side(node, side) and edge.source == node.id and edge.source_key == key:
            return True
        if side is PortDirection.INPUTS and edge.target == node.id and edge.target_key == key:
            return True
        return False

    before = len(out.edges)
    out.edges = [e for e in out.edges if not _attached(e)]
    _sync_mirror(node)
    logger.debug("Removed port %s.%s (%d edges deleted)", node.id, key, before - len(out.edges))
    return out


# ---------------------------------------------------------------------------
# (d) Mapping-dropdown rebind
# ---------------------------------------------------------------------------


def rebind_input(
    graph: Graph,
    target_id: str,
    target_key: str,
    source_id: str | None,
    source_key: str | None = None,
) -> tuple[Graph, Edge | None]:
    """Set the single source feeding input ``target_key`` on ``target_id``.

    The first existing edge into that input is re-pointed (other edges into the
    same input are dropped); otherwise a new edge is created. Passing
    ``source_id=None`` clears the mapping and returns ``(graph, None)``.
    """
    target = _require_node(graph, target_id)
    if target.is_start:
        raise ConnectionRejected("Start node cannot be used as a target")
    if target.find_port(PortDirection.INPUTS, target_key) is None:
        raise ConnectionRejected(f"Input '{target_key}' not found on node '{target.label or target.id}'")

    out = graph.copy()
    target = out.get_node(target_id)
    existing = out.incoming(target.id, target_key)

    if source_id is None:
        out.edges = _without(out.edges, existing)
        return out, None

    source = _require_node(out, source_id)
    _check_direction(source, target)
    src_port = resolve_source_port(source, source_key)
    tgt_port = target.find_port(PortDirection.INPUTS, target_key)
    result = compatible(src_port.type, tgt_port.type)
    if not result.ok:
        raise ConnectionRejected(mismatch_message(src_port.type, tgt_port.type))

    if existing:
        edge = existing[0]
        edge.source = source.id
        edge.source_key = src_port.key
        edge.coercion = result.coercion
        extra = existing[1:]
        if extra:
            out.edges = _without(out.edges, extra)
        return out, edge

    edge = Edge(
        id=_edge_id(out, source.id, src_port.key, target.id, target_key),
        source=source.id,
        source_key=src_port.key,
        target=target.id,
        target_key=target_key,
        coercion=result.coercion,
    )
    out.edges.append(edge)
    return out, edge


# ---------------------------------------------------------------------------
# Port add / update
# ---------------------------------------------------------------------------


def add_port(
    graph: Graph,
    node_id: str,
    direction: PortDirection | str,
    key: str | None = None,
    port_type: PortType | str = TEXT,
    required: bool = False,
    name: str | None = None,
) -> tuple[Graph, Port]:
    """Append a port. The default key is ``<direction>_<n+1>`` (first unused)."""
    side = _direction(direction)
    _check_editable(_require_node(graph, node_id), side)
    ptype = PortType.parse(port_type)
    if ptype is None:
        raise PortEditRejected(f"Unknown port type '{port_type}'")

    out = graph.copy()
    node = out.get_node(node_id)
    ports = node.ports(side)
    if key is None:
        key = _next_port_key(side.value, ports)
    key = key.strip()
    if not key:
        raise PortEditRejected("Port key cannot be empty")
    if node.find_port(side, key) is not None:
        raise PortEditRejected(f"Port '{key}' already exists in {side.value} of node '{node.id}'")

    port = Port(key=key, name=name if name is not None else key, type=ptype, required=required)
    ports.append(port)
    _sync_mirror(node)
    return out, port


def update_port(
    graph: Graph,
    node_id: str,
    direction: PortDirection | str,
    key: str,
    *,
    port_type: PortType | str | _Keep = KEEP,
    name: str | None | _Keep = KEEP,
    required: bool | _Keep = KEEP,
    default_value: Any = KEEP,
) -> Graph:
    """Edit a port's non-key fields (use rename_port for the key).

    A type change re-checks every edge on the port: edges the lattice now
    rejects are deleted, the rest get their coercion recomputed. Pass
    ``default_value=NO_DEFAULT`` to clear a default.
    """
    side = _direction(direction)
    _check_editable(_require_node(graph, node_id), side)

    new_type: PortType | None = None
    if port_type is not KEEP:
        new_type = PortType.parse(port_type)
        if new_type is None:
            raise PortEditRejected(f"Unknown port type '{port_type}'")

    out = graph.copy()
    node = out.get_node(node_id)
    port = _require_port(node, side, key)
    if name is not KEEP:
        port.name = name
    if required is not KEEP:
        port.required = bool(required)
    if default_value is not KEEP:
        port.default_value = default_value

    if new_type is not None and new_type != port.type:
        port.type = new_type
        _retype_edges(out, node, side, port)
    _sync_mirror(node)
    return out


def _retype_edges(graph: Graph, node: Node, side: PortDirection, port: Port) -> None:
    """In place: drop or re-coerce the edges on ``port`` after its type changed."""
    if _is_source_side(node, side):
        attached = graph.outgoing(node.id, port.key)
    else:
        attached = graph.incoming(node.id, port.key)

    dropped: list[Edge] = []
    for edge in attached:
        if _is_source_side(node, side):
            other = graph.get_node(edge.target)
            other_port = other.find_port(PortDirection.INPUTS, edge.target_key) if other else None
            result = compatible(port.type, other_port.type if other_port else None)
        else:
            other = graph.get_node(edge.source)
            other_port = (
                next((p for p in other.source_ports() if p.key == edge.source_key), None)
                if other else None
            )
            result = compatible(other_port.type if other_port else None, port.type)
        if result.ok:
            edge.coercion = result.coercion
        else:
            dropped.append(edge)

    if dropped:
        graph.edges = _without(graph.edges, dropped)
        logger.warning(
            "Type change on %s.%s to %s removed %d incompatible edge(s)",
            node.id, port.key, port.type, len(dropped),
        )


# ---------------------------------------------------------------------------
# Prompt variables
# ---------------------------------------------------------------------------


def _require_prompt_node(graph: Graph, node_id: str) -> Node:
    node = _require_node(graph, node_id)
    if node.is_start or node.is_end:
        raise GraphEditError("Start and End nodes have no prompt")
    return node


def sync_prompt_variables(graph: Graph, node_id: str, variables: list[str]) -> Graph:
    """Rebuild ``config["variables"]`` from a prompt template version's variable keys.

    The result holds exactly ``variables``, in order: values the user already
    entered are kept, new keys start as ``""`` and keys the version no longer
    declares are dropped.
    """
    _require_prompt_node(graph, node_id)
    out = graph.copy()
    target = out.get_node(node_id)
    current = target.config.get("variables")
    if not isinstance(current, dict):
        current = {}
    synced: dict[str, Any] = {}
    for key in variables:
        if key and key not in synced:
            synced[key] = current.get(key, "")
    target.config["variables"] = synced
    return out


def set_prompt_version(
    graph: Graph,
    node_id: str,
    version_id: int | None,
    variables: list[str] | None = None,
) -> Graph:
    """Point a node at a prompt template version, or clear it with ``None``.

    When ``variables`` is given the node's config variables are synced to it
    as in sync_prompt_variables. Clearing the version keeps entered values.
    """
    if variables is not None:
        out = sync_prompt_variables(graph, node_id, variables)
    else:
        _require_prompt_node(graph, node_id)
        out = graph.copy()
    config = out.get_node(node_id).config
    if version_id is None:
        config.pop("promptTemplateVersionId", None)
    else:
        config["promptTemplateVersionId"] = version_id
    return out


# ---------------------------------------------------------------------------
# Node placement / deletion
# ---------------------------------------------------------------------------


def place_node(
    graph: Graph,
    kind: NodeKind | str,
    position: dict[str, float] | None = None,
    *,
    node_id: str | None = None,
    label: str | None = None,
) -> tuple[Graph, Node]:
    """Drop a capability node created from its kind template."""
    kind_value = kind.value if isinstance(kind, NodeKind) else str(kind)
    if kind_value in (NodeKind.START.value, NodeKind.END.value):
        raise GraphEditError("Start and End nodes are created automatically")
    if kind_value == NodeKind.LLM_TOOL.value:
        raise GraphEditError("Tool nodes are placed from a tool definition")
    if not is_known_kind(kind_value):
        raise GraphEditError(f"Unknown node kind '{kind_value}'")

    out = graph.copy()
    taken = out.node_ids()
    if node_id is not None and node_id in taken:
        raise GraphEditError(f"Node id '{node_id}' already exists")
    spec = get_spec(kind_value)
    node = Node(
        id=node_id or _unique(f"{kind_value}-{_short_id()}", taken),
        kind=kind_value,
        label=label or spec.label,
        inputs=spec.default_inputs(),
        outputs=spec.default_outputs(),
        config=spec.default_config(),
        position=dict(position or {"x": 0.0, "y": 0.0}),
        locked=spec.is_locked(),
    )
    _insert_node(out, node)
    return out, node


def _tool_id(raw: int | str) -> int | str:
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw)
    return raw


def place_tool(
    graph: Graph,
    tool: ToolDefinition | dict[str, Any],
    position: dict[str, float] | None = None,
    *,
    node_id: str | None = None,
) -> tuple[Graph, Node]:
    """Drop a reusable tool: an ``llm_tool`` node whose ports are cloned from ``tool``."""
    if not isinstance(tool, ToolDefinition):
        tool = ToolDefinition.model_validate(tool)

    out = graph.copy()
    taken = out.node_ids()
    if node_id is not None and node_id in taken:
        raise GraphEditError(f"Node id '{node_id}' already exists")
    config: dict[str, Any] = {}
    if tool.prompt_template_version_id is not None:
        config["promptTemplateVersionId"] = tool.prompt_template_version_id
    if tool.model:
        config["model"] = tool.model

    node = Node(
        id=node_id or _unique(f"tool-{tool.id}-{_short_id()}", taken),
        kind=NodeKind.LLM_TOOL.value,
        label=tool.name,
        inputs=[v.to_port() for v in tool.inputs],
        outputs=[v.to_port() for v in tool.outputs],
        config=config,
        position=dict(position or {"x": 0.0, "y": 0.0}),
        tool_id=_tool_id(tool.id),
        tool_name=tool.name,
    )
    _insert_node(out, node)
    logger.info("Placed tool '%s' as node %s", tool.name, node.id)
    return out, node


def delete_node(graph: Graph, node_id: str) -> Graph:
    """Remove a node and every edge touching it. Locked nodes are refused."""
    node = _require_node(graph, node_id)
    if node.locked or get_spec(node.kind).is_locked():
        raise NodeLocked(node_id)
    out = graph.copy()
    out.nodes = [n for n in out.nodes if n.id != node_id]
    out.edges = [e for e in out.edges if e.source != node_id and e.target != node_id]
    return out


def delete_edge(graph: Graph, edge_id: str) -> Graph:
    if graph.get_edge(edge_id) is None:
        raise GraphEditError(f"Edge '{edge_id}' not found")
    out = graph.copy()
    out.edges = [e for e in out.edges if e.id != edge_id]
    return out
