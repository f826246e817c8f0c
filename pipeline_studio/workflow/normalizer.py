"""Graph Normalizer — brings a loaded or edited graph into invariant form.

Steps (normalize_graph):
  1. Entry/exit synthesis: add a Start (front) and/or End (back) when missing.
  2. Port reconciliation: empty port lists are filled from the kind template.
  3. Start/End mirroring: Start exposes its ports as inputs only; End's
     outputs mirror its inputs.
  4. Lock derivation: Start/End are always locked.
  5. Edge key back-fill (normalize_edges): missing edge port keys default to
     the first port on the relevant side.

Normalization never removes user nodes and never raises. Stale edges are
removed separately by prune_edges, which the editing session runs when it
opens a graph.

Running normalize_graph on its own output is a no-op.
"""

from __future__ import annotations

import copy
import logging

from pipeline_studio.workflow.model import Edge, Graph, Node, NodeKind
from pipeline_studio.workflow.port_types import compatible
from pipeline_studio.workflow.registry import get_spec

logger = logging.getLogger("pipeline_studio.workflow.normalizer")

START_NODE_ID = "node-start"
END_NODE_ID = "node-end"

# Placement heuristic for synthesized Start/End (pixels).
_SYNTH_OFFSET_X: float = 240.0
_EMPTY_MAX_X: float = 600.0


# ---------------------------------------------------------------------------
# Entry / exit synthesis
# ---------------------------------------------------------------------------


def _fresh_node_id(base: str, taken: set[str]) -> str:
    """Return ``base``, else ``base-auto``, ``base-auto-2``, ... (first unused)."""
    if base not in taken:
        return base
    candidate = f"{base}-auto"
    n = 2
    while candidate in taken:
        candidate = f"{base}-auto-{n}"
        n += 1
    return candidate


def _synthesize(kind: NodeKind, node_id: str, x: float, y: float) -> Node:
    spec = get_spec(kind)
    return Node(
        id=node_id,
        kind=kind.value,
        label=spec.label,
        inputs=spec.default_inputs(),
        outputs=spec.default_outputs(),
        config={},
        position={"x": x, "y": y},
        locked=True,
    )


def ensure_start_end(nodes: list[Node]) -> list[Node]:
    """Return a new node list containing at least one Start and one End.

    A synthesized Start is inserted at the front, 240 px left of the leftmost
    node; a synthesized End is appended, 240 px right of the rightmost node.
    Existing nodes are kept as-is (same objects, same order).
    """
    starts = [n for n in nodes if n.is_start]
    ends = [n for n in nodes if n.is_end]
    if len(starts) > 1 or len(ends) > 1:
        logger.warning(
            "Graph has %d Start and %d End nodes; keeping all of them for the validator to report",
            len(starts), len(ends),
        )
    if starts and ends:
        return list(nodes)

    taken = {n.id for n in nodes}
    xs = [float(n.position.get("x", 0) or 0) for n in nodes]
    min_x = min(xs) if xs else 0.0
    max_x = max(xs) if xs else _EMPTY_MAX_X
    base_y = float(nodes[0].position.get("y", 0) or 0) if nodes else 0.0

    result = list(nodes)
    if not starts:
        start_id = _fresh_node_id(START_NODE_ID, taken)
        taken.add(start_id)
        result.insert(0, _synthesize(NodeKind.START, start_id, min_x - _SYNTH_OFFSET_X, base_y))
        logger.info("Synthesized Start node %s", start_id)
    if not ends:
        end_id = _fresh_node_id(END_NODE_ID, taken)
        result.append(_synthesize(NodeKind.END, end_id, max_x + _SYNTH_OFFSET_X, base_y))
        logger.info("Synthesized End node %s", end_id)
    return result


# ---------------------------------------------------------------------------
# Port reconciliation
# ---------------------------------------------------------------------------


def normalize_node_ports(node: Node) -> Node:
    """Return a copy of ``node`` with reconciled ports and derived lock flag."""
    out = copy.deepcopy(node)
    spec = get_spec(out.kind)

    if out.is_start:
        # A Start saved with only outputs: those are the user-supplied inputs.
        if not out.inputs and out.outputs:
            out.inputs = out.outputs
        out.outputs = []
        if not out.inputs:
            out.inputs = spec.default_inputs()
    else:
        if not out.inputs:
            out.inputs = spec.default_inputs()
        if not out.outputs:
            out.outputs = spec.default_outputs()

    if out.is_end:
        mirror_end_outputs(out)

    out.locked = out.locked or spec.is_locked()
    return out


def mirror_end_outputs(node: Node) -> None:
    """In place: make an End node's outputs a copy of its inputs."""
    if node.is_end and node.inputs:
        node.outputs = copy.deepcopy(node.inputs)


def normalize_nodes(nodes: list[Node]) -> list[Node]:
    return [normalize_node_ports(n) for n in ensure_start_end(nodes)]


# ---------------------------------------------------------------------------
# Edges
# ---------------------------------------------------------------------------


def normalize_edges(nodes: list[Node], edges: list[Edge]) -> list[Edge]:
    """Return copies of ``edges`` with missing port keys back-filled.

    source key → first output of the source (first input for Start)
    target key → first input of the target
    """
    by_id = {n.id: n for n in nodes}
    result: list[Edge] = []
    for edge in edges:
        e = copy.deepcopy(edge)
        source = by_id.get(e.source)
        target = by_id.get(e.target)
        if not e.source_key and source is not None:
            candidates = source.source_ports()
            e.source_key = candidates[0].key if candidates else None
        if not e.target_key and target is not None:
            e.target_key = target.inputs[0].key if target.inputs else None
        result.append(e)
    return result


def edge_problem(graph: Graph, edge: Edge) -> str | None:
    """Describe why ``edge`` is structurally invalid in ``graph``, or None."""
    source = graph.get_node(edge.source)
    target = graph.get_node(edge.target)
    if source is None or target is None:
        return "endpoint node missing"
    if source.is_end:
        return "End node used as source"
    if target.is_start:
        return "Start node used as target"
    if not any(p.key == edge.source_key for p in source.source_ports()):
        return f"source port '{edge.source_key}' missing"
    if target.find_port("inputs", edge.target_key) is None:
        return f"target port '{edge.target_key}' missing"
    return None


def dangling_edges(graph: Graph) -> list[Edge]:
    """Edges whose endpoints do not resolve to existing nodes and ports."""
    return [e for e in graph.edges if edge_problem(graph, e) is not None]


def prune_edges(graph: Graph) -> Graph:
    """Return a copy of ``graph`` without structurally invalid edges.

    Surviving edges also get their coercion re-derived from the current port
    types, so a stored ``transform`` can never disagree with the ports.
    Type-incompatible edges are kept for the validator to report.
    """
    out = graph.copy()
    kept: list[Edge] = []
    for edge in out.edges:
        problem = edge_problem(out, edge)
        if problem is not None:
            logger.warning("Dropping edge %s (%s)", edge.id, problem)
            continue
        source = out.get_node(edge.source)
        target = out.get_node(edge.target)
        src_port = next(p for p in source.source_ports() if p.key == edge.source_key)
        tgt_port = target.find_port("inputs", edge.target_key)
        result = compatible(src_port.type, tgt_port.type)
        if result.ok:
            edge.coercion = result.coercion
        kept.append(edge)
    out.edges = kept
    return out


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def normalize_graph(graph: Graph) -> Graph:
    """Return a normalized copy of ``graph`` (nodes and edge keys)."""
    nodes = normalize_nodes(graph.nodes)
    edges = normalize_edges(nodes, graph.edges)
    return Graph(nodes=nodes, edges=edges, metadata=copy.deepcopy(graph.metadata))
