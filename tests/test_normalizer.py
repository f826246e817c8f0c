"""Graph Normalizer: Start/End synthesis, port reconciliation, mirroring,
lock derivation, edge key back-fill, pruning, and idempotence.
"""

from __future__ import annotations

import logging

from pipeline_studio.workflow.model import Edge, Graph, Node
from pipeline_studio.workflow.normalizer import (
    END_NODE_ID,
    START_NODE_ID,
    dangling_edges,
    ensure_start_end,
    normalize_graph,
    normalize_node_ports,
    prune_edges,
)
from pipeline_studio.workflow.port_types import Coercion


def _node(node_id, kind, x=0.0, y=0.0, inputs=(), outputs=()):
    return Node.from_dict({
        "id": node_id,
        "type": kind,
        "position": {"x": x, "y": y},
        "data": {
            "inputs": [{"key": k, "type": t, "required": True} for k, t in inputs],
            "outputs": [{"key": k, "type": t, "required": True} for k, t in outputs],
        },
    })


# ---------------------------------------------------------------------------
# Entry / exit synthesis
# ---------------------------------------------------------------------------


class TestStartEndSynthesis:
    def test_empty_graph(self):
        g = normalize_graph(Graph())
        assert [n.kind for n in g.nodes] == ["start", "end"]
        assert [n.id for n in g.nodes] == [START_NODE_ID, END_NODE_ID]
        assert g.edges == []
        assert all(n.locked and not n.deletable for n in g.nodes)

    def test_empty_graph_positions(self):
        start, end = normalize_graph(Graph()).nodes
        assert start.position == {"x": -240.0, "y": 0.0}
        assert end.position == {"x": 840.0, "y": 0.0}

    def test_placed_beside_layout_extremes(self):
        nodes = [_node("a", "generate_video", 100, 50), _node("b", "final_compose", 400, 90)]
        g = normalize_graph(Graph(nodes=nodes))
        assert g.nodes[0].is_start and g.nodes[0].position == {"x": -140.0, "y": 50.0}
        assert g.nodes[-1].is_end and g.nodes[-1].position == {"x": 640.0, "y": 50.0}
        assert [n.id for n in g.nodes[1:-1]] == ["a", "b"]

    def test_id_collision(self):
        g = normalize_graph(Graph(nodes=[_node("node-start", "generate_video")]))
        assert g.nodes[0].is_start
        assert g.nodes[0].id == "node-start-auto"

    def test_existing_start_end_kept(self):
        nodes = [_node("s", "start"), _node("e", "end")]
        g = normalize_graph(Graph(nodes=nodes))
        assert [n.id for n in g.nodes] == ["s", "e"]

    def test_only_missing_one_synthesized(self):
        g = normalize_graph(Graph(nodes=[_node("s", "start")]))
        assert [n.kind for n in g.nodes] == ["start", "end"]
        assert g.nodes[0].id == "s"

    def test_multiple_starts_kept_and_reported(self, caplog):
        nodes = [_node("s1", "start"), _node("s2", "start"), _node("e", "end")]
        with caplog.at_level(logging.WARNING, logger="pipeline_studio.workflow.normalizer"):
            result = ensure_start_end(nodes)
        assert [n.id for n in result] == ["s1", "s2", "e"]
        assert "2 Start" in caplog.text

    def test_never_removes_user_nodes(self):
        nodes = [_node("a", "generate_video"), _node("b", "mystery_kind")]
        g = normalize_graph(Graph(nodes=nodes))
        assert {"a", "b"} <= g.node_ids()


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------


class TestPortReconciliation:
    def test_empty_ports_filled_from_template(self):
        n = normalize_node_ports(_node("a", "generate_video"))
        assert [p.key for p in n.inputs] == ["prompt"]
        assert [p.key for p in n.outputs] == ["video"]

    def test_existing_ports_kept(self):
        n = normalize_node_ports(_node("a", "generate_video", inputs=[("scene", "text")]))
        assert [p.key for p in n.inputs] == ["scene"]
        assert [p.key for p in n.outputs] == ["video"]

    def test_start_outputs_moved_to_inputs(self):
        n = normalize_node_ports(_node("s", "start", outputs=[("topic", "text")]))
        assert [p.key for p in n.inputs] == ["topic"]
        assert n.outputs == []

    def test_start_keeps_inputs_and_drops_outputs(self):
        n = normalize_node_ports(
            _node("s", "start", inputs=[("a", "text")], outputs=[("b", "text")]),
        )
        assert [p.key for p in n.inputs] == ["a"]
        assert n.outputs == []

    def test_end_outputs_mirror_inputs(self):
        n = normalize_node_ports(
            _node("e", "end", inputs=[("film", "asset_ref")], outputs=[("stale", "text")]),
        )
        assert [p.key for p in n.outputs] == ["film"]
        assert n.outputs == n.inputs
        assert n.outputs is not n.inputs

    def test_start_locked_regardless_of_stored_flag(self):
        raw = {"id": "s", "type": "start", "data": {"locked": False}}
        assert normalize_node_ports(Node.from_dict(raw)).locked

    def test_user_locked_flag_kept(self):
        raw = {"id": "a", "type": "generate_video", "data": {"locked": True}}
        assert normalize_node_ports(Node.from_dict(raw)).locked

    def test_input_not_mutated(self):
        node = _node("a", "generate_video")
        normalize_node_ports(node)
        assert node.inputs == []


# ---------------------------------------------------------------------------
# Edges
# ---------------------------------------------------------------------------


class TestEdgeBackfill:
    def test_missing_keys_filled(self):
        g = normalize_graph(Graph(
            nodes=[_node("p", "llm_parse_script")],
            edges=[Edge.from_dict({"id": "e1", "source": "node-start", "target": "p"})],
        ))
        assert g.edges[0].source_key == "input"
        assert g.edges[0].target_key == "script"

    def test_explicit_keys_untouched(self):
        g = normalize_graph(Graph(
            nodes=[_node("p", "llm_parse_script", inputs=[("a", "text"), ("b", "text")])],
            edges=[Edge(id="e1", source="node-start", source_key="input",
                        target="p", target_key="b")],
        ))
        assert g.edges[0].target_key == "b"


class TestPrune:
    def _graph(self, edges):
        nodes = [
            _node("a", "llm_tool", outputs=[("out", "json")]),
            _node("b", "llm_tool", inputs=[("in", "text")], outputs=[("res", "text")]),
            _node("c", "llm_tool", inputs=[("n", "number")]),
        ]
        return normalize_graph(Graph(nodes=nodes, edges=edges))

    def test_structurally_invalid_edges_dropped(self, caplog):
        g = self._graph([
            Edge(id="ghost", source="zzz", source_key="out", target="b", target_key="in"),
            Edge(id="from-end", source="node-end", source_key="result", target="b", target_key="in"),
            Edge(id="to-start", source="b", source_key="res", target="node-start", target_key="input"),
            Edge(id="no-port", source="a", source_key="missing", target="b", target_key="in"),
            Edge(id="good", source="a", source_key="out", target="b", target_key="in"),
        ])
        assert len(dangling_edges(g)) == 4
        with caplog.at_level(logging.WARNING, logger="pipeline_studio.workflow.normalizer"):
            pruned = prune_edges(g)
        assert [e.id for e in pruned.edges] == ["good"]
        assert "ghost" in caplog.text
        assert dangling_edges(pruned) == []

    def test_coercion_recomputed(self):
        g = self._graph([Edge(id="e", source="a", source_key="out", target="b", target_key="in")])
        assert prune_edges(g).edges[0].coercion is Coercion.STRINGIFY

    def test_type_incompatible_kept_for_validator(self):
        g = self._graph([Edge(id="e", source="a", source_key="out", target="c", target_key="n")])
        assert [e.id for e in prune_edges(g).edges] == ["e"]

    def test_prune_does_not_mutate_input(self):
        g = self._graph([Edge(id="x", source="zzz", source_key="o", target="b", target_key="in")])
        prune_edges(g)
        assert len(g.edges) == 1


# ---------------------------------------------------------------------------
# Idempotence
# ---------------------------------------------------------------------------


class TestIdempotence:
    def test_empty(self):
        once = normalize_graph(Graph())
        assert normalize_graph(once).to_dict() == once.to_dict()

    def test_messy_input(self):
        g = Graph(
            nodes=[
                _node("s", "start", outputs=[("topic", "text")]),
                _node("v", "generate_video", 300, 10),
                _node("e", "end", inputs=[("film", "asset_ref")]),
            ],
            edges=[Edge.from_dict({"id": "e1", "source": "s", "target": "v"})],
        )
        once = normalize_graph(g)
        twice = normalize_graph(once)
        assert twice.to_dict() == once.to_dict()
        assert len(twice.nodes_of_kind("start")) == 1
        assert len(twice.nodes_of_kind("end")) == 1
