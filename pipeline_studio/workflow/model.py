"""In-memory workflow graph: ports, nodes, edges, and their wire format.

The persisted format is the one exchanged with the backend (template versions,
validation and save payloads):

  {
    "nodes": [
      {
        "id": "node-start",
        "type": "start",
        "position": {"x": -240, "y": 0},
        "data": {
          "label": "Start",
          "nodeType": "start",
          "config": {},
          "inputs":  [{"key": "input", "name": "Input", "type": "text", "required": true}],
          "outputs": [],
          "locked": true
        },
        "deletable": false
      }
    ],
    "edges": [
      {
        "id": "e-node-start-input-node-end-result",
        "source": "node-start",
        "target": "node-end",
        "sourceOutputKey": "input",
        "targetInputKey": "result",
        "sourceHandle": "input",
        "targetHandle": "result",
        "transform": "stringify"          # only when a coercion applies
      }
    ],
    "metadata": {}
  }

Parsing is tolerant (missing keys, missing ``data``, JSON strings, malformed
JSON); the normalizer brings whatever loads into invariant form.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pipeline_studio.workflow.handles import decode_handle, encode_handle
from pipeline_studio.workflow.port_types import Coercion, PortType

logger = logging.getLogger("pipeline_studio.workflow.model")


class NodeKind(str, Enum):
    """Built-in node kinds. Node.kind stores the plain string value, so kinds
    unknown to this release still round-trip."""

    START = "start"
    END = "end"
    LLM_TOOL = "llm_tool"
    LLM_PARSE_SCRIPT = "llm_parse_script"
    GENERATE_STORYBOARD = "generate_storyboard"
    GENERATE_CHARACTER_IMAGES = "generate_character_images"
    HUMAN_REVIEW_ASSETS = "human_review_assets"
    HUMAN_BREAKPOINT = "human_breakpoint"
    GENERATE_SCENE_IMAGE = "generate_scene_image"
    GENERATE_KEYFRAMES = "generate_keyframes"
    GENERATE_VIDEO = "generate_video"
    FINAL_COMPOSE = "final_compose"


class PortDirection(str, Enum):
    INPUTS = "inputs"
    OUTPUTS = "outputs"


class _Unset(Enum):
    TOKEN = 0


# Marks a port without a default value (None is a legitimate default).
NO_DEFAULT = _Unset.TOKEN


# ---------------------------------------------------------------------------
# Port
# ---------------------------------------------------------------------------


@dataclass
class Port:
    """A typed, named slot on a node ("variable" in the editor UI).

    key:           Unique within its node and direction.
    type:          Parsed PortType; None when the stored type was unknown.
    name:          Optional display name; ``display_name`` falls back to key.
    required:      Whether the validator expects a value for this port.
    default_value: NO_DEFAULT when the port has no default.
    """

    key: str
    type: PortType | None
    name: str | None = None
    required: bool = False
    default_value: Any = NO_DEFAULT

    @property
    def display_name(self) -> str:
        return self.name or self.key

    @property
    def has_default(self) -> bool:
        return self.default_value is not NO_DEFAULT

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "key": self.key,
            "name": self.name if self.name is not None else self.key,
            "type": str(self.type) if self.type is not None else None,
            "required": self.required,
        }
        if self.has_default:
            out["defaultValue"] = self.default_value
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Port:
        raw_type = raw.get("type")
        ptype = PortType.parse(raw_type)
        if ptype is None and raw_type:
            logger.warning("Unknown port type %r on port %r", raw_type, raw.get("key"))
        return cls(
            key=str(raw.get("key", "")),
            type=ptype,
            name=raw.get("name"),
            required=bool(raw.get("required", False)),
            default_value=raw["defaultValue"] if "defaultValue" in raw else NO_DEFAULT,
        )


# ---------------------------------------------------------------------------
# Node
# ---------------------------------------------------------------------------


@dataclass
class Node:
    """A node on the canvas.

    kind:      NodeKind value (plain string; unknown kinds are preserved).
    inputs:    Ordered input ports. For Start these are the run-time values the
               user supplies, exposed to the rest of the graph as sources.
    outputs:   Ordered output ports. Always empty for Start; mirrors inputs
               for End.
    config:    Kind-specific settings (prompt version, model, outputCount, ...).
    locked:    True for Start/End (set by the normalizer) and for protected
               nodes; locked nodes cannot be deleted.
    extra:     Unrecognised ``data`` keys, carried through untouched.
    """

    id: str
    kind: str
    label: str = ""
    inputs: list[Port] = field(default_factory=list)
    outputs: list[Port] = field(default_factory=list)
    config: dict[str, Any] = field(default_factory=dict)
    position: dict[str, float] = field(default_factory=lambda: {"x": 0.0, "y": 0.0})
    locked: bool = False
    tool_id: int | str | None = None
    tool_name: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_start(self) -> bool:
        return self.kind == NodeKind.START

    @property
    def is_end(self) -> bool:
        return self.kind == NodeKind.END

    @property
    def deletable(self) -> bool:
        return not self.locked

    def ports(self, direction: PortDirection | str) -> list[Port]:
        if PortDirection(direction) is PortDirection.INPUTS:
            return self.inputs
        return self.outputs

    def find_port(self, direction: PortDirection | str, key: str | None) -> Port | None:
        if key is None:
            return None
        return next((p for p in self.ports(direction) if p.key == key), None)

    def source_ports(self) -> list[Port]:
        """Ports this node offers as connection sources (Start: its inputs)."""
        return self.inputs if self.is_start else self.outputs

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(copy.deepcopy(self.extra))
        data.update({
            "label": self.label,
            "nodeType": self.kind,
            "config": copy.deepcopy(self.config),
            "inputs": [p.to_dict() for p in self.inputs],
            "outputs": [p.to_dict() for p in self.outputs],
            "locked": self.locked,
        })
        if self.tool_id is not None:
            data["toolId"] = self.tool_id
        if self.tool_name is not None:
            data["toolName"] = self.tool_name
        return {
            "id": self.id,
            "type": self.kind,
            "position": dict(self.position),
            "data": data,
            "deletable": self.deletable,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Node:
        data = dict(raw.get("data") or {})
        kind = raw.get("type") or data.get("nodeType") or data.get("label") or ""
        position = raw.get("position") or {}
        known = {"label", "nodeType", "config", "inputs", "outputs", "locked", "toolId", "toolName"}
        return cls(
            id=str(raw.get("id", "")),
            kind=str(kind),
            label=data.get("label") or raw.get("label") or "",
            inputs=[Port.from_dict(p) for p in data.get("inputs") or [] if isinstance(p, dict)],
            outputs=[Port.from_dict(p) for p in data.get("outputs") or [] if isinstance(p, dict)],
            config=copy.deepcopy(data.get("config") or {}),
            position={
                "x": float(position.get("x", 0) or 0),
                "y": float(position.get("y", 0) or 0),
            },
            locked=bool(data.get("locked", False)),
            tool_id=data.get("toolId"),
            tool_name=data.get("toolName"),
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in known},
        )


# ---------------------------------------------------------------------------
# Edge
# ---------------------------------------------------------------------------


def _key(value: Any) -> str | None:
    # Port keys are strings; other persisted values are stringified.
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(value)


@dataclass
class Edge:
    """A data-flow connection from a source port to a target input port.

    source_key: key of an output port (or of a Start input) on ``source``.
    target_key: key of an input port on ``target``.
    coercion:   conversion applied when the endpoint types differ; None when
                they match.
    """

    id: str
    source: str
    source_key: str | None
    target: str
    target_key: str | None
    coercion: Coercion | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "sourceOutputKey": self.source_key,
            "targetInputKey": self.target_key,
            "sourceHandle": encode_handle(self.source_key),
            "targetHandle": encode_handle(self.target_key),
        }
        if self.coercion is not None and self.coercion is not Coercion.NONE:
            out["transform"] = self.coercion.value
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Edge:
        source_key = (
            _key(raw.get("sourceOutputKey")) or _key(decode_handle(raw.get("sourceHandle")))
        )
        target_key = (
            _key(raw.get("targetInputKey")) or _key(decode_handle(raw.get("targetHandle")))
        )
        transform = raw.get("transform")
        try:
            coercion = Coercion(transform) if transform else None
        except ValueError:
            logger.warning("Unknown edge transform %r on edge %r", transform, raw.get("id"))
            coercion = None
        if coercion is Coercion.NONE:
            coercion = None
        return cls(
            id=str(raw.get("id", "")),
            source=str(raw.get("source", "")),
            source_key=source_key or None,
            target=str(raw.get("target", "")),
            target_key=target_key or None,
            coercion=coercion,
        )


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------


@dataclass
class Graph:
    """A node/edge collection plus opaque metadata.

    Node order is meaningful (Start first, End last after normalization) and
    is preserved through serialization.
    """

    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def edge_ids(self) -> set[str]:
        return {e.id for e in self.edges}

    def get_node(self, node_id: str) -> Node | None:
        return next((n for n in self.nodes if n.id == node_id), None)

    def get_edge(self, edge_id: str) -> Edge | None:
        return next((e for e in self.edges if e.id == edge_id), None)

    def nodes_of_kind(self, kind: NodeKind | str) -> list[Node]:
        return [n for n in self.nodes if n.kind == kind]

    def incoming(self, node_id: str, key: str | None = None) -> list[Edge]:
        return [
            e for e in self.edges
            if e.target == node_id and (key is None or e.target_key == key)
        ]

    def outgoing(self, node_id: str, key: str | None = None) -> list[Edge]:
        return [
            e for e in self.edges
            if e.source == node_id and (key is None or e.source_key == key)
        ]

    def copy(self) -> Graph:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "metadata": copy.deepcopy(self.metadata),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | str | None) -> Graph:
        """Parse a persisted ``{nodes, edges, metadata}`` triple.

        Accepts a dict or a JSON string. Returns an empty Graph for None, blank
        strings, malformed JSON, or non-object payloads.
        """
        if raw is None:
            return cls()
        if isinstance(raw, str):
            if not raw.strip():
                return cls()
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Graph payload is not valid JSON; starting from an empty graph")
                return cls()
        if not isinstance(raw, dict):
            return cls()
        return cls(
            nodes=[Node.from_dict(n) for n in raw.get("nodes") or [] if isinstance(n, dict)],
            edges=[Edge.from_dict(e) for e in raw.get("edges") or [] if isinstance(e, dict)],
            metadata=copy.deepcopy(raw.get("metadata") or {}),
        )
