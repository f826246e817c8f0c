"""Workflow graph editing core.

Components:
    port_types   — Port Type Lattice: PortType, Coercion, compatible()
    registry     — Node/Port Registry: KindSpec per node kind, default ports
    handles      — Handle Identity Codec: encode_handle / decode_handle
    model        — Port / Node / Edge / Graph dataclasses and their wire format
    normalizer   — normalize_graph, prune_edges (Start/End synthesis, mirroring)
    connections  — Connection Manager: pure edit transitions on a Graph
    session      — EditingSession, the single owner of the live graph
    versions     — load / validate / save / node-test round trips

Typical use:
    session = EditingSession.open(version_payload)
    result = session.connect("node-start", "node-end")
    if not result.ok:
        show_toast(result.error)
"""

from pipeline_studio.workflow.connections import (
    KEEP,
    add_port,
    connect,
    delete_edge,
    delete_node,
    place_node,
    place_tool,
    rebind_input,
    remove_port,
    rename_port,
    set_prompt_version,
    sync_prompt_variables,
    update_port,
)
from pipeline_studio.workflow.errors import (
    ConnectionRejected,
    GraphEditError,
    NodeLocked,
    PortEditRejected,
    UnknownNode,
)
from pipeline_studio.workflow.handles import decode_handle, encode_handle
from pipeline_studio.workflow.model import (
    NO_DEFAULT,
    Edge,
    Graph,
    Node,
    NodeKind,
    Port,
    PortDirection,
)
from pipeline_studio.workflow.normalizer import normalize_graph, prune_edges
from pipeline_studio.workflow.port_types import (
    Coercion,
    Compatibility,
    PortType,
    compatible,
)
from pipeline_studio.workflow.registry import FIXED_LIBRARY, KindSpec, get_spec
from pipeline_studio.workflow.schemas import (
    PromptVersion,
    ProviderConfig,
    ToolDefinition,
    ValidationIssue,
    ValidationResult,
)
from pipeline_studio.workflow.session import EditingSession, EditResult

__all__ = [
    # Lattice
    "Coercion",
    "Compatibility",
    "PortType",
    "compatible",
    # Registry
    "FIXED_LIBRARY",
    "KindSpec",
    "get_spec",
    # Codec
    "decode_handle",
    "encode_handle",
    # Model
    "NO_DEFAULT",
    "Edge",
    "Graph",
    "Node",
    "NodeKind",
    "Port",
    "PortDirection",
    # Normalizer
    "normalize_graph",
    "prune_edges",
    # Connection Manager
    "KEEP",
    "add_port",
    "connect",
    "delete_edge",
    "delete_node",
    "place_node",
    "place_tool",
    "rebind_input",
    "remove_port",
    "rename_port",
    "set_prompt_version",
    "sync_prompt_variables",
    "update_port",
    # Errors
    "ConnectionRejected",
    "GraphEditError",
    "NodeLocked",
    "PortEditRejected",
    "UnknownNode",
    # Payloads
    "PromptVersion",
    "ProviderConfig",
    "ToolDefinition",
    "ValidationIssue",
    "ValidationResult",
    # Session
    "EditResult",
    "EditingSession",
]
