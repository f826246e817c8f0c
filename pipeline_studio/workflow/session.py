"""EditingSession — the single owner of the live graph.

The session wraps the pure transitions in connections.py. Each edit either
replaces the held graph with the transition's result or, on rejection, leaves
it untouched and records the message in ``last_error`` (the editor's transient
toast). Callers never see a half-applied edit.

Outbound round trips (validation, save) work on ``snapshot()`` / ``payload()``,
never on the live graph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from pipeline_studio.workflow import connections
from pipeline_studio.workflow.connections import KEEP
from pipeline_studio.workflow.errors import GraphEditError
from pipeline_studio.workflow.model import Edge, Graph, Node, Port, PortDirection
from pipeline_studio.workflow.normalizer import normalize_graph, prune_edges
from pipeline_studio.workflow.port_types import TEXT, PortType
from pipeline_studio.workflow.schemas import PromptVersion, ToolDefinition

logger = logging.getLogger("pipeline_studio.workflow.session")


@dataclass
class EditResult:
    """Outcome of one editing action.

    error: Human-readable rejection message; None when the edit was applied.
    edge:  The edge created or re-pointed by connect / rebind, if any.
    node:  The node created by place_node / place_tool, if any.
    port:  The port created by add_port, if any.
    """

    error: str | None = None
    edge: Edge | None = None
    node: Node | None = None
    port: Port | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class EditingSession:
    """Explicit owner of ``graph``; the graph is normalized and pruned on construction."""

    graph: Graph = field(default_factory=Graph)
    last_error: str | None = None

    def __post_init__(self) -> None:
        self.graph = prune_edges(normalize_graph(self.graph))

    @classmethod
    def open(cls, raw: Graph | dict[str, Any] | str | None = None) -> EditingSession:
        """Parse a persisted graph (dict, JSON string, or Graph) into a new session."""
        graph = raw.copy() if isinstance(raw, Graph) else Graph.from_dict(raw)
        return cls(graph=graph)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _apply(self, action: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> EditResult:
        try:
            outcome = fn(self.graph, *args, **kwargs)
        except GraphEditError as e:
            self.last_error = e.message
            logger.warning("%s rejected: %s", action, e.message)
            return EditResult(error=e.message)

        result = EditResult()
        if isinstance(outcome, tuple):
            self.graph, extra = outcome
            if isinstance(extra, Edge):
                result.edge = extra
            elif isinstance(extra, Node):
                result.node = extra
            elif isinstance(extra, Port):
                result.port = extra
        else:
            self.graph = outcome
        self.last_error = None
        return result

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def connect(
        self,
        source_id: str,
        target_id: str,
        source_key: str | None = None,
        target_key: str | None = None,
    ) -> EditResult:
        return self._apply(
            "connect", connections.connect, source_id, target_id, source_key, target_key,
        )

    def rename_port(
        self, node_id: str, direction: PortDirection | str, old_key: str, new_key: str,
    ) -> EditResult:
        return self._apply(
            "rename_port", connections.rename_port, node_id, direction, old_key, new_key,
        )

    def remove_port(self, node_id: str, direction: PortDirection | str, key: str) -> EditResult:
        return self._apply("remove_port", connections.remove_port, node_id, direction, key)

    def add_port(
        self,
        node_id: str,
        direction: PortDirection | str,
        key: str | None = None,
        port_type: PortType | str = TEXT,
        required: bool = False,
        name: str | None = None,
    ) -> EditResult:
        return self._apply(
            "add_port", connections.add_port, node_id, direction, key, port_type, required, name,
        )

    def update_port(
        self,
        node_id: str,
        direction: PortDirection | str,
        key: str,
        *,
        port_type: Any = KEEP,
        name: Any = KEEP,
        required: Any = KEEP,
        default_value: Any = KEEP,
    ) -> EditResult:
        return self._apply(
            "update_port", connections.update_port, node_id, direction, key,
            port_type=port_type, name=name, required=required, default_value=default_value,
        )

    def rebind_input(
        self,
        target_id: str,
        target_key: str,
        source_id: str | None,
        source_key: str | None = None,
    ) -> EditResult:
        return self._apply(
            "rebind_input", connections.rebind_input, target_id, target_key, source_id, source_key,
        )

    def place_node(
        self, kind: str, position: dict[str, float] | None = None, *, label: str | None = None,
    ) -> EditResult:
        return self._apply("place_node", connections.place_node, kind, position, label=label)

    def place_tool(
        self, tool: ToolDefinition | dict[str, Any], position: dict[str, float] | None = None,
    ) -> EditResult:
        return self._apply("place_tool", connections.place_tool, tool, position)

    def delete_node(self, node_id: str) -> EditResult:
        return self._apply("delete_node", connections.delete_node, node_id)

    def delete_edge(self, edge_id: str) -> EditResult:
        return self._apply("delete_edge", connections.delete_edge, edge_id)

    def sync_prompt_variables(self, node_id: str, variables: list[str]) -> EditResult:
        return self._apply(
            "sync_prompt_variables", connections.sync_prompt_variables, node_id, variables,
        )

    def select_prompt_version(
        self, node_id: str, version: PromptVersion | dict[str, Any] | None,
    ) -> EditResult:
        """Pick a prompt template version for a node (None clears the choice).

        The node's config variables follow the version's keys; values
        already entered for surviving keys are kept.
        """
        if version is None:
            return self._apply(
                "select_prompt_version", connections.set_prompt_version, node_id, None,
            )
        if not isinstance(version, PromptVersion):
            version = PromptVersion.model_validate(version)
        return self._apply(
            "select_prompt_version", connections.set_prompt_version,
            node_id, version.id, version.variables,
        )

    def update_config(self, node_id: str, **values: Any) -> EditResult:
        """Merge ``values`` into a node's config (model picker, prompt version, ...)."""
        node = self.graph.get_node(node_id)
        if node is None:
            self.last_error = f"Node '{node_id}' not found"
            return EditResult(error=self.last_error)
        graph = self.graph.copy()
        graph.get_node(node_id).config.update(values)
        self.graph = graph
        self.last_error = None
        return EditResult(node=graph.get_node(node_id))

    def clear_error(self) -> None:
        self.last_error = None

    # ------------------------------------------------------------------
    # Outbound views
    # ------------------------------------------------------------------

    @property
    def metadata(self) -> dict[str, Any]:
        return self.graph.metadata

    def snapshot(self) -> Graph:
        """Deep copy of the live graph, safe to hand to async collaborators."""
        return self.graph.copy()

    def payload(self) -> dict[str, Any]:
        """Normalized ``{nodes, edges, metadata}`` triple for validate / save."""
        return normalize_graph(self.snapshot()).to_dict()
