"""Exceptions raised by the graph editing transitions.

Every rejection is a ``GraphEditError`` carrying a short, human-readable
message suitable for a transient toast. Transitions raise before mutating
anything, so catching one always leaves the caller's graph as it was.
"""

from __future__ import annotations


class GraphEditError(ValueError):
    """Base class for a rejected edit. ``message`` is shown to the user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnknownNode(GraphEditError):
    """The edit referenced a node id that is not in the graph."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node '{node_id}' not found")
        self.node_id = node_id


class ConnectionRejected(GraphEditError):
    """A proposed edge violates direction, port, or type rules."""


class PortEditRejected(GraphEditError):
    """A port add / rename / update / removal cannot be applied."""


class NodeLocked(GraphEditError):
    """The node is locked (Start/End or protected) and cannot be removed."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node '{node_id}' is locked and cannot be deleted")
        self.node_id = node_id
