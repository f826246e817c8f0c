"""Port Type Lattice — value types carried by ports and the coercions between them.

A port type is a primitive base kind optionally wrapped in one or more
``list<...>`` layers:

  text | number | boolean | json | asset_ref | asset_file
  list<T>  for any T above, nested to any depth (list<list<asset_ref>>)

Types compare structurally: ``list<text>`` != ``text``.

Compatibility (``compatible(source, target)``) decides whether data produced
at a source port may flow into a target port:

  identical types        → ok, no coercion
  json  → text           → ok, coercion = stringify
  text  → json           → ok, coercion = parse_json
  anything else          → rejected (including list/non-list mismatches)
  absent / unknown type  → rejected

The function is pure and total; it never raises.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger("pipeline_studio.workflow.port_types")

BASE_KINDS: tuple[str, ...] = (
    "text",
    "number",
    "boolean",
    "json",
    "asset_ref",
    "asset_file",
)

# Spellings accepted on input in addition to the canonical wire names.
_BASE_ALIASES: dict[str, str] = {
    "assetRef": "asset_ref",
    "assetFile": "asset_file",
}

_LIST_PREFIX = "list<"
_LIST_SUFFIX = ">"


class Coercion(str, Enum):
    """Implicit conversion recorded on an edge whose endpoint types differ."""

    NONE = "none"
    STRINGIFY = "stringify"
    PARSE_JSON = "parse_json"


@dataclass(frozen=True)
class PortType:
    """A structural port type.

    base:  one of BASE_KINDS.
    depth: number of ``list<...>`` wrappers around the base kind (0 = scalar).
    """

    base: str
    depth: int = 0

    @property
    def is_list(self) -> bool:
        return self.depth > 0

    @property
    def item(self) -> PortType | None:
        """Element type of a list type; None for scalars."""
        if not self.depth:
            return None
        return PortType(self.base, self.depth - 1)

    @property
    def is_asset(self) -> bool:
        return self.base in ("asset_ref", "asset_file")

    def wrap(self) -> PortType:
        """Return ``list<self>``."""
        return PortType(self.base, self.depth + 1)

    def __str__(self) -> str:
        return _LIST_PREFIX * self.depth + self.base + _LIST_SUFFIX * self.depth

    @classmethod
    def parse(cls, value: PortType | str | None) -> PortType | None:
        """Parse a wire string (``"list<asset_ref>"``) into a PortType.

        Returns None for None, empty, or unrecognised strings instead of raising,
        so graphs saved with unknown types still load (their edges are then
        simply incompatible).
        """
        if isinstance(value, PortType):
            return value
        if not isinstance(value, str):
            return None
        text = value.strip().replace(" ", "")
        depth = 0
        while text.startswith(_LIST_PREFIX) and text.endswith(_LIST_SUFFIX):
            text = text[len(_LIST_PREFIX):-len(_LIST_SUFFIX)]
            depth += 1
        base = _BASE_ALIASES.get(text, text)
        if base not in BASE_KINDS:
            return None
        return cls(base, depth)


TEXT = PortType("text")
NUMBER = PortType("number")
BOOLEAN = PortType("boolean")
JSON = PortType("json")
ASSET_REF = PortType("asset_ref")
ASSET_FILE = PortType("asset_file")


@dataclass(frozen=True)
class Compatibility:
    """Result of a compatibility query.

    ok:       True when the connection is allowed.
    coercion: the conversion to record on the edge, or None when the types
              are identical (or when ok is False).
    """

    ok: bool
    coercion: Coercion | None = None


_REJECT = Compatibility(ok=False)

_COERCIONS: dict[tuple[PortType, PortType], Coercion] = {
    (JSON, TEXT): Coercion.STRINGIFY,
    (TEXT, JSON): Coercion.PARSE_JSON,
}


def compatible(
    source: PortType | str | None,
    target: PortType | str | None,
) -> Compatibility:
    """Decide whether a value of type ``source`` may flow into ``target``."""
    src = PortType.parse(source)
    tgt = PortType.parse(target)
    if src is None or tgt is None:
        return _REJECT
    if src == tgt:
        return Compatibility(ok=True)
    coercion = _COERCIONS.get((src, tgt))
    if coercion is None:
        return _REJECT
    return Compatibility(ok=True, coercion=coercion)


def mismatch_message(source: PortType | str | None, target: PortType | str | None) -> str:
    """Human-readable rejection naming both types."""
    return f"Type mismatch: {_display(source)} -> {_display(target)}"


def _display(value: PortType | str | None) -> str:
    if value is None or value == "":
        return "unknown"
    return str(value)


# ---------------------------------------------------------------------------
# Node-test input coercion
# ---------------------------------------------------------------------------

_ABSENT = object()


def coerce_test_value(port_type: PortType | str | None, raw: Any) -> Any:
    """Convert a raw form value into the shape the node-test service expects.

    number   → int / float; blank or unparsable input yields ``_ABSENT``
    boolean  → True only for True or "true" (a missing value is False)
    json / list<...> → parsed JSON, falling back to the raw value
    other    → unchanged

    Callers drop keys whose value is ``_ABSENT`` (see ``coerce_test_inputs``).
    """
    ptype = PortType.parse(port_type)
    if ptype == BOOLEAN:
        return raw is True or raw == "true"
    if raw is _ABSENT or ptype is None:
        return raw
    if ptype == NUMBER:
        if raw is None or raw == "":
            return _ABSENT
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return raw
        try:
            number = float(raw)
        except (TypeError, ValueError):
            logger.debug("Non-numeric test input %r dropped", raw)
            return _ABSENT
        return int(number) if number.is_integer() else number
    if ptype == JSON or ptype.is_list:
        if not raw or not isinstance(raw, str):
            return raw
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw
    return raw


def coerce_test_inputs(ports: list[Any], raw_inputs: dict[str, Any]) -> dict[str, Any]:
    """Coerce every raw input for ``ports`` (objects with ``key`` and ``type``)."""
    inputs: dict[str, Any] = {}
    for port in ports:
        value = coerce_test_value(port.type, raw_inputs.get(port.key, _ABSENT))
        if value is _ABSENT:
            continue
        inputs[port.key] = value
    return inputs
