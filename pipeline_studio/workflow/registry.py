"""Node/Port Registry — default port templates and capabilities per node kind.

Each built-in kind maps to a ``KindSpec``: the minimal port contract a fresh
node of that kind exposes, whether the kind is locked (Start / End), the
provider category its model picker draws from, and the config seeded when the
node is dropped on the canvas.

``llm_tool`` has no template: its ports are cloned from the reusable tool
definition at placement time (see connections.place_tool).

The registry is a read-only lookup. Every accessor returns fresh copies so
callers can mutate the ports they receive without touching the templates.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from pipeline_studio.workflow.model import NodeKind, Port
from pipeline_studio.workflow.port_types import (
    ASSET_REF,
    TEXT,
    PortType,
)

# Provider categories used to filter the model picker.
PROVIDER_LLM = "llm"
PROVIDER_IMAGE = "image"
PROVIDER_VIDEO = "video"

_CAPABILITY_CONFIG_DEFAULTS: dict[str, Any] = {"outputCount": 1, "requireHuman": False}


@dataclass(frozen=True)
class KindSpec:
    """Static description of a node kind.

    inputs / outputs: default port template (copied on access).
    locked:           Start / End; locked kinds are never deletable.
    provider_type:    provider category for the model picker, or None.
    config_defaults:  config seeded into a freshly placed node.
    label:            default node label.
    """

    kind: str
    label: str
    inputs: tuple[Port, ...] = ()
    outputs: tuple[Port, ...] = ()
    locked: bool = False
    provider_type: str | None = None
    config_defaults: dict[str, Any] = field(default_factory=dict)

    def has_ports(self) -> bool:
        return bool(self.inputs or self.outputs)

    def is_locked(self) -> bool:
        return self.locked

    def default_inputs(self) -> list[Port]:
        return copy.deepcopy(list(self.inputs))

    def default_outputs(self) -> list[Port]:
        return copy.deepcopy(list(self.outputs))

    def default_config(self) -> dict[str, Any]:
        return copy.deepcopy(self.config_defaults)


def _port(key: str, name: str, ptype: PortType) -> Port:
    return Port(key=key, name=name, type=ptype, required=True)


def _capability(
    kind: NodeKind,
    input_port: Port,
    output_port: Port,
    provider_type: str | None = None,
) -> KindSpec:
    return KindSpec(
        kind=kind.value,
        label=kind.value,
        inputs=(input_port,),
        outputs=(output_port,),
        provider_type=provider_type,
        config_defaults=_CAPABILITY_CONFIG_DEFAULTS,
    )


_LIST_ASSET_REF = ASSET_REF.wrap()
_LIST_TEXT = TEXT.wrap()

_SPECS: dict[str, KindSpec] = {
    spec.kind: spec
    for spec in (
        # Start carries its run-time values as inputs; they act as its outputs.
        KindSpec(
            kind=NodeKind.START.value,
            label="Start",
            inputs=(_port("input", "Input text", TEXT),),
            locked=True,
        ),
        # End's outputs mirror its inputs (see normalizer).
        KindSpec(
            kind=NodeKind.END.value,
            label="End",
            inputs=(_port("result", "Final output", TEXT),),
            outputs=(_port("result", "Final output", TEXT),),
            locked=True,
        ),
        KindSpec(
            kind=NodeKind.LLM_TOOL.value,
            label="LLM tool",
            provider_type=PROVIDER_LLM,
        ),
        _capability(
            NodeKind.LLM_PARSE_SCRIPT,
            _port("script", "Script", TEXT),
            _port("storyboard", "Parsed result", TEXT),
            PROVIDER_LLM,
        ),
        _capability(
            NodeKind.GENERATE_STORYBOARD,
            _port("script", "Script", TEXT),
            _port("storyboard", "Storyboard script", TEXT),
            PROVIDER_LLM,
        ),
        _capability(
            NodeKind.GENERATE_CHARACTER_IMAGES,
            _port("prompt", "Character prompt", TEXT),
            _port("images", "Character images", _LIST_ASSET_REF),
            PROVIDER_IMAGE,
        ),
        _capability(
            NodeKind.HUMAN_REVIEW_ASSETS,
            _port("assets", "Candidate assets", _LIST_ASSET_REF),
            _port("assets", "Approved assets", _LIST_ASSET_REF),
        ),
        _capability(
            NodeKind.HUMAN_BREAKPOINT,
            _port("candidates", "Candidates", _LIST_TEXT),
            _port("selected", "Selection", TEXT),
        ),
        _capability(
            NodeKind.GENERATE_SCENE_IMAGE,
            _port("prompt", "Scene prompt", TEXT),
            _port("image", "Scene image", ASSET_REF),
            PROVIDER_IMAGE,
        ),
        _capability(
            NodeKind.GENERATE_KEYFRAMES,
            _port("prompt", "Keyframe prompt", TEXT),
            _port("frames", "Keyframes", _LIST_ASSET_REF),
            PROVIDER_IMAGE,
        ),
        _capability(
            NodeKind.GENERATE_VIDEO,
            _port("prompt", "Video prompt", TEXT),
            _port("video", "Video", ASSET_REF),
            PROVIDER_VIDEO,
        ),
        _capability(
            NodeKind.FINAL_COMPOSE,
            _port("assets", "Compose assets", _LIST_ASSET_REF),
            _port("final", "Final video", ASSET_REF),
        ),
    )
}

# Fixed (non-tool) kinds offered in the editor palette.
FIXED_LIBRARY: tuple[str, ...] = (NodeKind.HUMAN_BREAKPOINT.value,)


def get_spec(kind: NodeKind | str) -> KindSpec:
    """Return the spec for ``kind``; unknown kinds get an empty, deletable spec."""
    key = kind.value if isinstance(kind, NodeKind) else str(kind)
    spec = _SPECS.get(key)
    if spec is None:
        return KindSpec(kind=key, label=key)
    return spec


def is_known_kind(kind: NodeKind | str) -> bool:
    key = kind.value if isinstance(kind, NodeKind) else str(kind)
    return key in _SPECS


def is_locked_kind(kind: NodeKind | str) -> bool:
    return get_spec(kind).is_locked()


def default_ports(kind: NodeKind | str) -> tuple[list[Port], list[Port]]:
    """Return fresh copies of ``(inputs, outputs)`` for ``kind``."""
    spec = get_spec(kind)
    return spec.default_inputs(), spec.default_outputs()


def provider_type_for(kind: NodeKind | str) -> str | None:
    return get_spec(kind).provider_type


def known_kinds() -> list[str]:
    return list(_SPECS)
