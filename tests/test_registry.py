"""Node/Port Registry: per-kind templates, locking and provider categories."""

from __future__ import annotations

from pipeline_studio.workflow.model import NodeKind
from pipeline_studio.workflow.port_types import ASSET_REF, TEXT
from pipeline_studio.workflow.registry import (
    FIXED_LIBRARY,
    PROVIDER_IMAGE,
    PROVIDER_LLM,
    PROVIDER_VIDEO,
    default_ports,
    get_spec,
    is_known_kind,
    is_locked_kind,
    known_kinds,
    provider_type_for,
)


class TestTemplates:
    def test_start(self):
        spec = get_spec(NodeKind.START)
        assert spec.is_locked()
        assert [p.key for p in spec.default_inputs()] == ["input"]
        assert spec.default_outputs() == []
        assert spec.default_inputs()[0].type == TEXT

    def test_end_outputs_match_inputs(self):
        spec = get_spec("end")
        assert spec.is_locked()
        assert spec.default_inputs() == spec.default_outputs()
        assert spec.default_inputs()[0].key == "result"

    def test_script_parser_text_to_text(self):
        inputs, outputs = default_ports("llm_parse_script")
        assert len(inputs) == 1 and len(outputs) == 1
        assert inputs[0].type == TEXT and inputs[0].required
        assert outputs[0].type == TEXT and outputs[0].required

    def test_character_images_list_of_assets(self):
        _, outputs = default_ports(NodeKind.GENERATE_CHARACTER_IMAGES)
        assert outputs[0].type == ASSET_REF.wrap()

    def test_llm_tool_has_no_template(self):
        spec = get_spec(NodeKind.LLM_TOOL)
        assert not spec.has_ports()
        assert not spec.is_locked()

    def test_capability_config_defaults(self):
        assert get_spec("generate_video").default_config() == {
            "outputCount": 1,
            "requireHuman": False,
        }

    def test_templates_are_copies(self):
        inputs, _ = default_ports("generate_video")
        inputs[0].key = "mutated"
        inputs.clear()
        assert default_ports("generate_video")[0][0].key == "prompt"

    def test_config_defaults_are_copies(self):
        config = get_spec("generate_video").default_config()
        config["outputCount"] = 9
        assert get_spec("generate_video").default_config()["outputCount"] == 1


class TestClassification:
    def test_locked_kinds(self):
        assert is_locked_kind("start")
        assert is_locked_kind("end")
        assert not is_locked_kind("final_compose")

    def test_unknown_kind_is_empty_and_deletable(self):
        spec = get_spec("future_kind")
        assert spec.kind == "future_kind"
        assert not spec.has_ports()
        assert not spec.is_locked()
        assert not is_known_kind("future_kind")

    def test_every_node_kind_is_registered(self):
        assert set(known_kinds()) == {k.value for k in NodeKind}

    def test_provider_categories(self):
        assert provider_type_for("llm_tool") == PROVIDER_LLM
        assert provider_type_for("generate_storyboard") == PROVIDER_LLM
        assert provider_type_for("generate_keyframes") == PROVIDER_IMAGE
        assert provider_type_for("generate_video") == PROVIDER_VIDEO
        assert provider_type_for("human_breakpoint") is None
        assert provider_type_for("final_compose") is None

    def test_fixed_library(self):
        assert FIXED_LIBRARY == ("human_breakpoint",)
