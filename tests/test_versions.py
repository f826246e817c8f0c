"""Round trips between EditingSession and the backend (mocked StudioClient).

Covers:
  - load_session: new template, successful fetch, failed fetch
  - validate_session: ok, transport error, malformed response
  - save_session: only saves when the validator says ok
  - run_node_test: inputs coerced per port type
  - models_for_node: provider filtering and de-duplication
  - load_prompt_versions / fill_prompt_variables: prompt version picker data
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from pipeline_studio.workflow.model import Node
from pipeline_studio.workflow.schemas import ProviderConfig
from pipeline_studio.workflow.session import EditingSession
from pipeline_studio.workflow.versions import (
    fill_prompt_variables,
    load_prompt_versions,
    load_session,
    models_for_node,
    run_node_test,
    save_session,
    validate_session,
)

_VERSION = {
    "id": 5,
    "nodes": [{"id": "v", "type": "generate_video"}],
    "edges": [],
    "metadata": {"title": "Pilot"},
}

_OK = {"ok": True, "errors": [], "warnings": []}
_INVALID = {
    "ok": False,
    "errors": [{"code": "END_UNREACHABLE", "message": "End is not reachable", "nodeId": "node-end"}],
    "warnings": [],
}


def _client(**methods):
    client = MagicMock()
    for name, value in methods.items():
        setattr(client, name, AsyncMock(return_value=value))
    return client


class TestLoadSession:
    @pytest.mark.asyncio
    async def test_new_template(self):
        client = _client(get_workflow_template_version=_VERSION)
        session = await load_session(client, 1)
        assert len(session.graph.nodes) == 2
        client.get_workflow_template_version.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_loads_version(self):
        client = _client(get_workflow_template_version=_VERSION)
        session = await load_session(client, 1, 5)
        client.get_workflow_template_version.assert_awaited_once_with(1, 5)
        assert session.graph.get_node("v") is not None
        assert session.graph.nodes[0].is_start
        assert session.metadata == {"title": "Pilot"}

    @pytest.mark.asyncio
    async def test_fetch_error_gives_empty_session(self):
        client = _client(get_workflow_template_version={"error": "HTTP 404", "detail": "nope"})
        session = await load_session(client, 1, 99)
        assert [n.kind for n in session.graph.nodes] == ["start", "end"]


class TestValidateSession:
    @pytest.mark.asyncio
    async def test_ok(self):
        client = _client(validate_workflow=_OK)
        result = await validate_session(client, EditingSession())
        assert result.ok
        payload = client.validate_workflow.await_args.args[0]
        assert [n["type"] for n in payload["nodes"]] == ["start", "end"]

    @pytest.mark.asyncio
    async def test_errors_parsed(self):
        client = _client(validate_workflow=_INVALID)
        result = await validate_session(client, EditingSession())
        assert not result.ok
        assert result.errors[0].code == "END_UNREACHABLE"
        assert result.errors[0].node_id == "node-end"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        client = _client(validate_workflow={"error": "HTTP 500", "detail": "boom"})
        result = await validate_session(client, EditingSession())
        assert not result.ok
        assert result.errors[0].code == "request_failed"
        assert "HTTP 500" in result.errors[0].message

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        client = _client(validate_workflow={"unexpected": True})
        result = await validate_session(client, EditingSession())
        assert result.errors[0].code == "request_failed"

    @pytest.mark.asyncio
    async def test_live_graph_untouched(self):
        session = EditingSession()
        before = session.graph.to_dict()
        await validate_session(_client(validate_workflow=_OK), session)
        assert session.graph.to_dict() == before


class TestSaveSession:
    @pytest.mark.asyncio
    async def test_invalid_not_saved(self):
        client = _client(validate_workflow=_INVALID, create_workflow_template_version={"id": 1})
        outcome = await save_session(client, 12, EditingSession())
        assert not outcome.ok
        assert outcome.version is None
        client.create_workflow_template_version.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_saved(self):
        client = _client(validate_workflow=_OK, create_workflow_template_version={"id": 11})
        session = EditingSession()
        outcome = await save_session(client, 12, session)
        assert outcome.ok
        assert outcome.version == {"id": 11}
        template_id, payload = client.create_workflow_template_version.await_args.args
        assert template_id == 12
        assert payload == session.payload()

    @pytest.mark.asyncio
    async def test_save_error(self):
        client = _client(
            validate_workflow=_OK,
            create_workflow_template_version={"error": "HTTP 400", "detail": "bad"},
        )
        outcome = await save_session(client, 12, EditingSession())
        assert not outcome.ok
        assert outcome.error == "HTTP 400: bad"


class TestRunNodeTest:
    @pytest.mark.asyncio
    async def test_inputs_coerced(self):
        node = Node.from_dict({
            "id": "t",
            "type": "llm_tool",
            "data": {
                "config": {"model": "m"},
                "inputs": [
                    {"key": "count", "type": "number"},
                    {"key": "strict", "type": "boolean"},
                    {"key": "topic", "type": "text"},
                ],
            },
        })
        client = _client(test_node={"output": "done"})
        result = await run_node_test(client, node, {"count": "3", "topic": "rain"})
        assert result == {"output": "done"}
        client.test_node.assert_awaited_once_with(
            "llm_tool",
            config={"model": "m"},
            inputs={"count": 3, "strict": False, "topic": "rain"},
        )


class TestModelsForNode:
    PROVIDERS = [
        {"id": 1, "name": "A", "type": "image", "enabled": True, "models": ["flux", "sdxl"]},
        {"id": 2, "name": "B", "type": "image", "enabled": True, "models": ["sdxl", "mj"]},
        {"id": 3, "name": "C", "type": "image", "enabled": False, "models": ["off"]},
        {"id": 4, "name": "D", "type": "llm", "enabled": True, "models": ["gpt"]},
    ]

    def test_filtered_and_deduplicated(self):
        node = Node(id="k", kind="generate_keyframes")
        assert models_for_node(node, self.PROVIDERS) == ["flux", "sdxl", "mj"]

    def test_accepts_models(self):
        providers = [ProviderConfig.model_validate(p) for p in self.PROVIDERS]
        assert models_for_node(Node(id="t", kind="llm_tool"), providers) == ["gpt"]

    def test_kind_without_provider(self):
        assert models_for_node(Node(id="h", kind="human_breakpoint"), self.PROVIDERS) == []


class TestLoadPromptVersions:
    @pytest.mark.asyncio
    async def test_flattens_versions(self):
        client = MagicMock()
        client.list_prompts = AsyncMock(return_value=[{"id": 1}, {"id": 2}])
        client.list_prompt_versions = AsyncMock(side_effect=[
            [{"id": 10, "templateId": 1, "variables": ["Novel_Text"]}],
            [{"id": 20, "templateId": 2, "variables": []}, {"id": 21, "templateId": 2}],
        ])
        versions = await load_prompt_versions(client)
        assert [v.id for v in versions] == [10, 20, 21]
        assert versions[0].variables == ["Novel_Text"]
        assert versions[0].template_id == 1

    @pytest.mark.asyncio
    async def test_list_error(self):
        client = _client(list_prompts={"error": "HTTP 500"})
        assert await load_prompt_versions(client) == []

    @pytest.mark.asyncio
    async def test_failed_prompt_skipped(self):
        client = MagicMock()
        client.list_prompts = AsyncMock(return_value=[{"id": 1}, {"id": 2}])
        client.list_prompt_versions = AsyncMock(side_effect=[
            {"error": "HTTP 404"},
            [{"id": 20}, {"name": "no id"}],
        ])
        versions = await load_prompt_versions(client)
        assert [v.id for v in versions] == [20]


class TestFillPromptVariables:
    VERSIONS = [{"id": 9, "variables": ["Novel_Text", "Style"]}, {"id": 10, "variables": []}]

    def _session(self, **configs):
        return EditingSession.open({
            "nodes": [
                {"id": node_id, "type": "generate_keyframes", "data": {"config": config}}
                for node_id, config in configs.items()
            ],
            "edges": [],
        })

    def test_missing_keys_seeded(self):
        session = self._session(
            a={"promptTemplateVersionId": 9, "variables": {"Style": "noir"}},
            b={"promptTemplateVersionId": "9"},
        )
        assert fill_prompt_variables(session, self.VERSIONS) == ["a", "b"]
        assert session.graph.get_node("a").config["variables"] == {"Novel_Text": "", "Style": "noir"}
        assert session.graph.get_node("b").config["variables"] == {"Novel_Text": "", "Style": ""}

    def test_complete_nodes_untouched(self):
        session = self._session(
            a={"promptTemplateVersionId": 9, "variables": {"Novel_Text": "x", "Style": "y", "Old": "z"}},
            b={"promptTemplateVersionId": 10},
            c={"promptTemplateVersionId": 99},
            d={},
        )
        assert fill_prompt_variables(session, self.VERSIONS) == []
        assert "Old" in session.graph.get_node("a").config["variables"]
        assert "variables" not in session.graph.get_node("b").config
