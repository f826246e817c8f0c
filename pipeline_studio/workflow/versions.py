"""Round trips between an EditingSession and the backend.

load_session          — fetch a template version and open it as a session
validate_session      — post a normalized snapshot to the workflow validator
save_session          — validate, then store a new template version when ok
run_node_test         — run a single node with form inputs coerced per port type
models_for_node       — model picker options for a node, from the provider list
load_prompt_versions  — every prompt template version, for the version picker
fill_prompt_variables — seed missing config variables from the chosen versions

The request helpers never touch the live graph: they read
``session.payload()`` (a normalized copy), so a failed request leaves the
session exactly as it was. fill_prompt_variables edits through the session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from pipeline_studio.client.studio_client import StudioClient
from pipeline_studio.workflow.model import Node
from pipeline_studio.workflow.port_types import coerce_test_inputs
from pipeline_studio.workflow.registry import provider_type_for
from pipeline_studio.workflow.schemas import PromptVersion, ProviderConfig, ValidationResult
from pipeline_studio.workflow.session import EditingSession

logger = logging.getLogger("pipeline_studio.workflow.versions")


def _is_error(result: Any) -> bool:
    return isinstance(result, dict) and "error" in result


def _error_detail(result: dict[str, Any]) -> str:
    detail = result.get("detail")
    if isinstance(detail, str) and detail.strip():
        return f"{result['error']}: {detail.strip()}"
    return str(result["error"])


@dataclass
class SaveOutcome:
    """Result of save_session.

    validation: The validator's verdict on the saved payload.
    version:    The created template version (backend dict), or None when
                validation failed or the save request was rejected.
    error:      Transport / backend error from the save request, if any.
    """

    validation: ValidationResult
    version: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.validation.ok and self.version is not None


async def load_session(
    client: StudioClient,
    template_id: int,
    version_id: int | None = None,
) -> EditingSession:
    """Open a template version for editing.

    Without ``version_id`` (a brand-new template) or when the fetch fails, the
    session starts from an empty graph, which normalization turns into Start
    and End.
    """
    if version_id is None:
        return EditingSession()
    data = await client.get_workflow_template_version(template_id, version_id)
    if _is_error(data) or not isinstance(data, dict):
        logger.warning(
            "Could not load template %s version %s; starting from an empty graph",
            template_id, version_id,
        )
        return EditingSession()
    return EditingSession.open(data)


async def validate_session(client: StudioClient, session: EditingSession) -> ValidationResult:
    result = await client.validate_workflow(session.payload())
    if _is_error(result):
        return ValidationResult.request_failed(_error_detail(result))
    try:
        return ValidationResult.model_validate(result)
    except ValidationError as e:
        logger.error("Malformed validation response: %s", e)
        return ValidationResult.request_failed("Malformed validation response")


async def save_session(
    client: StudioClient,
    template_id: int,
    session: EditingSession,
) -> SaveOutcome:
    """Validate the session and, only when the validator says ok, save a new version."""
    payload = session.payload()
    validation = await validate_session(client, session)
    if not validation.ok:
        logger.info(
            "Not saving template %s: %d validation error(s)", template_id, len(validation.errors),
        )
        return SaveOutcome(validation=validation)

    version = await client.create_workflow_template_version(template_id, payload)
    if _is_error(version):
        return SaveOutcome(validation=validation, error=_error_detail(version))
    logger.info("Saved template %s version %s", template_id, (version or {}).get("id"))
    return SaveOutcome(validation=validation, version=version)


async def run_node_test(
    client: StudioClient,
    node: Node,
    raw_inputs: dict[str, Any],
) -> Any:
    inputs = coerce_test_inputs(node.inputs, raw_inputs)
    return await client.test_node(node.kind, config=dict(node.config), inputs=inputs)


def models_for_node(
    node: Node,
    providers: list[ProviderConfig | dict[str, Any]],
) -> list[str]:
    """Models of the enabled providers matching the node kind's provider category."""
    provider_type = provider_type_for(node.kind)
    if provider_type is None:
        return []
    models: list[str] = []
    for raw in providers:
        provider = raw if isinstance(raw, ProviderConfig) else ProviderConfig.model_validate(raw)
        if provider.type != provider_type or not provider.enabled:
            continue
        for model in provider.models:
            if model not in models:
                models.append(model)
    return models


async def load_prompt_versions(client: StudioClient) -> list[PromptVersion]:
    """Every version of every prompt template, flattened in listing order.

    A prompt whose versions cannot be fetched is skipped with a warning; the
    picker simply shows fewer choices.
    """
    prompts = await client.list_prompts()
    if _is_error(prompts) or not isinstance(prompts, list):
        logger.warning("Could not list prompt templates: %s", prompts)
        return []

    versions: list[PromptVersion] = []
    for prompt in prompts:
        prompt_id = prompt.get("id") if isinstance(prompt, dict) else None
        if prompt_id is None:
            continue
        listed = await client.list_prompt_versions(prompt_id)
        if _is_error(listed) or not isinstance(listed, list):
            logger.warning("Could not list versions of prompt %s", prompt_id)
            continue
        for raw in listed:
            try:
                versions.append(PromptVersion.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping malformed version of prompt %s: %s", prompt_id, e)
    return versions


def fill_prompt_variables(
    session: EditingSession,
    versions: list[PromptVersion | dict[str, Any]],
) -> list[str]:
    """Seed config variables on nodes whose chosen prompt version declares keys they lack.

    Nodes already holding every key are left alone. Returns the ids of the
    nodes that were updated.
    """
    by_id: dict[Any, PromptVersion] = {}
    for raw in versions:
        version = raw if isinstance(raw, PromptVersion) else PromptVersion.model_validate(raw)
        by_id[version.id] = version

    updated: list[str] = []
    for node in list(session.graph.nodes):
        if node.is_start or node.is_end:
            continue
        version_id = node.config.get("promptTemplateVersionId")
        if isinstance(version_id, str) and version_id.isdigit():
            version_id = int(version_id)
        version = by_id.get(version_id)
        if version is None or not version.variables:
            continue
        current = node.config.get("variables")
        if isinstance(current, dict) and all(key in current for key in version.variables):
            continue
        if session.sync_prompt_variables(node.id, version.variables).ok:
            updated.append(node.id)
    if updated:
        logger.info("Seeded prompt variables on %d node(s)", len(updated))
    return updated
