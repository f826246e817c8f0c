"""Payload models for the external collaborators around the editor.

These are the shapes exchanged with the backend, validated with pydantic:

  ToolDefinition    — a reusable tool from the tool catalog (cloned on drop)
  ValidationResult  — the workflow validator's verdict (treated as opaque)
  ProviderConfig    — a model provider, used to populate model pickers
  PromptVersion     — a prompt template version; its variable keys seed
                      a node's config.variables

Field names follow the backend's camelCase wire format via aliases; Python
code uses the snake_case attribute names.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pipeline_studio.workflow.model import Port


class VariableSpec(BaseModel):
    """A port declaration inside a tool definition."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key: str
    name: str | None = None
    type: str = "text"
    required: bool = False
    default_value: Any = Field(None, alias="defaultValue")

    def to_port(self) -> Port:
        raw: dict[str, Any] = {
            "key": self.key,
            "name": self.name,
            "type": self.type,
            "required": self.required,
        }
        if "default_value" in self.model_fields_set:
            raw["defaultValue"] = self.default_value
        return Port.from_dict(raw)


class ToolDefinition(BaseModel):
    """A reusable tool node from the catalog.

    Its ``inputs`` / ``outputs`` are copied verbatim onto the node created when
    the tool is dropped on the canvas; ``prompt_template_version_id`` and
    ``model`` seed the node's config.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int | str
    name: str
    description: str | None = None
    prompt_template_version_id: int | None = Field(None, alias="promptTemplateVersionId")
    model: str | None = None
    enabled: bool = True
    inputs: list[VariableSpec] = Field(default_factory=list)
    outputs: list[VariableSpec] = Field(default_factory=list)


class ValidationIssue(BaseModel):
    """One validator finding. ``code`` is opaque to the editor."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    code: str
    message: str
    node_id: str | None = Field(None, alias="nodeId")
    edge_id: str | None = Field(None, alias="edgeId")


class ValidationResult(BaseModel):
    """Verdict returned by the workflow validation service."""

    ok: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    @classmethod
    def request_failed(cls, detail: str) -> ValidationResult:
        """Result used when the validator could not be reached."""
        return cls(
            ok=False,
            errors=[ValidationIssue(code="request_failed", message=detail)],
        )


class ProviderConfig(BaseModel):
    """A configured AI provider (LLM, image, or video)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int | str | None = None
    name: str = ""
    type: str
    enabled: bool = True
    models: list[str] = Field(default_factory=list)


class PromptVersion(BaseModel):
    """One version of a prompt template, as listed by the prompt library."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int
    template_id: int | None = Field(None, alias="templateId")
    version: int | None = None
    name: str | None = None
    content: str = ""
    variables: list[str] = Field(default_factory=list)
