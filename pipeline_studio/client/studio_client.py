"""Async pipeline studio REST API client using httpx."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from pipeline_studio.client.config import Settings

logger = logging.getLogger("pipeline_studio.client")


class StudioClient:
    """Thin async wrapper around the backend endpoints the workflow editor uses.

    Every response arrives in a ``{success, data, message}`` envelope; methods
    return ``data``. Failures (HTTP errors, network errors, ``success: false``)
    come back as ``{"error": ..., "detail": ...}`` dicts instead of raising.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            headers=settings.headers,
            timeout=httpx.Timeout(settings.timeout, connect=settings.connect_timeout),
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> StudioClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _unwrap(body: Any) -> Any:
        """Strip the response envelope, turning ``success: false`` into an error dict."""
        if isinstance(body, dict) and "success" in body:
            if not body.get("success"):
                return {"error": body.get("message") or "Request failed", "detail": body}
            return body.get("data")
        return body

    async def _get(self, path: str, params: dict | None = None) -> Any:
        try:
            r = await self._client.get(path, params=params)
            r.raise_for_status()
            return self._unwrap(r.json())
        except httpx.HTTPStatusError as e:
            logger.error("GET %s -> %s", path, e.response.status_code)
            return {"error": f"HTTP {e.response.status_code}", "detail": e.response.text}
        except Exception as e:
            logger.error("GET %s failed: %s", path, e)
            return {"error": str(e)}

    async def _post(self, path: str, payload: dict | None = None) -> Any:
        try:
            r = await self._client.post(path, json=payload or {})
            r.raise_for_status()
            return self._unwrap(r.json()) if r.text.strip() else {"success": True}
        except httpx.HTTPStatusError as e:
            logger.error("POST %s -> %s", path, e.response.status_code)
            return {"error": f"HTTP {e.response.status_code}", "detail": e.response.text}
        except Exception as e:
            logger.error("POST %s failed: %s", path, e)
            return {"error": str(e)}

    # ==================================================================
    # WORKFLOW VALIDATION / NODE TEST
    # ==================================================================

    async def validate_workflow(self, payload: dict[str, Any]) -> Any:
        """POST a ``{nodes, edges, metadata}`` triple to the validator."""
        return await self._post("/workflows/validate", payload)

    async def test_node(
        self,
        node_type: str,
        config: dict[str, Any] | None = None,
        inputs: dict[str, Any] | None = None,
    ) -> Any:
        return await self._post(
            "/workflows/node-test",
            {"nodeType": node_type, "config": config or {}, "inputs": inputs or {}},
        )

    # ==================================================================
    # TEMPLATES / VERSIONS
    # ==================================================================

    async def list_workflow_templates(self) -> Any:
        return await self._get("/workflows/templates")

    async def list_workflow_template_versions(self, template_id: int) -> Any:
        return await self._get(f"/workflows/templates/{template_id}/versions")

    async def get_workflow_template_version(self, template_id: int, version_id: int) -> Any:
        return await self._get(f"/workflows/templates/{template_id}/versions/{version_id}")

    async def create_workflow_template_version(
        self, template_id: int, payload: dict[str, Any],
    ) -> Any:
        return await self._post(f"/workflows/templates/{template_id}/versions", payload)

    # ==================================================================
    # TOOL CATALOG / PROVIDERS
    # ==================================================================

    async def list_node_tools(self, enabled: bool | None = True) -> Any:
        params = None if enabled is None else {"enabled": str(enabled).lower()}
        return await self._get("/node-tools", params=params)

    async def get_node_tool(self, tool_id: int) -> Any:
        return await self._get(f"/node-tools/{tool_id}")

    async def list_providers(self) -> Any:
        return await self._get("/admin/providers")

    # ==================================================================
    # PROMPT LIBRARY
    # ==================================================================

    async def list_prompts(self) -> Any:
        return await self._get("/prompts")

    async def list_prompt_versions(self, prompt_id: int) -> Any:
        return await self._get(f"/prompts/{prompt_id}/versions")

    async def get_prompt_version(self, prompt_id: int, version_id: int) -> Any:
        return await self._get(f"/prompts/{prompt_id}/versions/{version_id}")
