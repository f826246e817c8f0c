"""Async HTTP client for the pipeline studio backend."""

from pipeline_studio.client.config import Settings
from pipeline_studio.client.studio_client import StudioClient

__all__ = ["Settings", "StudioClient"]
