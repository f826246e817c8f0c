"""Configuration for the pipeline studio HTTP client.

Environment variables (a ``.env`` file is loaded by the CLI first):

  STUDIO_API_ENDPOINT         backend origin, without the ``/api`` prefix
  STUDIO_API_TOKEN            bearer token for the admin API (optional)
  STUDIO_TIMEOUT              read timeout in seconds
  STUDIO_CONNECT_TIMEOUT      connect timeout in seconds
  STUDIO_LOG_LEVEL            root log level for the CLI
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Settings:
    """Immutable settings loaded from environment variables.

    ``timeout`` is generous because node tests run image and video
    generation synchronously; ``connect_timeout`` stays short so an
    unreachable backend fails fast.
    """

    api_token: str = field(default="", repr=False)
    api_endpoint: str = "http://localhost:3000"
    timeout: float = 300.0
    connect_timeout: float = 10.0
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            api_token=os.getenv("STUDIO_API_TOKEN", ""),
            api_endpoint=os.getenv("STUDIO_API_ENDPOINT", "http://localhost:3000").rstrip("/"),
            timeout=float(os.getenv("STUDIO_TIMEOUT", "300")),
            connect_timeout=float(os.getenv("STUDIO_CONNECT_TIMEOUT", "10")),
            log_level=os.getenv("STUDIO_LOG_LEVEL", "WARNING").upper(),
        )

    @property
    def base_url(self) -> str:
        """REST root; every backend route lives under ``/api``."""
        return f"{self.api_endpoint}/api"

    @property
    def headers(self) -> dict[str, str]:
        h: dict[str, str] = {"Content-Type": "application/json"}
        if self.api_token:
            h["Authorization"] = f"Bearer {self.api_token}"
        return h
