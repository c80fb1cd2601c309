"""Configuration for the SpecManager MCP server.

Values come from environment variables (optionally seeded from a ``.env`` file
by the entry point) and may be overridden from the command line.
"""

from __future__ import annotations

import os

from collections.abc import Mapping

from pydantic import BaseModel, Field, field_validator

from specmanager_mcp import __version__

DEFAULT_API_URL = "https://api.specmanager.ai"
DEFAULT_PORT = 3000

_TRUTHY = frozenset({"true", "1", "yes", "on"})


class ServerConfig(BaseModel):
    """Configuration for the MCP server."""

    name: str = "specmanager-mcp"
    version: str = __version__
    host: str = "0.0.0.0"
    port: int = Field(DEFAULT_PORT, ge=0, le=65535)
    api_url: str = DEFAULT_API_URL
    api_key: str | None = Field(None, repr=False, description="Backend credential; required for stdio mode only")
    project_id: str | None = Field(None, description="Default project scope for stdio sessions")
    timeout: float = Field(30.0, gt=0, description="Per-request timeout for backend calls, in seconds")
    json_response: bool = True
    debug: bool = False

    @field_validator("api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/") or DEFAULT_API_URL

    @field_validator("api_key", "project_id")
    @classmethod
    def _blank_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: object) -> ServerConfig:
        """Build a config from ``environ`` (defaults to ``os.environ``).

        Keyword overrides that are ``None`` are ignored so argparse defaults
        do not mask the environment.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {
            "api_url": env.get("SPECMANAGER_API_URL") or DEFAULT_API_URL,
            "api_key": env.get("SPECMANAGER_API_KEY"),
            "project_id": env.get("SPECMANAGER_PROJECT_ID"),
            "debug": env.get("SPECMANAGER_DEBUG", "").strip().lower() in _TRUTHY,
        }
        if env.get("HOST"):
            values["host"] = env["HOST"]
        if env.get("PORT"):
            values["port"] = env["PORT"]
        if env.get("SPECMANAGER_TIMEOUT"):
            values["timeout"] = env["SPECMANAGER_TIMEOUT"]
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)
