"""SpecManager MCP server - task management tools for AI agents.

Exposes specmanager.ai projects, specs and tasks as MCP tools over either a
single stdio stream or a session-multiplexed streamable HTTP endpoint.
Programmatic use: SpecManagerClient for async access to the backend API.
"""

__version__ = "0.1.0"

from specmanager_mcp.client import SpecManagerClient
from specmanager_mcp.config import ServerConfig
from specmanager_mcp.errors import ErrorKind, SpecManagerError

__all__ = [
    "ErrorKind",
    "ServerConfig",
    "SpecManagerClient",
    "SpecManagerError",
    "__version__",
]
