"""Per-session MCP server instances.

Every session gets its own lowlevel ``Server`` bound to its own dispatcher, so
capability negotiation and tool listing happen per session while all sessions
share the same tool code.
"""

from __future__ import annotations

import logging

from typing import Any

from mcp import types
from mcp.server import Server

from specmanager_mcp.config import ServerConfig
from specmanager_mcp.mcp_server.tool_providers import ToolDispatcher

logger = logging.getLogger(__name__)


def create_mcp_server(dispatcher: ToolDispatcher, config: ServerConfig | None = None) -> Server:
    """Create an MCP server whose tool handlers are bound to ``dispatcher``."""
    config = ServerConfig() if config is None else config
    server = Server(name=config.name, version=config.version)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        """List all available MCP tools."""
        return dispatcher.list_tools()

    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: dict[str, Any]) -> types.CallToolResult:
        """Call a tool by name with arguments.

        SDK-side JSON schema validation is disabled; the dispatcher validates
        against the pydantic input models and reports failures per field.
        """
        return await dispatcher.call_tool(name, arguments)

    return server
