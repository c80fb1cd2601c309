"""MCP server side of SpecManager: tool dispatch, sessions and the two transports."""

from .tool_providers import ToolDispatcher, ToolProvider, ToolSpec
from .server import create_mcp_server
from .session_context import Session, SessionRegistry
from .http_transport import HttpGateway
from .stdio_transport import StdioGateway

__all__ = [
    "HttpGateway",
    "Session",
    "SessionRegistry",
    "StdioGateway",
    "ToolDispatcher",
    "ToolProvider",
    "ToolSpec",
    "create_mcp_server",
]
