"""Base ToolProvider, tool registry and the per-session ToolDispatcher.

Flow:
  1. MCP Server -> ToolDispatcher.call_tool(name, arguments)
  2. Dispatcher looks up the ToolSpec by name (UNKNOWN_OPERATION if absent).
  3. Arguments are validated against the tool's pydantic input model.  A
     failure is reported per field and nothing reaches the backend.
  4. The owning provider's handler runs with the validated model and the
     session's SpecManagerClient, returning prose.
  5. Any failure is rendered here, and only here, as tagged text.

One dispatcher exists per session.  Its lock serialises tool calls so that the
temporary project scope set by one call is never observed by another call of
the same session.
"""

from __future__ import annotations

import logging
import re

from dataclasses import dataclass, field
from typing import Any, ClassVar

import anyio

from mcp import types
from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticCustomError

from specmanager_mcp.client import SpecManagerClient
from specmanager_mcp.errors import ErrorKind, SpecManagerError
from specmanager_mcp.mcp_utils.debug_logger import DebugLogger
from specmanager_mcp.mcp_utils.git_util import get_github_repo_from_working_dir

logger = logging.getLogger(__name__)

UNKNOWN_ERROR_MESSAGE = "An unknown error occurred"

_UUID_PATTERN = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\Z")


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def create_success_response(text: str) -> types.CallToolResult:
    """Create a standardized MCP success response."""
    return types.CallToolResult(content=[types.TextContent(type="text", text=text)], isError=False)


def create_error_response(text: str) -> types.CallToolResult:
    """Create a standardized MCP error response."""
    return types.CallToolResult(content=[types.TextContent(type="text", text=text)], isError=True)


def format_validation_error(error: ValidationError) -> str:
    """Render a pydantic ValidationError as ``Validation error:`` plus one ``- field: reason`` line per issue."""
    lines = []
    for issue in error.errors(include_url=False):
        path = ".".join(str(part) for part in issue.get("loc", ())) or "arguments"
        lines.append(f"- {path}: {issue.get('msg', 'Invalid value')}")
    return "Validation error:\n" + "\n".join(lines)


# ---------------------------------------------------------------------------
# Shared input validators
# ---------------------------------------------------------------------------


def check_uuid(value: str, message: str = "Invalid uuid") -> str:
    """Raise a pydantic error carrying ``message`` verbatim unless ``value`` is a hyphenated UUID."""
    if not _UUID_PATTERN.match(value):
        raise PydanticCustomError("uuid", message)
    return value


def check_non_empty(value: Any, message: str) -> Any:
    if len(value) < 1:
        raise PydanticCustomError("too_short", message)
    return value


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolSpec:
    """A named operation: its advertised schema, its input contract and its handler method."""

    name: str
    description: str
    input_model: type[BaseModel]
    handler: str
    input_schema: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    def to_tool(self) -> types.Tool:
        return types.Tool(name=self.name, description=self.description, inputSchema=self.input_schema)


@dataclass(frozen=True)
class ResolvedProject:
    project_id: str
    name: str | None = None
    detected_from_repo: bool = False

    @property
    def label(self) -> str:
        return f' for project "{self.name}"' if self.name else ""

    def header_lines(self) -> list[str]:
        if self.detected_from_repo and self.name:
            return [f"**Project:** {self.name} (auto-detected from git)", ""]
        return []


def no_linked_project_message(repo_full_name: str) -> str:
    return (
        f"No project found linked to repository: {repo_full_name}\n\n"
        "Use 'list-projects' to see your available projects, or link this repository\n"
        "to a project at specmanager.ai."
    )


def undetectable_repo_message(working_dir: str) -> str:
    return (
        f"Could not detect git repository from: {working_dir}\n\n"
        "Make sure the directory contains a .git folder with a remote origin configured.\n"
        "Alternatively, provide a projectId directly."
    )


NO_PROJECT_MESSAGE = (
    "No project specified. Please provide either:\n"
    "- projectId: The project UUID\n"
    "- workingDir: Path to a git repository linked to your project\n\n"
    "Use 'list-projects' to see your available projects."
)


# ---------------------------------------------------------------------------
# Base ToolProvider
# ---------------------------------------------------------------------------


class ToolProvider:
    """Base class for MCP tool providers.

    Subclasses populate **TOOLS** with ``ToolSpec`` entries whose ``handler``
    names an async method taking the validated input model and returning text.
    Handlers raise ``SpecManagerError`` for failures and never format them.
    """

    TOOLS: ClassVar[tuple[ToolSpec, ...]] = ()

    def __init__(self, client: SpecManagerClient) -> None:
        self.client: SpecManagerClient = client

    def list_tools(self) -> list[types.Tool]:
        return [spec.to_tool() for spec in self.TOOLS]

    async def call_tool(self, spec: ToolSpec, params: BaseModel) -> str:
        handler = getattr(self, spec.handler)
        return await handler(params)

    async def _resolve_project(self, project_id: str | None, working_dir: str | None) -> ResolvedProject | str:
        """Pick the project for a list call.

        Order: explicit ``project_id``, then git auto-detection from
        ``working_dir``, then the client's current scope.  Returns guidance
        text instead of a project when none can be determined.
        """
        if project_id:
            return ResolvedProject(project_id)

        if working_dir:
            repo_full_name = await get_github_repo_from_working_dir(working_dir)
            if not repo_full_name:
                return undetectable_repo_message(working_dir)
            project = await self.client.get_project_by_repo(repo_full_name)
            if project is None:
                return no_linked_project_message(repo_full_name)
            return ResolvedProject(project.id, project.name, detected_from_repo=True)

        current = self.client.get_project_id()
        if current:
            return ResolvedProject(current)
        return NO_PROJECT_MESSAGE


# ---------------------------------------------------------------------------
# ToolDispatcher - routes tool calls for one session
# ---------------------------------------------------------------------------


class ToolDispatcher:
    """Validates and routes MCP tool calls for a single session's client."""

    def __init__(
        self,
        client: SpecManagerClient,
        providers: list[ToolProvider] | None = None,
        session_id: str | None = None,
    ) -> None:
        self.client: SpecManagerClient = client
        self.session_id: str | None = session_id
        self.providers: list[ToolProvider] = []
        self._tool_map: dict[str, tuple[ToolProvider, ToolSpec]] = {}
        self._lock = anyio.Lock()
        if providers is None:
            self.register_all_providers()
        else:
            for provider in providers:
                self._register(provider)

    def _register(self, provider: ToolProvider) -> None:
        self.providers.append(provider)
        for spec in provider.TOOLS:
            if spec.name in self._tool_map:
                raise ValueError(f"Tool registered twice: {spec.name}")
            self._tool_map[spec.name] = (provider, spec)

    def register_all_providers(self) -> None:
        """Import and register every concrete provider."""
        from specmanager_mcp.mcp_server.providers import (
            ProjectToolProvider,
            SpecToolProvider,
            TaskToolProvider,
        )

        for cls in (ProjectToolProvider, SpecToolProvider, TaskToolProvider):
            self._register(cls(self.client))

    @property
    def tool_names(self) -> list[str]:
        return list(self._tool_map)

    def list_tools(self) -> list[types.Tool]:
        tools: list[types.Tool] = []
        for provider in self.providers:
            tools.extend(provider.list_tools())
        return tools

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> types.CallToolResult:
        """Validate, invoke and render one tool call.  Never raises for domain failures."""
        entry = self._tool_map.get(name)
        if entry is None:
            error = SpecManagerError(f"Unknown tool: {name}", ErrorKind.UNKNOWN_OPERATION)
            logger.warning(f"Rejected call to unknown tool {name!r}")
            return create_error_response(error.format())
        provider, spec = entry

        try:
            params = spec.input_model.model_validate(arguments or {})
        except ValidationError as e:
            DebugLogger.debug_tool(self.session_id, name, "INVALID", f"{e.error_count()} issue(s)")
            return create_error_response(format_validation_error(e))

        async with self._lock:
            try:
                # A started backend call runs to completion even if the session closes.
                with anyio.CancelScope(shield=True), DebugLogger.trace_tool_call(self.session_id, name):
                    text = await provider.call_tool(spec, params)
            except SpecManagerError as e:
                logger.info(f"Tool {name} failed: [{e.kind.value}] {e.message}")
                return create_error_response(e.format())
            except Exception:
                logger.exception(f"Tool {name} raised an unexpected error")
                return create_error_response(UNKNOWN_ERROR_MESSAGE)
        return create_success_response(text)

    async def wait_idle(self) -> None:
        """Return once no tool call is running."""
        async with self._lock:
            pass
