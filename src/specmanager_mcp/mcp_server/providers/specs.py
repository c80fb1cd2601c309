"""Spec Tool Provider - list-specs.

Specs are listed with their task counts.  Fully completed specs are hidden
unless ``includeCompleted`` is set.
"""

from __future__ import annotations

from typing import Annotated, ClassVar

from pydantic import AfterValidator, BaseModel, Field

from specmanager_mcp.mcp_server.tool_providers import ToolProvider, ToolSpec, check_uuid


class ListSpecsInput(BaseModel):
    projectId: Annotated[str, AfterValidator(check_uuid)] | None = None
    workingDir: str | None = None
    includeCompleted: bool = Field(False, description="Include specs where all tasks are completed")


class SpecToolProvider(ToolProvider):
    """MCP tool provider for spec listing."""

    TOOLS: ClassVar[tuple[ToolSpec, ...]] = (
        ToolSpec(
            name="list-specs",
            description=(
                "List specs for a project with task counts.\n\n"
                "Returns specs with pending/in-progress/done task counts. You must specify either:\n"
                "- projectId: The project UUID\n"
                "- workingDir: Path to workspace (will auto-detect project from git remote)\n\n"
                "By default, only shows specs with pending or in-progress tasks.\n"
                "Use includeCompleted=true to also show fully completed specs.\n\n"
                "If workingDir is provided, the tool will read .git/config to find the\n"
                "GitHub repository and match it to your linked projects."
            ),
            input_model=ListSpecsInput,
            handler="_handle_list_specs",
            input_schema={
                "type": "object",
                "properties": {
                    "projectId": {
                        "type": "string",
                        "description": "Project ID (UUID). If not provided, will try to auto-detect from workingDir.",
                    },
                    "workingDir": {
                        "type": "string",
                        "description": "Working directory path. Used to auto-detect project from git remote.",
                    },
                    "includeCompleted": {
                        "type": "boolean",
                        "default": False,
                        "description": "Include specs where all tasks are completed. Default: false",
                    },
                },
            },
        ),
    )

    async def _handle_list_specs(self, params: ListSpecsInput) -> str:
        resolved = await self._resolve_project(params.projectId, params.workingDir)
        if isinstance(resolved, str):
            return resolved

        async with self.client.project_scope(resolved.project_id):
            specs = await self.client.list_specs()

        visible = specs if params.includeCompleted else [s for s in specs if not s.is_complete]
        if not visible:
            if specs and not params.includeCompleted:
                return f"All specs{resolved.label} are completed! Use includeCompleted=true to see them."
            return f"No specs found{resolved.label}."

        lines = resolved.header_lines()
        lines.append(f"Found {len(visible)} spec(s):")
        lines.append("")
        for spec in visible:
            counts = spec.taskCounts
            lines.append(f"- {spec.title} {'[DONE]' if spec.is_complete else ''}".rstrip())
            lines.append(f"   ID: {spec.id}")
            lines.append(f"   Stage: {spec.stage}")
            lines.append(
                f"   Tasks: {counts.pending} pending, {counts.inProgress} in-progress, {counts.done} done ({counts.total} total)",
            )
            lines.append("")
        return "\n".join(lines)
