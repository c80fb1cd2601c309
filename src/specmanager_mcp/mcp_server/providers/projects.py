"""Project Tool Provider - list-projects.

Lists the caller's projects and, given a working directory, marks the one
linked to that directory's GitHub origin remote.
"""

from __future__ import annotations

import logging

from typing import ClassVar

from pydantic import BaseModel, Field

from specmanager_mcp.mcp_server.tool_providers import ToolProvider, ToolSpec
from specmanager_mcp.mcp_utils.git_util import get_github_repo_from_working_dir

logger = logging.getLogger(__name__)


class ListProjectsInput(BaseModel):
    workingDir: str | None = Field(None, description="Working directory path used for git remote auto-detection")


class ProjectToolProvider(ToolProvider):
    """MCP tool provider for project discovery."""

    TOOLS: ClassVar[tuple[ToolSpec, ...]] = (
        ToolSpec(
            name="list-projects",
            description=(
                "List your specmanager.ai projects.\n\n"
                "If workingDir is provided, will attempt to auto-detect the project by matching\n"
                "the git remote to your linked GitHub repositories.\n\n"
                "Use this to:\n"
                "- See all your available projects\n"
                "- Find the project ID for a specific repository\n"
                "- Auto-detect which project matches your current workspace"
            ),
            input_model=ListProjectsInput,
            handler="_handle_list_projects",
            input_schema={
                "type": "object",
                "properties": {
                    "workingDir": {
                        "type": "string",
                        "description": "Working directory path. If provided, will auto-detect project from git remote.",
                    },
                },
            },
        ),
    )

    async def _handle_list_projects(self, params: ListProjectsInput) -> str:
        detected_repo: str | None = None
        if params.workingDir:
            detected_repo = await get_github_repo_from_working_dir(params.workingDir)

        projects = await self.client.list_projects()
        if not projects:
            return "No projects found. Create a project at specmanager.ai first."

        detected_project = None
        if detected_repo:
            detected_project = next((p for p in projects if p.githubRepositoryFullName == detected_repo), None)

        lines: list[str] = []
        if detected_project is not None:
            lines.append(f"**Detected Project:** {detected_project.name}")
            lines.append(f"  ID: {detected_project.id}")
            lines.append(f"  Repository: {detected_repo}")
            lines.append("")
            lines.append("This project matches your current workspace.")
            lines.append("")
        elif detected_repo:
            lines.append(f"**Detected Repository:** {detected_repo}")
            lines.append("No project is linked to this repository.")
            lines.append("")

        lines.append(f"**Your Projects ({len(projects)}):**")
        lines.append("")

        for project in projects:
            marker = " (current)" if detected_project is not None and project.id == detected_project.id else ""
            lines.append(f"- **{project.name}**{marker}")
            lines.append(f"  ID: {project.id}")
            lines.append(f"  Repository: {project.githubRepositoryFullName or 'No repo linked'}")
            lines.append("")

        return "\n".join(lines)
