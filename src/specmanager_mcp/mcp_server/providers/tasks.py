"""Task Tool Provider - list-tasks, get-task, start-task, complete-task, report-progress.

Status transitions (pending -> in-progress -> done) are enforced by the
backend.  Nothing here pre-checks a task's status; a rejected transition
arrives as an INVALID_STATE_TRANSITION error and is surfaced as-is.
"""

from __future__ import annotations

import logging

from typing import Annotated, ClassVar, Literal

from pydantic import AfterValidator, BaseModel, Field

from specmanager_mcp.mcp_server.tool_providers import ToolProvider, ToolSpec, check_non_empty, check_uuid
from specmanager_mcp.models import ProgressUpdate, TaskCompletion

logger = logging.getLogger(__name__)

EXCERPT_LIMIT = 2000

TaskId = Annotated[str, AfterValidator(lambda v: check_uuid(v, "Task ID must be a valid UUID"))]
OptionalUuid = Annotated[str, AfterValidator(check_uuid)]


class ListTasksInput(BaseModel):
    projectId: OptionalUuid | None = None
    workingDir: str | None = None
    status: Literal["pending", "in-progress", "done", "all"] = "pending"
    specId: OptionalUuid | None = None


class TaskIdInput(BaseModel):
    taskId: TaskId


class CompleteTaskInput(BaseModel):
    taskId: TaskId
    summary: Annotated[str, AfterValidator(lambda v: check_non_empty(v, "Summary is required"))]
    filesModified: Annotated[list[str], AfterValidator(lambda v: check_non_empty(v, "At least one file must be listed"))]
    implementation: str | None = None


class ReportProgressInput(BaseModel):
    taskId: TaskId
    message: Annotated[str, AfterValidator(lambda v: check_non_empty(v, "Progress message is required"))]
    percent: float | None = Field(None, ge=0, le=100)


def _excerpt(content: str) -> str:
    truncated = "\n...(truncated)" if len(content) > EXCERPT_LIMIT else ""
    return f"{content[:EXCERPT_LIMIT]}{truncated}"


def _format_percent(percent: float) -> str:
    return f"{percent:g}"


def _task_id_schema(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


class TaskToolProvider(ToolProvider):
    """MCP tool provider for task listing, inspection and state transitions."""

    TOOLS: ClassVar[tuple[ToolSpec, ...]] = (
        ToolSpec(
            name="list-tasks",
            description=(
                "List available tasks for execution.\n\n"
                "Returns tasks filtered by status and optionally by spec. You must specify either:\n"
                "- projectId: The project UUID\n"
                "- workingDir: Path to workspace (will auto-detect project from git remote)\n\n"
                'By default, returns only pending tasks. Use status="in-progress" to see\n'
                'tasks currently being worked on, or status="all" to see everything.\n\n'
                "Optionally filter by specId to only show tasks from a specific spec.\n\n"
                "If workingDir is provided, the tool will read .git/config to find the\n"
                "GitHub repository and match it to your linked projects."
            ),
            input_model=ListTasksInput,
            handler="_handle_list_tasks",
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
                    "status": {
                        "type": "string",
                        "enum": ["pending", "in-progress", "done", "all"],
                        "default": "pending",
                        "description": "Filter tasks by status. Default: pending",
                    },
                    "specId": {
                        "type": "string",
                        "description": "Filter tasks by spec ID (UUID). Only return tasks from this spec.",
                    },
                },
            },
        ),
        ToolSpec(
            name="get-task",
            description=(
                "Get detailed information about a specific task.\n\n"
                "Returns full task details including:\n"
                "- Implementation steps and purpose\n"
                "- Files to modify\n"
                "- Related spec context (requirements and design excerpts)\n\n"
                "Use this before starting work on a task to understand what needs to be done."
            ),
            input_model=TaskIdInput,
            handler="_handle_get_task",
            input_schema={
                "type": "object",
                "properties": {"taskId": _task_id_schema("The task ID (UUID) to get details for")},
                "required": ["taskId"],
            },
        ),
        ToolSpec(
            name="start-task",
            description=(
                "Mark a task as in-progress and begin execution.\n\n"
                "IMPORTANT: Call this BEFORE starting to work on a task.\n"
                "This ensures proper state tracking and notifies users via the UI.\n\n"
                "The task must be in 'pending' status to start it.\n"
                "Already completed tasks cannot be restarted."
            ),
            input_model=TaskIdInput,
            handler="_handle_start_task",
            input_schema={
                "type": "object",
                "properties": {"taskId": _task_id_schema("The task ID (UUID) to start working on")},
                "required": ["taskId"],
            },
        ),
        ToolSpec(
            name="complete-task",
            description=(
                "Mark a task as completed with implementation summary.\n\n"
                "Call this after successfully implementing a task.\n"
                "Provide details about what was done and which files were modified.\n\n"
                "The task must be in 'in-progress' status to complete it.\n"
                "Use 'start-task' first if the task hasn't been started."
            ),
            input_model=CompleteTaskInput,
            handler="_handle_complete_task",
            input_schema={
                "type": "object",
                "properties": {
                    "taskId": _task_id_schema("The task ID (UUID) being completed"),
                    "summary": {"type": "string", "description": "Brief summary of what was implemented"},
                    "filesModified": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "List of file paths that were modified or created",
                    },
                    "implementation": {"type": "string", "description": "Optional detailed implementation notes"},
                },
                "required": ["taskId", "summary", "filesModified"],
            },
        ),
        ToolSpec(
            name="report-progress",
            description=(
                "Report progress on a task that is in-progress.\n\n"
                "Use this to keep users informed about what you're working on.\n"
                "Progress updates appear in real-time in the VSCode extension and web dashboard.\n\n"
                "The task must be in 'in-progress' status to report progress.\n\n"
                "Good progress messages describe the current action, e.g.:\n"
                '- "Creating API endpoint for user authentication"\n'
                '- "Writing unit tests for the new component"\n'
                '- "Refactoring database queries"'
            ),
            input_model=ReportProgressInput,
            handler="_handle_report_progress",
            input_schema={
                "type": "object",
                "properties": {
                    "taskId": _task_id_schema("The task ID (UUID) being worked on"),
                    "message": {"type": "string", "description": "Progress message describing current work"},
                    "percent": {
                        "type": "number",
                        "minimum": 0,
                        "maximum": 100,
                        "description": "Optional percentage complete (0-100)",
                    },
                },
                "required": ["taskId", "message"],
            },
        ),
    )

    async def _handle_list_tasks(self, params: ListTasksInput) -> str:
        resolved = await self._resolve_project(params.projectId, params.workingDir)
        if isinstance(resolved, str):
            return resolved

        async with self.client.project_scope(resolved.project_id):
            tasks = await self.client.list_tasks(status=params.status, spec_id=params.specId)

        if not tasks:
            status_text = "" if params.status == "all" else f"{params.status} "
            return f"No {status_text}tasks found{resolved.label}."

        lines = resolved.header_lines()
        lines.append(f"Found {len(tasks)} task(s):")
        lines.append("")
        for task in tasks:
            spec_title = f" ({task.spec.title})" if task.spec is not None and task.spec.title else ""
            files = f"\n   Files: {', '.join(task.files)}" if task.files else ""
            lines.append(f"- {task.number_prefix}{task.title}{spec_title}")
            lines.append(f"   ID: {task.id}")
            lines.append(f"   Status: {task.status}{files}")
            lines.append("")
        return "\n".join(lines)

    async def _handle_get_task(self, params: TaskIdInput) -> str:
        task = await self.client.get_task(params.taskId)

        sections = [
            f"# {task.number_prefix}{task.title}",
            f"**Status:** {task.status}",
            f"**Task ID:** {task.id}",
            f"**Spec:** {task.spec.title} ({task.spec.stage} stage)",
        ]
        if task.files:
            sections.append("\n## Files to Modify\n" + "\n".join(f"- {f}" for f in task.files))
        if task.implementation:
            sections.append(f"\n## Implementation Details\n{task.implementation}")
        if task.purposes:
            sections.append(f"\n## Purpose\n{task.purposes}")

        requirements = task.spec.requirementsContent
        design = task.spec.designContent
        if requirements or design:
            sections.append("\n## Spec Context")
            if requirements:
                sections.append(f"\n### Requirements Excerpt\n{_excerpt(requirements)}")
            if design:
                sections.append(f"\n### Design Excerpt\n{_excerpt(design)}")

        return "\n".join(sections)

    async def _handle_start_task(self, params: TaskIdInput) -> str:
        task = await self.client.start_task(params.taskId)
        return (
            f"Task started: {task.number_prefix}{task.title}\n\n"
            f"Task ID: {task.id}\n"
            f"Status: {task.status}\n\n"
            "You can now begin implementing this task.\n"
            "Use 'report-progress' to send status updates.\n"
            "Use 'complete-task' when finished."
        )

    async def _handle_complete_task(self, params: CompleteTaskInput) -> str:
        completion = TaskCompletion(
            summary=params.summary,
            filesModified=params.filesModified,
            implementation=params.implementation,
        )
        task = await self.client.complete_task(params.taskId, completion)
        files = "\n".join(f"- {f}" for f in params.filesModified)
        return (
            f"Task completed: {task.number_prefix}{task.title}\n\n"
            f"Task ID: {task.id}\n"
            f"Status: {task.status}\n\n"
            f"Summary: {params.summary}\n\n"
            f"Files Modified:\n{files}\n\n"
            "The task has been marked as done and users have been notified."
        )

    async def _handle_report_progress(self, params: ReportProgressInput) -> str:
        await self.client.report_progress(params.taskId, ProgressUpdate(message=params.message, percent=params.percent))
        percent = f" ({_format_percent(params.percent)}%)" if params.percent is not None else ""
        return f"Progress reported{percent}: {params.message}"
