"""Test helper utilities for the SpecManager MCP tests.

Provides common functionality used across multiple test modules:
- an in-memory fake of the specmanager.ai API served through httpx.MockTransport
- client / dispatcher / registry factories wired to that fake
- MCP request payloads and response extraction
"""

from __future__ import annotations

import json

from typing import Any

import anyio
import httpx

from mcp import types

from specmanager_mcp.client import SpecManagerClient
from specmanager_mcp.config import ServerConfig
from specmanager_mcp.mcp_server.session_context import SessionRegistry
from specmanager_mcp.mcp_server.tool_providers import ToolDispatcher

API_URL = "https://api.specmanager.test"

ALICE_KEY = "sm_alice_key"
BOB_KEY = "sm_bob_key"

WIDGETS_PROJECT_ID = "11111111-1111-4111-8111-111111111111"
GADGETS_PROJECT_ID = "22222222-2222-4222-8222-222222222222"
UNKNOWN_PROJECT_ID = "99999999-9999-4999-8999-999999999999"
AUTH_SPEC_ID = "33333333-3333-4333-8333-333333333333"
BILLING_SPEC_ID = "66666666-6666-4666-8666-666666666666"
PENDING_TASK_ID = "44444444-4444-4444-8444-444444444444"
DONE_TASK_ID = "55555555-5555-4555-8555-555555555555"
GADGET_TASK_ID = "77777777-7777-4777-8777-777777777777"
MISSING_TASK_ID = "88888888-8888-4888-8888-888888888888"

MCP_HEADERS = {
    "Accept": "application/json, text/event-stream",
    "Content-Type": "application/json",
    "mcp-protocol-version": "2025-03-26",
}


def _error(status: int, message: str, code: str) -> httpx.Response:
    return httpx.Response(status, json={"error": message, "message": message, "code": code})


class FakeSpecManagerApi:
    """Just enough of the specmanager.ai API to exercise every tool.

    Alice owns "Widgets" (acme/widgets); Bob owns "Gadgets" (bob/gadgets).
    Task status transitions are enforced the way the real backend does.
    Every request is recorded in ``requests``; requests to ``slow_paths`` are
    delayed, and ``completed`` lists the ones that were answered.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.fail_paths: dict[str, int] = {}
        self.slow_paths: dict[str, float] = {}
        self.completed: list[str] = []
        self.users = {
            ALICE_KEY: {"id": "user-alice", "email": "alice@example.com", "name": "Alice"},
            BOB_KEY: {"id": "user-bob", "email": "bob@example.com", "name": "Bob"},
        }
        self.projects = {
            WIDGETS_PROJECT_ID: {
                "owner": ALICE_KEY,
                "id": WIDGETS_PROJECT_ID,
                "name": "Widgets",
                "githubRepositoryFullName": "acme/widgets",
                "githubRepositoryUrl": "https://github.com/acme/widgets",
                "createdAt": "2025-01-01T00:00:00Z",
                "updatedAt": "2025-01-02T00:00:00Z",
            },
            GADGETS_PROJECT_ID: {
                "owner": BOB_KEY,
                "id": GADGETS_PROJECT_ID,
                "name": "Gadgets",
                "githubRepositoryFullName": "bob/gadgets",
                "githubRepositoryUrl": "https://github.com/bob/gadgets",
                "createdAt": "2025-01-01T00:00:00Z",
                "updatedAt": "2025-01-02T00:00:00Z",
            },
        }
        self.specs = {
            AUTH_SPEC_ID: {
                "projectId": WIDGETS_PROJECT_ID,
                "id": AUTH_SPEC_ID,
                "title": "User authentication",
                "stage": "tasks",
                "requirementsContent": "Users log in with email. " * 200,
                "designContent": "Sessions are stored server side.",
            },
            BILLING_SPEC_ID: {
                "projectId": WIDGETS_PROJECT_ID,
                "id": BILLING_SPEC_ID,
                "title": "Billing",
                "stage": "done",
                "requirementsContent": None,
                "designContent": None,
            },
        }
        self.tasks = {
            PENDING_TASK_ID: {
                "id": PENDING_TASK_ID,
                "taskNumber": "1.1",
                "title": "Create login endpoint",
                "status": "pending",
                "files": ["src/auth/login.py"],
                "implementation": "Add POST /login",
                "purposes": "Let users sign in",
                "sortOrder": 1,
                "specId": AUTH_SPEC_ID,
            },
            DONE_TASK_ID: {
                "id": DONE_TASK_ID,
                "taskNumber": "2.1",
                "title": "Add invoices table",
                "status": "done",
                "files": [],
                "sortOrder": 1,
                "specId": BILLING_SPEC_ID,
            },
            GADGET_TASK_ID: {
                "id": GADGET_TASK_ID,
                "taskNumber": None,
                "title": "Polish gadget",
                "status": "pending",
                "files": [],
                "sortOrder": 1,
                "specId": None,
                "projectId": GADGETS_PROJECT_ID,
            },
        }
        self.progress: list[dict[str, Any]] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle_async)

    async def handle_async(self, request: httpx.Request) -> httpx.Response:
        delay = self.slow_paths.get(request.url.path)
        if delay:
            await anyio.sleep(delay)
        response = self.handle(request)
        self.completed.append(f"{request.method} {request.url.path}")
        return response

    @property
    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith("/api/v1")]

    # -- data views ------------------------------------------------------------

    def _project_view(self, project: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in project.items() if k != "owner"}

    def _task_project(self, task: dict[str, Any]) -> str | None:
        if task.get("projectId"):
            return task["projectId"]
        spec = self.specs.get(task.get("specId") or "")
        return spec["projectId"] if spec else None

    def _task_view(self, task: dict[str, Any], detail: bool = False) -> dict[str, Any]:
        view = {k: v for k, v in task.items() if k != "projectId"}
        spec = self.specs.get(task.get("specId") or "")
        if spec is not None:
            keys = ("id", "title", "stage", "requirementsContent", "designContent") if detail else ("id", "title", "stage")
            view["spec"] = {k: spec[k] for k in keys}
        elif detail:
            view["spec"] = {"id": "none", "title": "Unassigned", "stage": "tasks"}
        return view

    def _spec_view(self, spec: dict[str, Any]) -> dict[str, Any]:
        statuses = [t["status"] for t in self.tasks.values() if t.get("specId") == spec["id"]]
        counts = {
            "pending": statuses.count("pending"),
            "inProgress": statuses.count("in-progress"),
            "done": statuses.count("done"),
            "total": len(statuses),
        }
        return {"id": spec["id"], "title": spec["title"], "stage": spec["stage"], "taskCounts": counts}

    # -- routing ---------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/health":
            return httpx.Response(200, json={"status": "ok"})
        if path in self.fail_paths:
            return httpx.Response(self.fail_paths[path], text="upstream exploded")

        key = request.headers.get("x-api-key")
        if key not in self.users:
            return _error(401, "Invalid API key", "UNAUTHORIZED")

        parts = path.removeprefix("/api/v1/").split("/")
        method = request.method

        if parts == ["me"]:
            return httpx.Response(200, json={"user": self.users[key]})
        if parts == ["projects"]:
            owned = [self._project_view(p) for p in self.projects.values() if p["owner"] == key]
            return httpx.Response(200, json={"projects": owned})
        if parts == ["projects", "by-repo"]:
            repo = request.url.params.get("repo")
            for project in self.projects.values():
                if project["owner"] == key and project["githubRepositoryFullName"] == repo:
                    return httpx.Response(200, json={"project": self._project_view(project)})
            return _error(404, "No project linked to this repository", "PROJECT_NOT_FOUND")
        if len(parts) == 3 and parts[0] == "projects":
            project = self.projects.get(parts[1])
            if project is None or project["owner"] != key:
                return _error(404, "Project not found", "PROJECT_NOT_FOUND")
            if parts[2] == "specs":
                specs = [self._spec_view(s) for s in self.specs.values() if s["projectId"] == parts[1]]
                return httpx.Response(200, json={"specs": specs})
            if parts[2] == "tasks":
                status = request.url.params.get("status", "all")
                spec_id = request.url.params.get("specId")
                tasks = [
                    self._task_view(t)
                    for t in self.tasks.values()
                    if self._task_project(t) == parts[1]
                    and (status == "all" or t["status"] == status)
                    and (spec_id is None or t.get("specId") == spec_id)
                ]
                return httpx.Response(200, json={"tasks": tasks})

        if parts[0] == "tasks" and len(parts) >= 2:
            task = self.tasks.get(parts[1])
            if task is None or self.projects[self._task_project(task)]["owner"] != key:
                return _error(404, "Task not found", "TASK_NOT_FOUND")
            action = parts[2] if len(parts) == 3 else None
            if action is None and method == "GET":
                return httpx.Response(200, json={"task": self._task_view(task, detail=True)})
            if action == "start" and method == "PATCH":
                if task["status"] == "in-progress":
                    return _error(409, "Task is already in progress", "TASK_ALREADY_IN_PROGRESS")
                if task["status"] == "done":
                    return _error(409, "Task is already completed", "TASK_ALREADY_COMPLETED")
                task["status"] = "in-progress"
                return httpx.Response(200, json={"task": self._task_view(task)})
            if action == "complete" and method == "PATCH":
                if task["status"] != "in-progress":
                    return _error(409, "Task must be started before it can be completed", "TASK_NOT_STARTED")
                task["status"] = "done"
                return httpx.Response(200, json={"task": self._task_view(task)})
            if action == "progress" and method == "POST":
                if task["status"] != "in-progress":
                    return _error(409, "Task must be in progress to report progress", "INVALID_STATE_TRANSITION")
                self.progress.append({"taskId": task["id"], **json.loads(request.content)})
                return httpx.Response(200, json={"success": True})

        return _error(404, f"No route for {method} {path}", "NOT_FOUND")


def make_client(api: FakeSpecManagerApi, api_key: str = ALICE_KEY, project_id: str | None = None) -> SpecManagerClient:
    return SpecManagerClient(API_URL, api_key, project_id, transport=api.transport)


def make_dispatcher(api: FakeSpecManagerApi, api_key: str = ALICE_KEY, project_id: str | None = None) -> ToolDispatcher:
    return ToolDispatcher(make_client(api, api_key, project_id))


def make_config(**overrides: Any) -> ServerConfig:
    return ServerConfig(api_url=API_URL, **overrides)


def make_registry(api: FakeSpecManagerApi, config: ServerConfig | None = None) -> SessionRegistry:
    config = make_config() if config is None else config
    return SessionRegistry(
        config,
        client_factory=lambda credential, project_id: SpecManagerClient(
            config.api_url,
            credential,
            project_id,
            transport=api.transport,
        ),
    )


def result_text(result: types.CallToolResult) -> str:
    """Return the single text block of a tool result."""
    assert len(result.content) == 1, result.content
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


def write_git_config(directory: Any, origin_url: str | None, extra_remote: str | None = None) -> None:
    """Create ``<directory>/.git/config`` with an optional origin (and another remote before it)."""
    git_dir = directory / ".git"
    git_dir.mkdir()
    sections = ["[core]\n\trepositoryformatversion = 0\n\tbare = false\n"]
    if extra_remote is not None:
        sections.append(f'[remote "upstream"]\n\turl = {extra_remote}\n\tfetch = +refs/heads/*:refs/remotes/upstream/*\n')
    if origin_url is not None:
        sections.append(f'[remote "origin"]\n\turl = {origin_url}\n\tfetch = +refs/heads/*:refs/remotes/origin/*\n')
    sections.append('[branch "main"]\n\tremote = origin\n\tmerge = refs/heads/main\n')
    (git_dir / "config").write_text("".join(sections), encoding="utf-8")


# ---------------------------------------------------------------------------
# JSON-RPC payloads
# ---------------------------------------------------------------------------


def initialize_request(request_id: int = 1) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "initialize",
        "params": {
            "protocolVersion": "2025-03-26",
            "capabilities": {},
            "clientInfo": {"name": "pytest", "version": "1.0"},
        },
    }


def initialized_notification() -> dict[str, Any]:
    return {"jsonrpc": "2.0", "method": "notifications/initialized"}


def tools_list_request(request_id: int) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "method": "tools/list", "params": {}}


def tool_call_request(request_id: int, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "tools/call",
        "params": {"name": name, "arguments": arguments or {}},
    }
