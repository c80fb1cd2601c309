"""Async client for the specmanager.ai public API.

One ``SpecManagerClient`` wraps exactly one credential.  It carries an optional
"current project" scope that list operations fall back to; ``project_scope()``
overrides it for the duration of one call and always restores the prior value.

Usage::

    async with SpecManagerClient("https://api.specmanager.ai", api_key) as client:
        async with client.project_scope(project_id):
            tasks = await client.list_tasks(status="pending")
"""

from __future__ import annotations

import logging

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Any, TypeVar

import httpx

from httpx import AsyncClient, Timeout
from pydantic import BaseModel, ValidationError

from specmanager_mcp.errors import ErrorKind, SpecManagerError, map_error_code
from specmanager_mcp.models import (
    ProgressUpdate,
    Project,
    Spec,
    Task,
    TaskCompletion,
    TaskDetail,
    User,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

API_PREFIX = "/api/v1"

# Timeout for establishing the TCP/TLS connection
CONNECT_TIMEOUT = 10.0
# Timeout for a whole backend operation
DEFAULT_OP_TIMEOUT = 30.0

PROJECT_REQUIRED_MESSAGE = "Project ID is required. Set SPECMANAGER_PROJECT_ID or call set_project_id()"


class SpecManagerClient:
    """Typed wrapper around the specmanager.ai REST API for a single credential."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        project_id: str | None = None,
        *,
        timeout: float = DEFAULT_OP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url: str = api_url.rstrip("/")
        self._api_key: str = api_key
        self._project_id: str | None = project_id or None
        self._closed: bool = False
        self._client = AsyncClient(
            timeout=Timeout(timeout, connect=min(CONNECT_TIMEOUT, timeout)),
            follow_redirects=True,
            transport=transport,
        )

    def __repr__(self) -> str:
        # Never include the credential.
        return f"SpecManagerClient(api_url={self._api_url!r}, project_id={self._project_id!r})"

    async def __aenter__(self) -> SpecManagerClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # -- project scope -------------------------------------------------------

    @property
    def api_url(self) -> str:
        return self._api_url

    def get_project_id(self) -> str | None:
        return self._project_id

    def set_project_id(self, project_id: str | None) -> None:
        self._project_id = project_id or None

    @asynccontextmanager
    async def project_scope(self, project_id: str) -> AsyncIterator[SpecManagerClient]:
        """Use ``project_id`` as the scope for the enclosed calls, then restore the previous one."""
        previous = self._project_id
        self._project_id = project_id
        try:
            yield self
        finally:
            self._project_id = previous

    def _require_project(self) -> str:
        if not self._project_id:
            raise SpecManagerError(PROJECT_REQUIRED_MESSAGE, ErrorKind.NOT_CONFIGURED)
        return self._project_id

    # -- transport -----------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-API-Key": self._api_key,
        }

    async def _request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Perform one authenticated round trip and return the decoded JSON body."""
        url = f"{self._api_url}{API_PREFIX}{path}"
        try:
            resp = await self._client.request(method, url, json=body, params=params, headers=self._headers())
        except httpx.TimeoutException as e:
            raise SpecManagerError(f"Network error: request to {path} timed out", ErrorKind.NETWORK_ERROR) from e
        except httpx.HTTPError as e:
            raise SpecManagerError(f"Network error: {e}", ErrorKind.NETWORK_ERROR) from e

        logger.debug(f"{method} {path} -> {resp.status_code}")

        if not resp.is_success:
            raise self._error_from_response(resp)

        try:
            payload = resp.json()
        except ValueError as e:
            raise SpecManagerError(f"Network error: invalid JSON from {path}: {e}", ErrorKind.NETWORK_ERROR) from e
        if not isinstance(payload, dict):
            raise SpecManagerError(f"Unexpected response shape from {path}", ErrorKind.API_ERROR, resp.status_code)
        return payload

    @staticmethod
    def _error_from_response(resp: httpx.Response) -> SpecManagerError:
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        message = data.get("message") or data.get("error") or f"HTTP {resp.status_code}"
        code = data.get("code") or "API_ERROR"
        return SpecManagerError(str(message), map_error_code(str(code), resp.status_code), resp.status_code)

    @staticmethod
    def _parse(model: type[ModelT], payload: dict[str, Any], key: str) -> ModelT:
        try:
            return model.model_validate(payload.get(key))
        except ValidationError as e:
            raise SpecManagerError(f"Unexpected '{key}' payload from API: {e.error_count()} invalid field(s)", ErrorKind.API_ERROR) from e

    @staticmethod
    def _parse_list(model: type[ModelT], payload: dict[str, Any], key: str) -> list[ModelT]:
        try:
            return [model.model_validate(item) for item in payload.get(key) or []]
        except ValidationError as e:
            raise SpecManagerError(f"Unexpected '{key}' payload from API: {e.error_count()} invalid field(s)", ErrorKind.API_ERROR) from e

    # -- API operations ------------------------------------------------------

    async def get_me(self) -> User:
        """Return the user owning the credential (validates the key)."""
        payload = await self._request("GET", "/me")
        return self._parse(User, payload, "user")

    async def list_projects(self) -> list[Project]:
        payload = await self._request("GET", "/projects")
        return self._parse_list(Project, payload, "projects")

    async def get_project_by_repo(self, repo_full_name: str) -> Project | None:
        """Find the project linked to ``owner/repo``; ``None`` when nothing is linked."""
        try:
            payload = await self._request("GET", "/projects/by-repo", params={"repo": repo_full_name})
        except SpecManagerError as e:
            if e.kind is ErrorKind.PROJECT_NOT_FOUND:
                return None
            raise
        if payload.get("project") is None:
            return None
        return self._parse(Project, payload, "project")

    async def list_specs(self) -> list[Spec]:
        project_id = self._require_project()
        payload = await self._request("GET", f"/projects/{project_id}/specs")
        return self._parse_list(Spec, payload, "specs")

    async def list_tasks(self, status: str | None = None, spec_id: str | None = None) -> list[Task]:
        project_id = self._require_project()
        params = {"status": status or "all"}
        if spec_id:
            params["specId"] = spec_id
        payload = await self._request("GET", f"/projects/{project_id}/tasks", params=params)
        return self._parse_list(Task, payload, "tasks")

    async def get_task(self, task_id: str) -> TaskDetail:
        payload = await self._request("GET", f"/tasks/{task_id}")
        return self._parse(TaskDetail, payload, "task")

    async def start_task(self, task_id: str) -> Task:
        payload = await self._request("PATCH", f"/tasks/{task_id}/start")
        return self._parse(Task, payload, "task")

    async def complete_task(self, task_id: str, completion: TaskCompletion) -> Task:
        payload = await self._request("PATCH", f"/tasks/{task_id}/complete", body=completion.model_dump(exclude_none=True))
        return self._parse(Task, payload, "task")

    async def report_progress(self, task_id: str, progress: ProgressUpdate) -> None:
        await self._request("POST", f"/tasks/{task_id}/progress", body=progress.model_dump(exclude_none=True))

    async def test_connection(self) -> bool:
        """Check that the backend's unauthenticated health endpoint answers 2xx."""
        try:
            resp = await self._client.get(f"{self._api_url}/health")
        except httpx.HTTPError as e:
            logger.debug(f"Health check against {self._api_url} failed: {e}")
            return False
        return resp.is_success

    # -- lifecycle -----------------------------------------------------------

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def aclose(self) -> None:
        """Close the underlying httpx client.  Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self._client.aclose()
