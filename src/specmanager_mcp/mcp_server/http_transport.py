"""Session-multiplexing streamable HTTP gateway.

One FastAPI app serves every client on ``/mcp``:

* ``POST`` with a registered ``mcp-session-id`` goes straight to that
  session's transport.  Anything else needs a credential
  (``Authorization: Bearer <key>`` or ``X-API-Key``) and must be an
  ``initialize`` request, which opens a new session bound to that credential.
* ``GET`` opens the server-to-client stream of an existing session.
* ``DELETE`` destroys the session immediately.

``/health`` is unauthenticated and reports identity, version and mode.
"""

from __future__ import annotations

import json
import logging

from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any

import uvicorn

from fastapi import FastAPI
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import Message, Receive, Scope, Send

from specmanager_mcp.config import ServerConfig
from specmanager_mcp.mcp_server.session_context import SessionRegistry
from specmanager_mcp.mcp_utils.debug_logger import DebugLogger

logger = logging.getLogger(__name__)

MCP_PATH = "/mcp"
GRACEFUL_SHUTDOWN_TIMEOUT = 5

UNAUTHORIZED_BODY = {
    "error": "Unauthorized",
    "message": "API key required. Provide via Authorization: Bearer <key> or X-API-Key header.",
}


def extract_credential(headers: Headers) -> str | None:
    """Return the API key from ``Authorization: Bearer`` or ``X-API-Key``; bearer wins."""
    scheme, _, token = headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    api_key = headers.get("x-api-key", "").strip()
    return api_key or None


def is_initialize_request(body: bytes) -> bool:
    try:
        payload = json.loads(body)
    except ValueError:
        return False
    return isinstance(payload, dict) and payload.get("method") == "initialize" and "id" in payload


def _replay_receive(body: bytes, receive: Receive) -> Receive:
    """Hand an already-read body to the next consumer, then fall through to ``receive``."""
    replayed = False

    async def replay() -> Message:
        nonlocal replayed
        if not replayed:
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


def _without_header(scope: Scope, name: str) -> Scope:
    raw_name = name.lower().encode("latin-1")
    return {**scope, "headers": [(k, v) for k, v in scope.get("headers", []) if k.lower() != raw_name]}


async def _send_and_capture_status(
    handler: Callable[[Scope, Receive, Send], Awaitable[None]],
    scope: Scope,
    receive: Receive,
    send: Send,
) -> int | None:
    status: int | None = None

    async def send_wrapper(message: Message) -> None:
        nonlocal status
        if message["type"] == "http.response.start":
            status = message["status"]
        await send(message)

    await handler(scope, receive, send_wrapper)
    return status


class _UvicornServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the lifecycle controller."""

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class HttpGateway:
    """Multiplexed adapter: many sessions over one streamable HTTP endpoint."""

    transport_name = "http"

    def __init__(self, config: ServerConfig | None = None, registry: SessionRegistry | None = None) -> None:
        self.config: ServerConfig = ServerConfig() if config is None else config
        self.registry: SessionRegistry = SessionRegistry(self.config) if registry is None else registry
        self.app: FastAPI = FastAPI(title=self.config.name, version=self.config.version, lifespan=self._lifespan)
        self._server: uvicorn.Server | None = None
        self._closed: bool = False
        self._setup_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncIterator[None]:
        async with self.registry.run():
            yield

    def _setup_routes(self) -> None:
        gateway = self

        class _McpEndpoint:
            async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
                await gateway.handle_mcp(scope, receive, send)

        # A non-function endpoint is mounted as a raw ASGI app, so the
        # session transports can stream responses themselves.
        self.app.add_route(MCP_PATH, _McpEndpoint(), methods=["GET", "POST", "DELETE"])

        @self.app.get("/health")
        async def health_check() -> dict[str, Any]:
            """Health check endpoint."""
            return {
                "status": "ok",
                "server": self.config.name,
                "version": self.config.version,
                "transport": self.transport_name,
                "sessions": len(self.registry),
            }

    # ------------------------------------------------------------------
    # /mcp
    # ------------------------------------------------------------------

    async def handle_mcp(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        if request.method == "POST":
            await self._handle_post(request, scope, receive, send)
        elif request.method == "GET":
            await self._handle_get(request, scope, receive, send)
        elif request.method == "DELETE":
            await self._handle_delete(request, scope, receive, send)
        else:
            response = JSONResponse({"error": "Method Not Allowed"}, status_code=405, headers={"Allow": "GET, POST, DELETE"})
            await response(scope, receive, send)

    async def _handle_post(self, request: Request, scope: Scope, receive: Receive, send: Send) -> None:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)
        session = self.registry.lookup(session_id)
        if session is not None and session.transport is not None:
            await session.transport.handle_request(scope, receive, send)
            return

        credential = extract_credential(request.headers)
        if credential is None:
            logger.warning("Rejected MCP request without an API key")
            await JSONResponse(UNAUTHORIZED_BODY, status_code=401)(scope, receive, send)
            return

        body = await request.body()
        if not is_initialize_request(body):
            if session_id:
                response = JSONResponse({"error": "Not Found", "message": "Session not found or expired. Re-initialize."}, status_code=404)
            else:
                response = JSONResponse({"error": "Bad Request", "message": "No valid session ID provided. Send an initialize request first."}, status_code=400)
            await response(scope, receive, send)
            return

        if session_id:
            # Stale id on a fresh initialize: drop it so the new transport accepts the request.
            DebugLogger.debug_session(session_id, "unknown on initialize, opening a new session")
            scope = _without_header(scope, MCP_SESSION_ID_HEADER)

        status: int | None = None
        new_session = None
        try:
            new_session = await self.registry.create_session(credential)
            assert new_session.transport is not None
            status = await _send_and_capture_status(new_session.transport.handle_request, scope, _replay_receive(body, receive), send)
        except Exception:
            logger.exception("Failed to open MCP session")
            if status is None:
                await JSONResponse({"error": "Internal server error"}, status_code=500)(scope, receive, send)
        finally:
            if new_session is not None and (status is None or status >= 400):
                await self.registry.destroy(new_session.session_id)

    async def _handle_get(self, request: Request, scope: Scope, receive: Receive, send: Send) -> None:
        session = self.registry.lookup(request.headers.get(MCP_SESSION_ID_HEADER))
        if session is None or session.transport is None:
            await JSONResponse({"error": "No active session"}, status_code=400)(scope, receive, send)
            return
        await session.transport.handle_request(scope, receive, send)

    async def _handle_delete(self, request: Request, scope: Scope, receive: Receive, send: Send) -> None:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)
        if session_id:
            await self.registry.destroy(session_id)
        await Response(status_code=204)(scope, receive, send)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def serve(self) -> None:
        """Listen until ``close()`` is called."""
        config = uvicorn.Config(
            app=self.app,
            host=self.config.host,
            port=self.config.port,
            log_level="info",
            timeout_graceful_shutdown=GRACEFUL_SHUTDOWN_TIMEOUT,
        )
        self._server = _UvicornServer(config)
        if self._closed:
            return

        logger.info(f"HTTP transport listening on http://{self.config.host}:{self.config.port}")
        logger.info(f"MCP endpoint: POST/GET/DELETE http://{self.config.host}:{self.config.port}{MCP_PATH}")
        logger.info(f"Health check: GET http://{self.config.host}:{self.config.port}/health")
        await self._server.serve()
        if not self._server.started:
            raise RuntimeError(f"HTTP server failed to start on {self.config.host}:{self.config.port}")

    async def close(self) -> None:
        """Destroy all sessions, then stop the listener.  Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        destroyed = await self.registry.destroy_all()
        logger.info(f"Closed {destroyed} session(s)")
        if self._server is not None:
            self._server.should_exit = True
