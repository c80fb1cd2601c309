"""Session records and the in-memory session registry.

A session binds one credential to one SpecManagerClient, one ToolDispatcher,
one MCP ``Server`` instance and (in HTTP mode) one streamable HTTP transport.
The registry is process-local; nothing is persisted.
"""

from __future__ import annotations

import logging

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from uuid import uuid4

import anyio

from anyio.abc import TaskGroup, TaskStatus
from mcp.server import Server
from mcp.server.streamable_http import StreamableHTTPServerTransport

from specmanager_mcp.client import SpecManagerClient
from specmanager_mcp.config import ServerConfig
from specmanager_mcp.mcp_server.server import create_mcp_server
from specmanager_mcp.mcp_server.tool_providers import ToolDispatcher
from specmanager_mcp.mcp_utils.debug_logger import DebugLogger

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str], StreamableHTTPServerTransport]
ClientFactory = Callable[[str, str | None], SpecManagerClient]


@dataclass(eq=False)
class Session:
    session_id: str
    client: SpecManagerClient
    dispatcher: ToolDispatcher
    server: Server
    transport: StreamableHTTPServerTransport | None = None
    cancel_scope: anyio.CancelScope = field(default_factory=anyio.CancelScope)
    closed: bool = False

    async def close(self) -> None:
        """Terminate the transport, stop the server loop and close the backend client.  Idempotent.

        A tool call already talking to the backend is allowed to finish; its
        result is discarded.
        """
        if self.closed:
            return
        self.closed = True
        if self.transport is not None:
            await self.transport.terminate()
        self.cancel_scope.cancel()
        await self.dispatcher.wait_idle()
        await self.client.aclose()
        DebugLogger.debug_session(self.session_id, "closed")


def build_session(
    session_id: str,
    client: SpecManagerClient,
    config: ServerConfig,
    transport: StreamableHTTPServerTransport | None = None,
) -> Session:
    dispatcher = ToolDispatcher(client, session_id=session_id)
    server = create_mcp_server(dispatcher, config)
    return Session(session_id=session_id, client=client, dispatcher=dispatcher, server=server, transport=transport)


class SessionRegistry:
    """Maps session ids to live sessions and owns their server tasks.

    Usage (inside the ASGI lifespan)::

        async with registry.run():
            session = await registry.create_session(api_key)
            ...
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        *,
        client_factory: ClientFactory | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self.config: ServerConfig = ServerConfig() if config is None else config
        self._client_factory: ClientFactory = client_factory or self._default_client
        self._transport_factory: TransportFactory = transport_factory or self._default_transport
        self._sessions: dict[str, Session] = {}
        self._task_group: TaskGroup | None = None

    def _default_client(self, credential: str, project_id: str | None) -> SpecManagerClient:
        return SpecManagerClient(self.config.api_url, credential, project_id, timeout=self.config.timeout)

    def _default_transport(self, session_id: str) -> StreamableHTTPServerTransport:
        return StreamableHTTPServerTransport(
            mcp_session_id=session_id,
            is_json_response_enabled=self.config.json_response,
        )

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    @property
    def session_ids(self) -> list[str]:
        return list(self._sessions)

    @property
    def is_running(self) -> bool:
        return self._task_group is not None

    @asynccontextmanager
    async def run(self) -> AsyncIterator[SessionRegistry]:
        """Own the task group that runs every session's server loop.

        All sessions are destroyed when the context exits.
        """
        if self._task_group is not None:
            raise RuntimeError("SessionRegistry.run() is already active")

        async with anyio.create_task_group() as tg:
            self._task_group = tg
            logger.info("Session registry started")
            try:
                yield self
            finally:
                with anyio.CancelScope(shield=True):
                    await self.destroy_all()
                tg.cancel_scope.cancel()
                self._task_group = None
                logger.info("Session registry stopped")

    async def create_session(self, credential: str, project_id: str | None = None) -> Session:
        """Create a session bound to ``credential`` and start its server loop."""
        if self._task_group is None:
            raise RuntimeError("Session registry is not running. Make sure to use run().")
        if not credential:
            raise ValueError("A credential is required to create a session")

        session_id = uuid4().hex
        while session_id in self._sessions:
            session_id = uuid4().hex

        client = self._client_factory(credential, project_id)
        session = build_session(session_id, client, self.config, self._transport_factory(session_id))
        self._sessions[session_id] = session
        try:
            await self._task_group.start(self._run_session, session)
        except BaseException:
            self._sessions.pop(session_id, None)
            with anyio.CancelScope(shield=True):
                await session.close()
            raise

        logger.info(f"Created session {session_id} ({len(self._sessions)} active)")
        DebugLogger.debug_session(session_id, "created")
        return session

    async def _run_session(self, session: Session, *, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED) -> None:
        transport = session.transport
        if transport is None:
            raise ValueError(f"Session {session.session_id} has no transport")
        try:
            with session.cancel_scope:
                async with transport.connect() as (read_stream, write_stream):
                    task_status.started()
                    await session.server.run(
                        read_stream,
                        write_stream,
                        session.server.create_initialization_options(),
                        stateless=False,
                    )
        except Exception:
            logger.exception(f"Session {session.session_id} crashed")
        finally:
            # However the server loop ended (DELETE, stream closure, crash), forget the session.
            with anyio.CancelScope(shield=True):
                await self.destroy(session.session_id)
                await session.close()

    def lookup(self, session_id: str | None) -> Session | None:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    async def destroy(self, session_id: str) -> bool:
        """Remove and close a session.  Returns False if it was not registered."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        logger.info(f"Destroying session {session_id}")
        await session.close()
        return True

    async def destroy_all(self) -> int:
        """Destroy every registered session; returns how many were destroyed."""
        destroyed = 0
        for session_id in list(self._sessions):
            if await self.destroy(session_id):
                destroyed += 1
        return destroyed
