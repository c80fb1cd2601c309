"""Single-stream stdio adapter.

Exactly one implicit session, built eagerly from the environment credential.
Stdin end is a normal shutdown; any other stream failure propagates so the
lifecycle controller can exit non-zero.
"""

from __future__ import annotations

import logging

import anyio

from mcp.server.stdio import stdio_server

from specmanager_mcp.client import SpecManagerClient
from specmanager_mcp.config import ServerConfig
from specmanager_mcp.errors import ErrorKind, SpecManagerError
from specmanager_mcp.mcp_server.session_context import Session, build_session

logger = logging.getLogger(__name__)

STDIO_SESSION_ID = "stdio"
MISSING_KEY_MESSAGE = "API key is required for stdio mode. Set SPECMANAGER_API_KEY environment variable."


def _is_disconnect(exc: BaseException) -> bool:
    """True for a closed stream, alone or wrapped in task-group exception groups."""
    if isinstance(exc, anyio.ClosedResourceError):
        return True
    if isinstance(exc, BaseExceptionGroup):
        return all(_is_disconnect(inner) for inner in exc.exceptions)
    return False


class StdioGateway:
    """Serves one session over this process's stdin/stdout."""

    transport_name = "stdio"

    def __init__(self, config: ServerConfig | None = None, client: SpecManagerClient | None = None) -> None:
        self.config: ServerConfig = ServerConfig() if config is None else config
        if client is None:
            if not self.config.api_key:
                raise SpecManagerError(MISSING_KEY_MESSAGE, ErrorKind.NOT_CONFIGURED)
            client = SpecManagerClient(
                self.config.api_url,
                self.config.api_key,
                self.config.project_id,
                timeout=self.config.timeout,
            )
        self.session: Session = build_session(STDIO_SESSION_ID, client, self.config)

    async def serve(self) -> None:
        """Run the session until stdin ends or ``close()`` is called."""
        server = self.session.server
        logger.info(f"{self.config.name} v{self.config.version} running on stdio")
        if self.config.project_id:
            logger.info(f"Default project: {self.config.project_id}")

        try:
            with self.session.cancel_scope:
                async with stdio_server() as (read_stream, write_stream):
                    await server.run(read_stream, write_stream, server.create_initialization_options())
        except anyio.ClosedResourceError:
            logger.info("Client disconnected")
        except BaseExceptionGroup as eg:
            if not _is_disconnect(eg):
                raise
            logger.info("Client disconnected")
        finally:
            with anyio.CancelScope(shield=True):
                await self.session.close()
        logger.info("stdio session ended")

    async def close(self) -> None:
        await self.session.close()
