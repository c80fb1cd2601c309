"""Lifecycle controller: runs one transport adapter and shuts it down cleanly.

Handles SIGINT, SIGTERM and (where present) SIGHUP on the running event loop.
Shutdown is idempotent, so a second signal during an in-flight shutdown is a
no-op rather than an error.
"""

from __future__ import annotations

import asyncio
import logging
import signal

from typing import Protocol

from specmanager_mcp.errors import SpecManagerError

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = ("SIGINT", "SIGTERM", "SIGHUP")


class TransportAdapter(Protocol):
    """What the controller needs from the stdio and HTTP gateways."""

    transport_name: str

    async def serve(self) -> None: ...

    async def close(self) -> None: ...


class LifecycleController:
    def __init__(self, adapter: TransportAdapter) -> None:
        self.adapter: TransportAdapter = adapter
        self.cleanup_done: bool = False
        self.signalled: bool = False
        self._shutdown_task: asyncio.Task[None] | None = None
        self._installed_signals: list[signal.Signals] = []

    def setup_signal_handlers(self) -> None:
        """Setup signal handlers for clean shutdown."""
        loop = asyncio.get_running_loop()
        for name in SHUTDOWN_SIGNALS:
            sig = getattr(signal, name, None)
            if sig is None:
                continue
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                # Windows event loops and non-main threads cannot install handlers.
                logger.debug(f"Cannot install handler for {name}")
                continue
            self._installed_signals.append(sig)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._installed_signals:
            loop.remove_signal_handler(sig)
        self._installed_signals.clear()

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received {signal.Signals(sig).name}, shutting down gracefully...")
        self.signalled = True
        self.request_shutdown()

    def request_shutdown(self) -> asyncio.Task[None]:
        """Schedule ``shutdown()`` once and return its task."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.get_running_loop().create_task(self.shutdown())
        return self._shutdown_task

    async def shutdown(self) -> None:
        """Close the adapter (all sessions, then the listener or input stream)."""
        if self.cleanup_done:
            return
        self.cleanup_done = True
        logger.info("Cleaning up resources...")
        try:
            await self.adapter.close()
        except Exception:
            logger.exception("Error while closing the transport")
        logger.info("Cleanup complete")

    async def run(self) -> int:
        """Serve until the adapter stops; return the process exit code."""
        self.setup_signal_handlers()
        logger.info(f"Starting {self.adapter.transport_name} transport")
        exit_code = 0
        try:
            await self.adapter.serve()
        except SpecManagerError as e:
            logger.error(e.format())
            exit_code = 1
        except SystemExit as e:
            # uvicorn exits this way when it cannot bind.
            logger.error(f"{self.adapter.transport_name} transport failed to start (exit status {e.code})")
            exit_code = 1
        except Exception:
            logger.exception(f"{self.adapter.transport_name} transport stopped with an error")
            exit_code = 1
        finally:
            if self._shutdown_task is not None:
                await self._shutdown_task
            await self.shutdown()
            self.remove_signal_handlers()

        if self.signalled:
            return 0
        return exit_code
