"""Debug tracing for sessions and tool calls.

Tracing is off by default and switched on with ``SPECMANAGER_DEBUG`` or
``--debug``.  Messages go through the module logger at INFO so they show up
without lowering the global log level.  Every line names the session it
belongs to; credentials are never part of a trace.
"""

from __future__ import annotations

import logging
import time

from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class DebugLogger:
    """Session and tool-call tracer toggled by the server configuration."""

    _debug_enabled: bool = False

    @staticmethod
    def set_debug_enabled(enabled: bool) -> None:
        DebugLogger._debug_enabled = enabled

    @staticmethod
    def debug_session(session_id: str | None, event: str) -> None:
        """Log a session lifecycle event such as ``created`` or ``closed``."""
        if DebugLogger._debug_enabled:
            logger.info(f"[DEBUG-SESSION] {session_id or '-'}: {event}")

    @staticmethod
    def debug_tool(session_id: str | None, tool_name: str, outcome: str, details: str | None = None) -> None:
        """Log the outcome of one tool call in one session.

        Args:
            session_id: Session the call arrived on (``None`` outside a session)
            tool_name: Tool name as sent by the client
            outcome: ``INVALID``, ``OK`` or the error kind
            details: Extra text, e.g. the duration or the number of issues
        """
        if DebugLogger._debug_enabled:
            message = f"[DEBUG-TOOL] {session_id or '-'} {tool_name} -> {outcome}"
            if details:
                message += f" ({details})"
            logger.info(message)

    @staticmethod
    @contextmanager
    def trace_tool_call(session_id: str | None, tool_name: str) -> Iterator[None]:
        """Trace one handler run with its duration.

        Example:
            with DebugLogger.trace_tool_call(self.session_id, "start-task"):
                text = await provider.call_tool(spec, params)
        """
        started = time.perf_counter()
        outcome = "OK"
        try:
            yield
        except BaseException as e:
            outcome = getattr(getattr(e, "kind", None), "value", type(e).__name__)
            raise
        finally:
            duration_ms = int((time.perf_counter() - started) * 1000)
            DebugLogger.debug_tool(session_id, tool_name, outcome, f"{duration_ms}ms")
