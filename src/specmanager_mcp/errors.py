"""Error taxonomy shared by the backend client, the tool dispatcher and the gateways.

Every failure that can reach a tool caller is a ``SpecManagerError`` tagged with
an ``ErrorKind``.  The dispatcher is the only place that turns one into text.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_CONFIGURED = "NOT_CONFIGURED"
    UNAUTHORIZED = "UNAUTHORIZED"
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    PROJECT_NOT_FOUND = "PROJECT_NOT_FOUND"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    API_ERROR = "API_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_OPERATION = "UNKNOWN_OPERATION"


# Backend ``code`` values that all mean "the task is not in the right status".
STATE_TRANSITION_CODES = frozenset(
    {
        "INVALID_STATE_TRANSITION",
        "TASK_ALREADY_IN_PROGRESS",
        "TASK_NOT_STARTED",
        "TASK_ALREADY_COMPLETED",
    },
)


class SpecManagerError(Exception):
    """A failure tagged with its kind and, when it came from HTTP, the status code."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.API_ERROR, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message: str = message
        self.kind: ErrorKind = kind
        self.status_code: int | None = status_code

    def __repr__(self) -> str:
        return f"SpecManagerError(kind={self.kind.value}, status_code={self.status_code}, message={self.message!r})"

    def format(self) -> str:
        return f"Error [{self.kind.value}]: {self.message}"


def map_error_code(api_code: str | None, status_code: int) -> ErrorKind:
    """Map a backend error ``code`` and HTTP status onto an ``ErrorKind``."""
    if status_code in (401, 403):
        return ErrorKind.UNAUTHORIZED
    if api_code == "TASK_NOT_FOUND":
        return ErrorKind.TASK_NOT_FOUND
    if api_code == "PROJECT_NOT_FOUND":
        return ErrorKind.PROJECT_NOT_FOUND
    if api_code in STATE_TRANSITION_CODES:
        return ErrorKind.INVALID_STATE_TRANSITION
    return ErrorKind.API_ERROR
