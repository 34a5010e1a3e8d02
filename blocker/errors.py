"""Error types for the blocker agent."""
from enum import Enum
from typing import Any, Dict


class ErrorKind(Enum):
    """Error kinds reported through the reply channel."""
    UNKNOWN = "Unknown"
    LIMIT_EXCEEDED = "LimitExceeded"
    STORAGE = "StorageError"
    BOOT = "BootError"


class AgentError(Exception):
    """Base class for agent errors."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN):
        self.message = message
        self.kind = kind
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.message} ({self.kind.value})"


class LimitExceededError(AgentError):
    """Too many rule sets requested for the rule engine."""
    def __init__(self, requested: int, limit: int):
        self.requested = requested
        self.limit = limit
        super().__init__(
            f"{requested} rule sets requested, engine allows at most {limit}",
            ErrorKind.LIMIT_EXCEEDED,
        )


class StorageError(AgentError):
    """Persisted state could not be read or written."""
    def __init__(self, message: str):
        super().__init__(message, ErrorKind.STORAGE)


class BootError(AgentError):
    """The startup sequence could not complete."""
    def __init__(self, message: str, state: str = ""):
        self.state = state
        super().__init__(message, ErrorKind.BOOT)


def format_error_payload(exc: Exception) -> Dict[str, Any]:
    """Format an exception as a reply payload."""
    if isinstance(exc, AgentError):
        payload: Dict[str, Any] = {"error": exc.kind.value, "message": exc.message}
        if isinstance(exc, LimitExceededError):
            payload["limit"] = exc.limit
        return payload
    return {"error": ErrorKind.UNKNOWN.value, "message": str(exc) or type(exc).__name__}
