"""
Error taxonomy for meetgrid.

    ValidationError  - malformed input (from >= to, bad instant). Raised at the
                       input boundary; never caught by the engine.
    PersistenceError - base for failures reported by a MeetingStore.
      NetworkError   - remote commit failed; the local edit is kept and can be
                       retried with the identical payload.
      NotFoundError  - the resource no longer exists remotely; pending local
                       edits are discarded.
"""

from __future__ import annotations

from typing import Any


class MeetgridError(Exception):
    """Base error carrying a human-readable message."""

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serialize for CLI/API responses."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            **({"details": self.details} if self.details else {}),
        }


class ValidationError(MeetgridError, ValueError):
    """Input violates a data-model invariant."""


class PersistenceError(MeetgridError):
    """A MeetingStore operation failed."""

    recoverable = True


class NetworkError(PersistenceError):
    """The remote store could not be reached or rejected the write."""


class NotFoundError(PersistenceError):
    """The resource was deleted remotely."""

    recoverable = False


def classify_error(exc: BaseException) -> PersistenceError:
    """Map any exception raised by a store call onto the taxonomy.

    Unknown exceptions are treated as recoverable network failures so the
    local edit is kept and a retry stays possible.
    """
    if isinstance(exc, PersistenceError):
        return exc
    return NetworkError(str(exc) or type(exc).__name__, cause=type(exc).__name__)


__all__ = [
    "MeetgridError",
    "ValidationError",
    "PersistenceError",
    "NetworkError",
    "NotFoundError",
    "classify_error",
]
