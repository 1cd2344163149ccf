"""
Exception hierarchy for tasksync.

Every failure inside the sync engine degrades to polling, a dropped event or
a forced refresh; these exceptions carry enough context to log that decision.
Errors raised by the REST client live in ``tasksync.client.errors``.
"""

from typing import Any, Optional


class TasksyncError(Exception):
    """
    Base exception class for all tasksync errors.

    Attributes:
        message: Human-readable error message
        error_code: Optional error code for reference
        details: Optional dictionary with additional error details
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging or JSON output."""
        return {
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


# --- Stream Errors ---


class StreamError(TasksyncError):
    """Base class for errors on the event stream connection."""

    pass


class StreamUnavailableError(StreamError):
    """
    The server cannot serve an event stream for this session.

    Raised when the stream endpoint answers with a non-2xx status, with a
    content type other than ``text/event-stream``, or when the session id is
    a placeholder. Callers switch to snapshot polling instead of retrying.

    Examples:
        >>> raise StreamUnavailableError(
        ...     message="Stream endpoint returned application/json",
        ...     error_code="STREAM-NotEventStream",
        ...     details={"session_id": "s1", "content_type": "application/json"},
        ... )
    """

    pass


class FrameError(StreamError):
    """A single frame could not be decoded; the frame is dropped."""

    pass


# --- Payload Errors ---


class PayloadValidationError(TasksyncError):
    """An event or snapshot payload failed schema validation."""

    pass


# --- Cache Errors ---


class CacheError(TasksyncError):
    """
    The local graph cache could not be read or written.

    Never escapes ``GraphCache``: reads degrade to a cache miss and writes are
    best-effort.
    """

    pass


# --- Action Errors ---


class ActionError(TasksyncError):
    """A remote approve/reject/apply/revert call failed."""

    pass
