"""Exception hierarchy for session API client errors.

Structured error information with status codes and details for every HTTP
call the sync engine makes.
"""

from typing import Any, Optional


class ClientError(Exception):
    """Base exception for API client errors.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code if applicable, None otherwise.
        details: Additional error context as a dictionary.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ConnectionError(ClientError):
    """Failed to connect to the API server."""

    pass


class TimeoutError(ClientError):
    """Request timed out, including after all retry attempts."""

    pass


class APIError(ClientError):
    """API returned an error response (4xx/5xx).

    Attributes:
        retryable: Whether this error may be resolved by retrying.
            5xx errors are retryable by default, 4xx are not; an explicit
            'retryable' field in details overrides both.
    """

    _RETRYABLE_STATUS_CODES = {500, 502, 503, 504}

    @property
    def retryable(self) -> bool:
        if "retryable" in self.details:
            return bool(self.details["retryable"])

        if self.status_code is None:
            return False

        return self.status_code in self._RETRYABLE_STATUS_CODES

    def __str__(self) -> str:
        return self.message
