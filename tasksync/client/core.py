"""Core shared logic for the session API client.

Pure functions and configuration: URL resolution, retry policy, backoff
calculation (request retries and stream reconnects) and response parsing.
"""

import random
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from tasksync.client.errors import APIError
from tasksync.config.settings import get_api_settings


@dataclass(frozen=True)
class ClientConfig:
    """Immutable configuration for API client instances.

    Attributes:
        base_url: Base URL for API requests (e.g., http://localhost:8000/api)
        timeout: Request timeout in seconds
        max_retries: Maximum number of retry attempts for failed requests
        retry_delay: Base delay between retry attempts in seconds
    """

    base_url: str
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0


def resolve_url(explicit_url: Optional[str] = None) -> str:
    """Resolve the effective API URL.

    An explicit URL wins over the configured ``TASKSYNC_API_BASE_URL``.

    Returns:
        Resolved API base URL with trailing slash stripped
    """
    if explicit_url:
        return explicit_url.rstrip("/")
    return get_api_settings().base_url.rstrip("/")


def should_retry(
    status_code: int,
    attempt: int,
    max_retries: int,
    retryable: Optional[bool] = None,
) -> bool:
    """Determine if a request should be retried.

    Only server errors (5xx) are retried by default. An explicit
    ``retryable`` flag overrides the status code logic.

    Args:
        status_code: HTTP response status code
        attempt: Current attempt number (0-indexed)
        max_retries: Maximum number of retries allowed
        retryable: Explicit retryable flag from the API response

    Returns:
        True if the request should be retried, False otherwise
    """
    if attempt >= max_retries:
        return False

    if retryable is not None:
        return retryable

    return 500 <= status_code < 600


def calculate_backoff(attempt: int, base_delay: float) -> float:
    """Calculate exponential backoff delay with jitter.

    Uses the formula: base_delay * (2 ** attempt) + random(0, 1)
    """
    exponential_delay = base_delay * (2**attempt)
    jitter = random.random()
    return exponential_delay + jitter


def reconnect_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Capped exponential delay before the next stream reconnect.

    ``min(base_delay * 2 ** attempt, max_delay)``; deterministic, since a
    single client reconnects to a single stream.
    """
    return min(base_delay * (2**attempt), max_delay)


def parse_response(response: httpx.Response) -> Any:
    """Parse HTTP response, extracting JSON and handling errors.

    Returns:
        Parsed JSON body (object or list)

    Raises:
        APIError: For non-2xx responses or JSON parsing failures
    """
    if 200 <= response.status_code < 300:
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except Exception as e:
            raise APIError(
                message="Invalid JSON response from API",
                status_code=response.status_code,
                details={
                    "error": str(e),
                    "response_text": response.text[:500] if response.text else "",
                },
            ) from e

    try:
        error_data = response.json()
    except Exception:
        error_data = {"message": response.text}

    if isinstance(error_data, dict):
        error_message = (
            error_data.get("detail")
            or error_data.get("message")
            or error_data.get("error")
            or "Unknown error"
        )
    else:
        error_message = str(error_data) if error_data else "Unknown error"

    details = error_data if isinstance(error_data, dict) else {"raw": error_data}

    raise APIError(
        message=str(error_message),
        status_code=response.status_code,
        details=details,
    )


def unwrap_list(data: Any, key: str) -> list[Any]:
    """Extract a list from a bare list, ``{key: [...]}`` or ``{"data": [...]}``."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for candidate in (key, "data", "items"):
            value = data.get(candidate)
            if isinstance(value, list):
                return value
    return []


def unwrap_item(data: Any, key: str) -> Any:
    """Extract an object from ``{key: {...}}``, ``{"data": {...}}`` or itself."""
    if isinstance(data, dict):
        for candidate in (key, "data"):
            value = data.get(candidate)
            if isinstance(value, dict):
                return value
    return data
