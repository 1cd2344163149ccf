"""Session API client module.

HTTP access to the session API with consistent error handling, retry logic
and URL resolution, plus a typed facade returning snapshot models.
"""

from tasksync.client.api import SessionApi
from tasksync.client.async_client import AsyncApiClient
from tasksync.client.errors import (
    APIError,
    ClientError,
    ConnectionError,
    TimeoutError,
)

__all__ = [
    "AsyncApiClient",
    "SessionApi",
    "ClientError",
    "ConnectionError",
    "TimeoutError",
    "APIError",
]
