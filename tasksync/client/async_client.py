"""Asynchronous HTTP client for the session API.

``AsyncApiClient`` wraps ``httpx.AsyncClient`` with retry handling for JSON
requests and exposes a raw streaming request for the event stream.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

from tasksync.client.core import (
    ClientConfig,
    calculate_backoff,
    parse_response,
    resolve_url,
    should_retry,
)
from tasksync.client.errors import ConnectionError, TimeoutError
from tasksync.config.settings import get_api_settings
from tasksync.logging import get_logger

logger = get_logger(__name__)


class AsyncApiClient:
    """Asynchronous HTTP client for the session API.

    Usage:
        async with AsyncApiClient() as client:
            session = await client.get("/sessions/abc")

    Attributes:
        config: Immutable client configuration
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the async client.

        Args:
            base_url: Explicit base URL (overrides configuration)
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts for server errors
            retry_delay: Base delay between retries in seconds
            transport: Optional httpx transport (tests, custom networking)
        """
        settings = get_api_settings()
        self.config = ClientConfig(
            base_url=resolve_url(base_url),
            timeout=timeout if timeout is not None else settings.timeout,
            max_retries=max_retries if max_retries is not None else settings.max_retries,
            retry_delay=retry_delay if retry_delay is not None else settings.retry_delay,
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "AsyncApiClient":
        self._client = httpx.AsyncClient(
            timeout=self.config.timeout, transport=self._transport
        )
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "Client not initialized. Use 'async with AsyncApiClient() as client:'"
            )
        return self._client

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> Any:
        """Make HTTP request with retry handling.

        Raises:
            ConnectionError: Cannot connect to server or transport failed
            TimeoutError: Request exceeded timeout
            APIError: Server returned error response
        """
        client = self._require_client()
        url = f"{self.config.base_url}{endpoint}"
        retries = max_retries if max_retries is not None else self.config.max_retries
        attempt = 0

        while True:
            try:
                response = await client.request(
                    method=method,
                    url=url,
                    json=json,
                    params=params,
                    timeout=timeout or self.config.timeout,
                )

                if should_retry(response.status_code, attempt, retries):
                    delay = calculate_backoff(attempt, self.config.retry_delay)
                    logger.debug(
                        f"{method} {endpoint} returned {response.status_code}, "
                        f"retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    attempt += 1
                    continue

                return parse_response(response)

            except httpx.ConnectError as e:
                if attempt < retries:
                    await asyncio.sleep(
                        calculate_backoff(attempt, self.config.retry_delay)
                    )
                    attempt += 1
                    continue
                raise ConnectionError(
                    message=f"Could not connect to API at {url}",
                    details={"url": url, "error": str(e)},
                ) from e

            except httpx.TimeoutException as e:
                if attempt < retries:
                    await asyncio.sleep(
                        calculate_backoff(attempt, self.config.retry_delay)
                    )
                    attempt += 1
                    continue
                raise TimeoutError(
                    message=f"Request timed out after {timeout or self.config.timeout}s",
                    details={"url": url, "timeout": timeout or self.config.timeout},
                ) from e

            except httpx.TransportError as e:
                # Dropped connections, protocol errors, read/write failures
                if attempt < retries:
                    await asyncio.sleep(
                        calculate_backoff(attempt, self.config.retry_delay)
                    )
                    attempt += 1
                    continue
                raise ConnectionError(
                    message=f"Network error talking to API at {url}",
                    details={"url": url, "error": str(e)},
                ) from e

    async def get(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        return await self._make_request("GET", endpoint, params=params, timeout=timeout)

    async def post(
        self,
        endpoint: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        return await self._make_request(
            "POST", endpoint, json=json, params=params, timeout=timeout
        )

    async def patch(
        self,
        endpoint: str,
        json: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        return await self._make_request("PATCH", endpoint, json=json, timeout=timeout)

    @asynccontextmanager
    async def stream(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a long-lived streaming GET request.

        No retries and no read timeout: the reconnect controller owns retry
        policy for streams. Transport failures surface as ``httpx.HTTPError``.
        """
        client = self._require_client()
        url = f"{self.config.base_url}{endpoint}"
        timeout = httpx.Timeout(self.config.timeout, read=None)
        async with client.stream(
            "GET", url, params=params, headers=headers, timeout=timeout
        ) as response:
            yield response

