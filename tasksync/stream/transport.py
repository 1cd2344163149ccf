"""Event stream transport.

Opens ``GET /sessions/{id}/stream`` as a long-lived ``text/event-stream``
response and turns its body into ``StreamEvent`` objects.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

import httpx

from tasksync.client.async_client import AsyncApiClient
from tasksync.config.settings import get_stream_settings
from tasksync.errors import FrameError, StreamUnavailableError
from tasksync.logging import get_logger
from tasksync.models import is_placeholder_session
from tasksync.stream.frames import FrameParser, StreamEvent, decode_frame

logger = get_logger(__name__)

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"


class StreamHandle:
    """An open event stream for one session."""

    def __init__(self, session_id: str, response: httpx.Response) -> None:
        self.session_id = session_id
        self.response = response
        self._parser = FrameParser()

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Yield decoded events until the server closes the stream.

        Undecodable frames are logged and skipped. Transport failures while
        reading propagate as ``httpx.HTTPError``.
        """
        async for chunk in self.response.aiter_text():
            for frame in self._parser.feed(chunk):
                try:
                    yield decode_frame(frame)
                except FrameError as e:
                    logger.warning(f"Dropping frame on {self.session_id}: {e.message}")


class StreamTransport:
    """Opens event streams through an ``AsyncApiClient``."""

    def __init__(self, client: AsyncApiClient) -> None:
        self.client = client

    @asynccontextmanager
    async def open(
        self, session_id: str, last_event_id: Optional[str] = None
    ) -> AsyncIterator[StreamHandle]:
        """Open the event stream for ``session_id``.

        Args:
            session_id: Session to subscribe to
            last_event_id: Resume after this event id

        Raises:
            StreamUnavailableError: Placeholder session, non-2xx response or a
                response that is not an event stream
            httpx.HTTPError: The connection failed
        """
        if is_placeholder_session(session_id):
            raise StreamUnavailableError(
                message=f"No stream for placeholder session {session_id!r}",
                error_code="STREAM-PlaceholderSession",
                details={"session_id": session_id},
            )

        params = {"lastEventId": last_event_id} if last_event_id else None
        async with self.client.stream(
            f"/sessions/{session_id}/stream",
            params=params,
            headers={"Accept": EVENT_STREAM_CONTENT_TYPE},
        ) as response:
            if not response.is_success:
                raise StreamUnavailableError(
                    message=f"Stream endpoint returned HTTP {response.status_code}",
                    error_code="STREAM-HttpStatus",
                    details={
                        "session_id": session_id,
                        "status_code": response.status_code,
                    },
                )
            content_type = response.headers.get("content-type", "")
            if EVENT_STREAM_CONTENT_TYPE not in content_type:
                raise StreamUnavailableError(
                    message=f"Stream endpoint returned {content_type or 'no content type'}",
                    error_code="STREAM-NotEventStream",
                    details={"session_id": session_id, "content_type": content_type},
                )

            logger.debug(
                f"Stream opened for {session_id} (lastEventId={last_event_id})"
            )
            yield StreamHandle(session_id, response)


class LivenessMonitor:
    """Tracks whether anything has been heard from the stream recently.

    ``touch()`` is called for every received event, heartbeats included. A
    background task samples the silence every ``interval`` seconds and flips
    ``is_live`` once it exceeds ``timeout``.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        on_change: Optional[Callable[[bool], None]] = None,
    ) -> None:
        settings = get_stream_settings()
        self.timeout = timeout if timeout is not None else settings.heartbeat_timeout
        self.interval = (
            interval if interval is not None else settings.liveness_check_interval
        )
        self._clock = clock
        self._on_change = on_change
        self._last_seen = clock()
        self._is_live = True
        self._task: Optional[asyncio.Task] = None

    @property
    def is_live(self) -> bool:
        return self._is_live

    @property
    def last_seen(self) -> float:
        return self._last_seen

    def touch(self) -> None:
        self._last_seen = self._clock()
        self._set_live(True)

    def check(self) -> bool:
        """Sample liveness now and return it."""
        self._set_live(self._clock() - self._last_seen <= self.timeout)
        return self._is_live

    def _set_live(self, live: bool) -> None:
        if live == self._is_live:
            return
        self._is_live = live
        if not live:
            logger.info(f"No stream activity for more than {self.timeout:.0f}s")
        if self._on_change:
            self._on_change(live)

    def start(self) -> None:
        self.stop()
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.check()
