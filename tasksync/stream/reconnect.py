"""Stream reconnection with capped exponential backoff.

One ``ReconnectController`` keeps at most one live stream per session. It
resumes from the last acknowledged event id and decides when the caller
should fall back to snapshot polling.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

import httpx

from tasksync.client.core import reconnect_delay
from tasksync.client.errors import ClientError
from tasksync.config.settings import StreamSettings, get_stream_settings
from tasksync.errors import StreamUnavailableError
from tasksync.logging import get_logger
from tasksync.stream.frames import StreamEvent
from tasksync.stream.transport import StreamTransport

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ReconnectController:
    """Keeps an event stream open, reconnecting with backoff.

    Per attempt:
        - stream unavailable: disconnected, polling fallback, no more retries
        - transport failure: disconnected, polling fallback, retry later
        - server closed the stream: disconnected, retry later
        - connected: polling fallback off, ``on_connected`` fires

    Attributes:
        last_event_id: Last event id acknowledged by ``on_event``
        attempt: Failed attempts since the last successful connection
        state: Current ``ConnectionState``
        is_polling_fallback: Whether snapshots should be polled instead
    """

    def __init__(
        self,
        transport: StreamTransport,
        session_id: str,
        on_event: Callable[[StreamEvent], bool],
        settings: Optional[StreamSettings] = None,
        on_connected: Optional[Callable[[], None]] = None,
        on_state_change: Optional[Callable[[ConnectionState], None]] = None,
        on_polling_change: Optional[Callable[[bool], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            transport: Opens the stream
            session_id: Session to follow
            on_event: Receives each event; returns True if it was accepted,
                which advances ``last_event_id``
            settings: Backoff configuration (defaults to environment)
            on_connected: Called after each successful connection
            on_state_change: Called on every state transition
            on_polling_change: Called when the polling fallback toggles
            sleep: Awaitable sleep (injectable for tests)
        """
        settings = settings or get_stream_settings()
        self.transport = transport
        self.session_id = session_id
        self.base_delay = settings.reconnect_base_delay
        self.max_delay = settings.reconnect_max_delay
        self._on_event = on_event
        self._on_connected = on_connected
        self._on_state_change = on_state_change
        self._on_polling_change = on_polling_change
        self._sleep = sleep

        self.last_event_id: Optional[str] = None
        self.attempt = 0
        self.state = ConnectionState.DISCONNECTED
        self.is_polling_fallback = False
        self._task: Optional[asyncio.Task] = None

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start (or restart) the connection loop."""
        self.stop()
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        """Cancel the in-flight attempt and any pending retry."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def wait(self) -> None:
        """Wait for the loop to finish (it only ends on unavailability)."""
        if self._task is not None:
            await asyncio.shield(self._task)

    def _is_current(self) -> bool:
        return self._task is not None and asyncio.current_task() is self._task

    def _set_state(self, state: ConnectionState) -> None:
        if not self._is_current() or state == self.state:
            return
        self.state = state
        logger.debug(f"Stream {self.session_id}: {state.value}")
        if self._on_state_change:
            self._on_state_change(state)

    def _set_polling(self, polling: bool) -> None:
        if not self._is_current() or polling == self.is_polling_fallback:
            return
        self.is_polling_fallback = polling
        if self._on_polling_change:
            self._on_polling_change(polling)

    async def _run(self) -> None:
        while True:
            self._set_state(ConnectionState.CONNECTING)
            try:
                async with self.transport.open(
                    self.session_id, self.last_event_id
                ) as handle:
                    self.attempt = 0
                    self._set_state(ConnectionState.CONNECTED)
                    self._set_polling(False)
                    if self._on_connected and self._is_current():
                        self._on_connected()

                    async for event in handle.events():
                        if self._on_event(event):
                            self.last_event_id = event.id

                logger.info(f"Stream for {self.session_id} closed by server")
                self._set_state(ConnectionState.DISCONNECTED)

            except StreamUnavailableError as e:
                logger.info(
                    f"Stream unavailable for {self.session_id}, polling instead: {e.message}"
                )
                self._set_state(ConnectionState.DISCONNECTED)
                self._set_polling(True)
                return

            except (httpx.HTTPError, ClientError) as e:
                logger.warning(f"Stream error for {self.session_id}: {e}")
                self._set_state(ConnectionState.DISCONNECTED)
                self._set_polling(True)

            except Exception as e:
                logger.exception(f"Unexpected stream failure for {self.session_id}: {e}")
                self._set_state(ConnectionState.DISCONNECTED)
                self._set_polling(True)

            delay = reconnect_delay(self.attempt, self.base_delay, self.max_delay)
            self.attempt += 1
            logger.debug(
                f"Reconnecting {self.session_id} in {delay:.1f}s (attempt {self.attempt})"
            )
            await self._sleep(delay)
