"""Per-session synchronization engine.

``SessionSync`` wires the pieces for one session: cache restore, the event
stream with reconnection, liveness tracking, snapshot polling when the
stream is unavailable, and user actions.

Usage:
    async with AsyncApiClient() as client:
        async with SessionSync("abc123", client) as sync:
            sync.subscribe(render)
            await asyncio.Event().wait()
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from tasksync.cache import GraphCache
from tasksync.client import AsyncApiClient, SessionApi
from tasksync.config.settings import (
    StreamSettings,
    get_cache_settings,
    get_stream_settings,
)
from tasksync.logging import get_logger
from tasksync.models import TaskGraph
from tasksync.reducer import ReducerContext, reduce_event
from tasksync.stream import (
    ConnectionState,
    LivenessMonitor,
    ReconnectController,
    StreamEvent,
    StreamTransport,
)
from tasksync.sync.actions import ActionGateway
from tasksync.sync.reconciler import SnapshotReconciler
from tasksync.sync.store import GraphListener, GraphStore

logger = get_logger(__name__)


class SessionSync:
    """Keeps a local task graph in sync with one remote agent session.

    Attributes:
        session_id: The followed session
        store: Holder of the current graph
        context: Reducer bookkeeping (dedup ids, task caches)
        reconciler: REST snapshot refresher
        actions: Approve/reject/apply/revert/answer gateway
        controller: Stream reconnection controller
        liveness: Heartbeat-based liveness monitor
    """

    def __init__(
        self,
        session_id: str,
        client: AsyncApiClient,
        cache: Optional[GraphCache] = None,
        settings: Optional[StreamSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            session_id: Session to follow
            client: Open API client shared by REST calls and the stream
            cache: Local graph cache; None disables persistence
            settings: Stream timings (defaults to environment)
            sleep: Awaitable sleep used for backoff and polling
        """
        self.session_id = session_id
        self.settings = settings or get_stream_settings()
        self._sleep = sleep

        graph = self._restore(session_id, cache)
        self.context = (
            ReducerContext.from_graph(graph) if graph.nodes else ReducerContext()
        )
        self.store = GraphStore(
            graph, cache, save_delay=get_cache_settings().save_delay
        )

        api = SessionApi(client)
        self.reconciler = SnapshotReconciler(api, self.store, self.context, cache)
        self.actions = ActionGateway(api, self.store, self.reconciler)
        self.liveness = LivenessMonitor(
            timeout=self.settings.heartbeat_timeout,
            interval=self.settings.liveness_check_interval,
        )
        self.controller = ReconnectController(
            StreamTransport(client),
            session_id,
            on_event=self.handle_event,
            settings=self.settings,
            on_connected=self._on_connected,
            on_state_change=self._on_state_change,
            on_polling_change=self._on_polling_change,
            sleep=sleep,
        )

        self._poll_task: Optional[asyncio.Task] = None
        self._refresh_tasks: set[asyncio.Task] = set()
        self._started = False

    @staticmethod
    def _restore(session_id: str, cache: Optional[GraphCache]) -> TaskGraph:
        cached = cache.load(session_id) if cache is not None else None
        if cached is not None and cached.nodes:
            logger.debug(
                f"Restored {len(cached.nodes)} cached nodes for {session_id}"
            )
            return cached
        return TaskGraph.empty(session_id)

    # --- Lifecycle ---

    async def start(self) -> None:
        """Load the initial snapshot in the background and open the stream."""
        if self._started:
            return
        self._started = True
        logger.info(f"Following session {self.session_id}")
        self._spawn_refresh()
        self.controller.start()

    async def close(self) -> None:
        """Stop every background activity; the graph is frozen afterwards."""
        self.store.close()

        tasks = [
            task
            for task in (self.controller.task, self._poll_task, *self._refresh_tasks)
            if task is not None
        ]
        self.controller.stop()
        self.liveness.stop()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._poll_task = None
        self._refresh_tasks.clear()
        logger.debug(f"Closed session sync for {self.session_id}")

    async def __aenter__(self) -> "SessionSync":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        await self.close()

    # --- State ---

    @property
    def graph(self) -> TaskGraph:
        return self.store.graph

    @property
    def is_connected(self) -> bool:
        return self.controller.state == ConnectionState.CONNECTED

    @property
    def is_live(self) -> bool:
        return self.is_connected and self.liveness.is_live

    @property
    def is_polling(self) -> bool:
        return self.controller.is_polling_fallback

    @property
    def last_event_id(self) -> Optional[str]:
        return self.controller.last_event_id

    def subscribe(self, listener: GraphListener) -> Callable[[], None]:
        return self.store.subscribe(listener)

    # --- Events ---

    def handle_event(self, event: StreamEvent) -> bool:
        """Apply a stream event; returns True if it advances the resume id."""
        self.liveness.touch()
        if event.is_heartbeat or event.id in self.context.seen_event_ids:
            return False
        self.store.update(
            lambda graph: reduce_event(
                graph, event.id, event.type, event.data, context=self.context
            )
        )
        return True

    def _on_connected(self) -> None:
        self._spawn_refresh()

    def _on_state_change(self, state: ConnectionState) -> None:
        if state == ConnectionState.CONNECTED:
            self.liveness.touch()
            self.liveness.start()
        else:
            self.liveness.stop()

    def _on_polling_change(self, polling: bool) -> None:
        if polling:
            if self._poll_task is None or self._poll_task.done():
                logger.info(
                    f"Polling {self.session_id} every {self.settings.poll_interval:.0f}s"
                )
                self._poll_task = asyncio.create_task(self._poll_loop())
        elif self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    # --- Snapshots ---

    async def refresh(self) -> bool:
        return await self.reconciler.refresh()

    def _spawn_refresh(self) -> None:
        if self.store.closed:
            return
        task = asyncio.create_task(self.reconciler.refresh())
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def _poll_loop(self) -> None:
        while not self.store.closed:
            await self.reconciler.refresh()
            await self._sleep(self.settings.poll_interval)

    # --- Actions ---

    async def approve(self, approval_id: str) -> bool:
        return await self.actions.approve_approval(approval_id)

    async def reject(self, approval_id: str) -> bool:
        return await self.actions.reject_approval(approval_id)

    async def apply_artifact(self, artifact_id: str) -> bool:
        return await self.actions.apply_artifact(artifact_id)

    async def revert_artifact(self, artifact_id: str) -> bool:
        return await self.actions.revert_artifact(artifact_id)

    async def answer_clarification(
        self, request_id: str, answer: str, selected_option: Optional[int] = None
    ) -> bool:
        return await self.actions.answer_clarification(
            request_id, answer, selected_option
        )
