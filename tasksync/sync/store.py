"""Holder of the current task graph of one session."""

import asyncio
from typing import Callable, Optional

from tasksync.cache import GraphCache
from tasksync.logging import get_logger
from tasksync.models import TaskGraph

logger = get_logger(__name__)

GraphListener = Callable[[TaskGraph], None]


class GraphStore:
    """Single owner of a session's graph.

    All mutations go through ``update(fn)`` so the transform always sees the
    graph current at the moment it runs. Changed graphs with at least one
    node are persisted to the cache. After ``close()`` updates are ignored.

    With ``save_delay`` > 0 and a running event loop, cache writes are
    coalesced: a burst of updates results in one write of the latest graph
    ``save_delay`` seconds after the first of them. ``flush()`` and
    ``close()`` write any pending graph immediately.
    """

    def __init__(
        self,
        graph: TaskGraph,
        cache: Optional[GraphCache] = None,
        save_delay: float = 0.0,
    ) -> None:
        self._graph = graph
        self._cache = cache
        self._save_delay = save_delay
        self._save_handle: Optional[asyncio.TimerHandle] = None
        self._dirty = False
        self._listeners: list[GraphListener] = []
        self._closed = False

    @property
    def graph(self) -> TaskGraph:
        return self._graph

    @property
    def session_id(self) -> str:
        return self._graph.session_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_pending_save(self) -> bool:
        return self._dirty

    def update(self, fn: Callable[[TaskGraph], TaskGraph]) -> TaskGraph:
        """Replace the graph with ``fn(current)``; returns the resulting graph."""
        if self._closed:
            return self._graph

        current = self._graph
        updated = fn(current)
        if updated is current:
            return current

        self._graph = updated
        if self._cache is not None and updated.nodes:
            self._schedule_save()
        for listener in list(self._listeners):
            try:
                listener(updated)
            except Exception as e:
                logger.exception(f"Graph listener failed: {e}")
        return updated

    def _schedule_save(self) -> None:
        self._dirty = True
        if self._save_delay <= 0:
            self.flush()
            return
        if self._save_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        self._save_handle = loop.call_later(self._save_delay, self.flush)

    def flush(self) -> None:
        """Write the current graph to the cache if a save is pending."""
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None
        if not self._dirty or self._cache is None:
            return
        self._dirty = False
        if self._graph.nodes:
            self._cache.save(self._graph.session_id, self._graph)

    def subscribe(self, listener: GraphListener) -> Callable[[], None]:
        """Register ``listener`` for graph changes; returns an unsubscriber."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        self.flush()
        self._closed = True
        self._listeners.clear()
