"""Entry point applying one stream event to a task graph."""

from datetime import datetime, timezone
from typing import Any, Optional

from tasksync.logging import get_logger
from tasksync.models import TaskGraph
from tasksync.reducer.context import ReducerContext
from tasksync.reducer.handlers import EVENT_HANDLERS

logger = get_logger(__name__)


def reduce_event(
    graph: TaskGraph,
    event_id: str,
    event_type: str,
    payload: Any,
    now: Optional[datetime] = None,
    context: Optional[ReducerContext] = None,
) -> TaskGraph:
    """Apply a stream event to ``graph``.

    Events whose id has already been seen, and events of unknown type, return
    ``graph`` itself. Handlers never raise on malformed payloads.

    Args:
        graph: Current graph
        event_id: Stream event id (dedup key)
        event_type: Event type used for dispatch
        payload: Decoded event data
        now: Reception time; defaults to the current UTC time
        context: Session-scoped reducer state; a throwaway one if omitted

    Returns:
        The new graph, or ``graph`` unchanged
    """
    if context is None:
        context = ReducerContext()
    if not context.mark_seen(event_id):
        logger.debug(f"Skipping duplicate event {event_id}")
        return graph

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.debug(f"No handler for event type {event_type!r}")
        return graph

    return handler(graph, event_id, payload, now or datetime.now(timezone.utc), context)
