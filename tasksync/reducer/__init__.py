"""Pure event reducer for task graphs."""

from tasksync.reducer.context import (
    ReducerContext,
    epoch_ms,
    iso_from_ms,
    iso_timestamp,
)
from tasksync.reducer.handlers import (
    EVENT_HANDLERS,
    EventHandler,
    remove_clarification,
)
from tasksync.reducer.reduce import reduce_event

__all__ = [
    "EVENT_HANDLERS",
    "EventHandler",
    "ReducerContext",
    "epoch_ms",
    "iso_from_ms",
    "iso_timestamp",
    "reduce_event",
    "remove_clarification",
]
