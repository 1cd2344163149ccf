"""Per-session reducer state that lives outside the graph."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from tasksync.models import TaskGraph


def iso_timestamp(moment: datetime) -> str:
    """Format as UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def iso_from_ms(epoch_ms: float) -> str:
    return iso_timestamp(datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc))


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


@dataclass
class ReducerContext:
    """Mutable bookkeeping owned by one session.

    Attributes:
        seen_event_ids: Stream event ids already applied (dedup)
        task_titles: Last known title per task id
        task_prompts: Last known prompt per task id
        task_metadata: Last known metadata record per task id
    """

    seen_event_ids: set[str] = field(default_factory=set)
    task_titles: dict[str, str] = field(default_factory=dict)
    task_prompts: dict[str, str] = field(default_factory=dict)
    task_metadata: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_graph(cls, graph: TaskGraph) -> "ReducerContext":
        """Rebuild dedup state and task caches from a restored graph."""
        context = cls()
        for node in graph.nodes:
            context.seen_event_ids.add(node.id)
            if node.event_id:
                context.seen_event_ids.add(node.event_id)
        for task in graph.task_nodes():
            if task.task_id is None:
                continue
            if task.title:
                context.task_titles[task.task_id] = task.title
            if task.prompt:
                context.task_prompts[task.task_id] = task.prompt
            if task.metadata is not None:
                context.task_metadata[task.task_id] = task.metadata
        return context

    def mark_seen(self, event_id: str) -> bool:
        """Record ``event_id``; False if it had been seen before."""
        if event_id in self.seen_event_ids:
            return False
        self.seen_event_ids.add(event_id)
        return True
