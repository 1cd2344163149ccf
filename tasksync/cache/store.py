"""Local durable cache of reconstructed task graphs.

One JSON file per session under the cache directory
(``task-graph-<session_id>.json``). Entries carry a ``savedAt`` epoch-ms stamp
and expire after the configured TTL (7 days by default).

Writes are best-effort and never raise; unreadable, expired or structurally
invalid entries read as a cache miss.
"""

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import ValidationError

from tasksync.config.settings import get_cache_settings
from tasksync.errors import CacheError
from tasksync.logging import get_logger
from tasksync.models import TaskGraph, is_placeholder_session

logger = get_logger(__name__)

CACHE_KEY_PREFIX = "task-graph-"


def cache_key(session_id: str) -> str:
    return f"{CACHE_KEY_PREFIX}{session_id}"


@dataclass(frozen=True)
class CacheEntry:
    """A cached graph together with the time it was saved (epoch ms)."""

    graph: TaskGraph
    saved_at: int


class GraphCache:
    """Per-session key-value persistence of task graphs."""

    def __init__(
        self,
        directory: Optional[Path] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            directory: Where entries are stored; defaults to TASKSYNC_CACHE_DIR
            ttl_seconds: Entry retention; defaults to TASKSYNC_CACHE_TTL_DAYS
            clock: Wall clock in seconds (injectable for tests)
        """
        settings = get_cache_settings()
        self.directory = Path(directory) if directory is not None else settings.dir
        self.ttl_seconds = (
            ttl_seconds if ttl_seconds is not None else settings.ttl_seconds
        )
        self._clock = clock

    def _path(self, session_id: str) -> Path:
        safe_id = "".join(c if c.isalnum() or c in "-_." else "_" for c in session_id)
        return self.directory / f"{cache_key(safe_id)}.json"

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def save(self, session_id: str, graph: TaskGraph) -> None:
        """Write a timestamped snapshot of ``graph``. Never raises."""
        if is_placeholder_session(session_id):
            return
        try:
            entry = graph.to_wire()
            entry["savedAt"] = self._now_ms()
            self.directory.mkdir(parents=True, exist_ok=True)
            path = self._path(session_id)
            tmp_path = path.with_suffix(".json.tmp")
            tmp_path.write_text(json.dumps(entry), encoding="utf-8")
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            logger.debug(f"Ignoring cache write failure for {session_id}: {e}")

    def load(self, session_id: str) -> Optional[TaskGraph]:
        """Return the cached graph, or None on miss, expiry or corruption."""
        entry = self.load_entry(session_id)
        return entry.graph if entry else None

    def load_entry(self, session_id: str) -> Optional[CacheEntry]:
        """Like ``load`` but also exposes when the entry was saved."""
        if is_placeholder_session(session_id):
            return None
        try:
            raw = self._read(session_id)
        except CacheError as e:
            logger.debug(f"Cache miss for {session_id}: {e.message}")
            return None
        if raw is None:
            return None

        saved_at = raw.get("savedAt")
        if isinstance(saved_at, (int, float)) and (
            self._now_ms() - saved_at > self.ttl_seconds * 1000
        ):
            logger.debug(f"Evicting expired cache entry for {session_id}")
            self.evict(session_id)
            return None

        if not isinstance(raw.get("sessionId"), str) or not isinstance(
            raw.get("nodes"), list
        ):
            logger.debug(f"Cache entry for {session_id} is structurally invalid")
            return None

        if raw["sessionId"] != session_id:
            # Distinct ids can share a sanitized file name
            logger.debug(
                f"Cache entry for {session_id} belongs to session {raw['sessionId']}"
            )
            return None

        graph_data = {k: v for k, v in raw.items() if k != "savedAt"}
        try:
            graph = TaskGraph.model_validate(graph_data)
        except ValidationError as e:
            logger.debug(
                f"Cache entry for {session_id} failed validation: {e.error_count()} errors"
            )
            return None

        return CacheEntry(
            graph=graph,
            saved_at=int(saved_at) if isinstance(saved_at, (int, float)) else 0,
        )

    def _read(self, session_id: str) -> Optional[dict[str, Any]]:
        path = self._path(session_id)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise CacheError(
                message=f"Unreadable cache entry: {e}",
                error_code="CACHE-Unreadable",
                details={"path": str(path)},
            ) from e
        if not isinstance(data, dict):
            raise CacheError(
                message="Cache entry is not a JSON object",
                error_code="CACHE-InvalidShape",
                details={"path": str(path)},
            )
        return data

    def evict(self, session_id: str) -> None:
        try:
            self._path(session_id).unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Ignoring cache eviction failure for {session_id}: {e}")

    def clear(self) -> int:
        """Remove every cache entry; returns how many were removed."""
        removed = 0
        if not self.directory.exists():
            return removed
        for path in self.directory.glob(f"{CACHE_KEY_PREFIX}*.json"):
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.debug(f"Could not remove {path}: {e}")
        return removed
