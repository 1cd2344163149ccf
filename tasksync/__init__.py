"""
tasksync - client-side synchronization of remote agent task sessions.

Reconstructs a session's task graph from an event stream and REST snapshots,
keeps it current across reconnects, and persists it to a local cache.
"""

from tasksync.logging import configure_logging, get_logger, set_debug_mode
from tasksync.version import __version__

__all__ = ["__version__", "configure_logging", "get_logger", "set_debug_mode"]
