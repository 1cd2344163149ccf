"""
Error handling framework for tasksync.
"""

from tasksync.errors.exceptions import (
    ActionError,
    CacheError,
    FrameError,
    PayloadValidationError,
    StreamError,
    StreamUnavailableError,
    TasksyncError,
)

__all__ = [
    "TasksyncError",
    "StreamError",
    "StreamUnavailableError",
    "FrameError",
    "PayloadValidationError",
    "CacheError",
    "ActionError",
]
