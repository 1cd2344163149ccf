"""
Logging for tasksync.

Modules log through ``get_logger(__name__)``; output is only configured when
the host application or the CLI calls ``configure_logging``.
"""

from tasksync.logging.config import (
    DEFAULT_COMPONENT_LEVELS,
    apply_component_levels,
    configure_logging,
    get_logger,
    is_debug_mode,
    set_debug_mode,
)

__all__ = [
    "DEFAULT_COMPONENT_LEVELS",
    "apply_component_levels",
    "configure_logging",
    "get_logger",
    "is_debug_mode",
    "set_debug_mode",
]
