"""
Logging setup for tasksync.

tasksync is a library first: importing it installs nothing. Handlers are
attached to the ``tasksync`` package logger only (never the root logger)
when the host, or the CLI, calls ``configure_logging``.

Levels can be tuned per component, where a component is a dotted path
below the package (``stream.transport``, ``sync``...). A component level
applies to that module and everything beneath it through the normal
logger hierarchy.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Mapping, Optional, TextIO, Union

PACKAGE_LOGGER = "tasksync"

# Noisy modules that stay quiet unless asked for
DEFAULT_COMPONENT_LEVELS: dict[str, str] = {
    "stream.frames": "WARNING",
    "stream.transport": "INFO",
    "client.async_client": "INFO",
}

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "%(module)s.%(funcName)s:%(lineno)d | %(message)s"
)
LOG_FILE_NAME = "tasksync.log"

_debug_mode = False
_configured_components: set[str] = set()


class ColorFormatter(logging.Formatter):
    """Colors the level name when writing to a terminal."""

    COLORS = {
        logging.DEBUG: "\033[94m",
        logging.INFO: "\033[92m",
        logging.WARNING: "\033[93m",
        logging.ERROR: "\033[91m",
        logging.CRITICAL: "\033[91m\033[1m",
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str, use_color: bool = True) -> None:
        super().__init__(fmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno)
        if not self.use_color or color is None:
            return super().format(record)
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module, typically called with ``__name__``."""
    return logging.getLogger(name)


def component_logger_name(component: str) -> str:
    if component == PACKAGE_LOGGER or component.startswith(f"{PACKAGE_LOGGER}."):
        return component
    return f"{PACKAGE_LOGGER}.{component}"


def set_debug_mode(enabled: bool) -> None:
    """Let DEBUG records through the package logger (or stop doing so)."""
    global _debug_mode
    _debug_mode = enabled
    logging.getLogger(PACKAGE_LOGGER).setLevel(
        logging.DEBUG if enabled else logging.INFO
    )


def is_debug_mode() -> bool:
    return _debug_mode


def apply_component_levels(levels: Mapping[str, Union[int, str]]) -> None:
    """Set per-component levels, resetting those set by a previous call."""
    for name in _configured_components:
        logging.getLogger(name).setLevel(logging.NOTSET)
    _configured_components.clear()

    for component, level in levels.items():
        name = component_logger_name(component)
        logging.getLogger(name).setLevel(
            level if isinstance(level, int) else level.upper()
        )
        _configured_components.add(name)


def _owned_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if getattr(h, "_tasksync_owned", False)]


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    console_level: Union[int, str] = logging.WARNING,
    component_levels: Optional[Mapping[str, Union[int, str]]] = None,
    file_level: Union[int, str] = logging.DEBUG,
    max_file_size_mb: int = 10,
    backup_count: int = 5,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Attach console and (optionally) rotating file output to the package logger.

    Safe to call repeatedly: handlers installed by an earlier call are
    replaced, handlers added by the host application are left alone.

    Args:
        log_dir: Directory for ``tasksync.log``; file output is off when None
        console_level: Threshold of the console handler
        component_levels: Overrides merged over ``DEFAULT_COMPONENT_LEVELS``.
            In debug mode only these explicit overrides are applied.
        file_level: Threshold of the file handler
        max_file_size_mb: Size at which the log file rotates
        backup_count: Rotated files to keep
        stream: Console stream (stderr by default)

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in _owned_handlers(package_logger):
        package_logger.removeHandler(handler)
        handler.close()

    package_logger.setLevel(logging.DEBUG if _debug_mode else logging.INFO)
    # Our handlers print the records; the host's root handlers would repeat them
    package_logger.propagate = False

    console_stream = stream if stream is not None else sys.stderr
    console = logging.StreamHandler(console_stream)
    console.setLevel(console_level)
    console.setFormatter(
        ColorFormatter(CONSOLE_FORMAT, use_color=_is_terminal(console_stream))
    )
    console._tasksync_owned = True  # type: ignore[attr-defined]
    package_logger.addHandler(console)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_path / LOG_FILE_NAME,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        file_handler._tasksync_owned = True  # type: ignore[attr-defined]
        package_logger.addHandler(file_handler)

    levels: dict[str, Union[int, str]] = (
        {} if _debug_mode else dict(DEFAULT_COMPONENT_LEVELS)
    )
    levels.update(component_levels or {})
    apply_component_levels(levels)

    package_logger.debug(
        f"Logging configured (console: {logging.getLevelName(console.level)}, "
        f"file: {log_dir or 'off'}, components: {levels or 'none'})"
    )
    return package_logger


def _is_terminal(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())
