"""
Global test fixtures for the tasksync project.
"""

import pytest

from tasksync.config import clear_settings_cache


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep settings, the cache directory and .env lookups inside tmp_path."""
    for name in (
        "TASKSYNC_API_BASE_URL",
        "TASKSYNC_LOGGING_DIR",
        "TASKSYNC_LOGGING_LEVEL",
        "TASKSYNC_LOGGING_COMPONENTS",
        "TASKSYNC_CACHE_SAVE_DELAY",
        "TASKSYNC_STREAM_POLL_INTERVAL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TASKSYNC_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def restore_package_logging():
    """configure_logging() mutates the process-wide package logger."""
    import logging

    from tasksync.logging import apply_component_levels, is_debug_mode, set_debug_mode

    logger = logging.getLogger("tasksync")
    handlers = logger.handlers[:]
    level = logger.level
    propagate = logger.propagate
    debug = is_debug_mode()
    yield
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers[:] = handlers
    set_debug_mode(debug)
    logger.setLevel(level)
    logger.propagate = propagate
    apply_component_levels({})


@pytest.fixture
def stream_settings():
    """Stream timings short enough for tests."""
    from tasksync.config.settings import StreamSettings

    return StreamSettings(
        reconnect_base_delay=0.01,
        reconnect_max_delay=0.05,
        poll_interval=0.01,
        heartbeat_timeout=45.0,
        liveness_check_interval=10.0,
    )


@pytest.fixture
def graph_cache(tmp_path):
    from tasksync.cache import GraphCache

    return GraphCache(directory=tmp_path / "graphs")
