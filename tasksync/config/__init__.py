"""Configuration for tasksync."""

from tasksync.config.settings import (
    ApiSettings,
    CacheSettings,
    LoggingSettings,
    StreamSettings,
    clear_settings_cache,
    get_api_settings,
    get_cache_settings,
    get_logging_settings,
    get_stream_settings,
)

__all__ = [
    "ApiSettings",
    "StreamSettings",
    "CacheSettings",
    "LoggingSettings",
    "get_api_settings",
    "get_stream_settings",
    "get_cache_settings",
    "get_logging_settings",
    "clear_settings_cache",
]
