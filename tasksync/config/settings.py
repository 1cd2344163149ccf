"""
tasksync Settings - Runtime configuration management.

Every tunable of the sync engine is read from the environment (and a ``.env``
file) through pydantic-settings, so deployments can adapt polling and
reconnect timings without code changes.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ApiSettings(BaseSettings):
    """REST API client settings.

    Environment variables:
        TASKSYNC_API_BASE_URL: Base URL of the session API.
        TASKSYNC_API_TIMEOUT: Request timeout in seconds. Default: 30
        TASKSYNC_API_MAX_RETRIES: Retries for 5xx/connect/timeout. Default: 3
        TASKSYNC_API_RETRY_DELAY: Base retry delay in seconds. Default: 1.0
    """

    base_url: str = Field(default="http://localhost:8000/api")
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="TASKSYNC_API_", env_file=".env", extra="ignore"
    )


class StreamSettings(BaseSettings):
    """Event stream settings.

    Environment variables:
        TASKSYNC_STREAM_RECONNECT_BASE_DELAY: First reconnect delay. Default: 1.0
        TASKSYNC_STREAM_RECONNECT_MAX_DELAY: Reconnect delay cap. Default: 30.0
        TASKSYNC_STREAM_POLL_INTERVAL: Snapshot polling interval used when
            streaming is unavailable. Default: 5.0
        TASKSYNC_STREAM_HEARTBEAT_TIMEOUT: Silence after which the connection
            is reported as not live. Default: 45.0
        TASKSYNC_STREAM_LIVENESS_CHECK_INTERVAL: Liveness sampling period.
            Default: 10.0
    """

    reconnect_base_delay: float = Field(
        default=1.0, gt=0, description="Base delay in seconds for stream reconnects"
    )
    reconnect_max_delay: float = Field(
        default=30.0, gt=0, description="Upper bound for the reconnect delay"
    )
    poll_interval: float = Field(
        default=5.0, gt=0, description="Seconds between snapshot polls in fallback"
    )
    heartbeat_timeout: float = Field(
        default=45.0, gt=0, description="Seconds without traffic before not-live"
    )
    liveness_check_interval: float = Field(
        default=10.0, gt=0, description="Seconds between liveness samples"
    )

    model_config = SettingsConfigDict(
        env_prefix="TASKSYNC_STREAM_", env_file=".env", extra="ignore"
    )


class CacheSettings(BaseSettings):
    """Local graph cache settings.

    Environment variables:
        TASKSYNC_CACHE_DIR: Directory holding one JSON file per session.
        TASKSYNC_CACHE_TTL_DAYS: Retention of cache entries. Default: 7
        TASKSYNC_CACHE_SAVE_DELAY: Seconds over which graph writes are
            coalesced while following a session. Default: 0.5
    """

    dir: Path = Field(default=Path.home() / ".tasksync" / "cache")
    ttl_days: int = Field(default=7, gt=0)
    save_delay: float = Field(default=0.5, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="TASKSYNC_CACHE_", env_file=".env", extra="ignore"
    )

    @property
    def ttl_seconds(self) -> float:
        return self.ttl_days * 24 * 60 * 60


class LoggingSettings(BaseSettings):
    """Logging settings.

    Environment variables:
        TASKSYNC_LOGGING_LEVEL: Console level when not verbose. Default: WARNING
        TASKSYNC_LOGGING_DIR: Enables the rotating log file in this directory.
        TASKSYNC_LOGGING_COMPONENTS: Per-component levels, comma separated,
            e.g. ``stream.transport=DEBUG,sync=INFO``.
    """

    level: str = Field(default="WARNING")
    dir: Optional[Path] = Field(default=None)
    components: str = Field(default="")

    @field_validator("level")
    @classmethod
    def normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("components")
    @classmethod
    def validate_components(cls, value: str) -> str:
        _parse_component_levels(value)
        return value

    @property
    def component_levels(self) -> dict[str, str]:
        return _parse_component_levels(self.components)

    model_config = SettingsConfigDict(
        env_prefix="TASKSYNC_LOGGING_", env_file=".env", extra="ignore"
    )


def _parse_component_levels(value: str) -> dict[str, str]:
    levels: dict[str, str] = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        component, sep, level = item.partition("=")
        component, level = component.strip(), level.strip().upper()
        if not sep or not component or level not in _LOG_LEVELS:
            raise ValueError(f"Invalid component level: {item!r}")
        levels[component] = level
    return levels


# Cache settings to avoid repeated env access
@lru_cache
def get_api_settings() -> ApiSettings:
    """Get API settings with caching."""
    return ApiSettings()


@lru_cache
def get_stream_settings() -> StreamSettings:
    """Get stream settings with caching."""
    return StreamSettings()


@lru_cache
def get_cache_settings() -> CacheSettings:
    """Get cache settings with caching."""
    return CacheSettings()


@lru_cache
def get_logging_settings() -> LoggingSettings:
    """Get logging settings with caching."""
    return LoggingSettings()


def clear_settings_cache() -> None:
    """Drop cached settings so the next accessor re-reads the environment."""
    get_api_settings.cache_clear()
    get_stream_settings.cache_clear()
    get_cache_settings.cache_clear()
    get_logging_settings.cache_clear()
