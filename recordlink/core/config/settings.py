#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
resilience layer. All timing defaults come from ``constants.py`` and can be
overridden through environment variables or a ``.env`` file.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Grouped views (``settings.monitor``, ``settings.query``...) for each component
- Easy testing with ``reload_settings()``
"""

from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from recordlink.core.config.constants import (
    ACTIVITY_UPDATE_INTERVAL,
    BACKEND_AUTH_COLLECTION,
    BACKEND_PROBE_COLLECTION,
    BACKEND_REQUEST_TIMEOUT,
    CONNECTION_POOL_SIZE,
    CONNECTION_TIMEOUT,
    HEALTH_CHECK_INTERVAL,
    HEALTH_CHECK_TIMEOUT,
    IDLE_CONNECTION_TIMEOUT,
    MAX_CONCURRENT_QUERIES,
    MAX_RECONNECT_ATTEMPTS,
    PING_INTERVAL,
    POOL_CLEANUP_INTERVAL,
    QUERY_TIMEOUT,
    QUERY_TIMEOUT_SCAN_INTERVAL,
    RECONNECT_BACKOFF_FACTOR,
    RECONNECT_BASE_DELAY,
    RECONNECT_MAX_DELAY,
    RETRY_QUEUE_BATCH_SIZE,
    RETRY_QUEUE_DRAIN_INTERVAL,
    RETRY_QUEUE_MAX_AGE,
    RETRY_QUEUE_MAX_ATTEMPTS,
    RETRY_QUEUE_MAX_SIZE,
)
from recordlink.core.exceptions.base import ConfigurationError


class MonitorSettings(BaseSettings):
    """
    Connection monitor configuration.

    STAGE-MON: Periodic reachability probe
    """

    PING_INTERVAL: float = Field(default=PING_INTERVAL, gt=0, description="Seconds between pings")
    CONNECTION_TIMEOUT: float = Field(default=CONNECTION_TIMEOUT, gt=0, description="Probe timeout")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ReconnectSettings(BaseSettings):
    """
    Reconnection backoff configuration.

    STAGE-RC: delay = min(base * factor^(attempt-1), max)
    """

    MAX_RECONNECT_ATTEMPTS: int = Field(default=MAX_RECONNECT_ATTEMPTS, ge=1)
    RECONNECT_BASE_DELAY: float = Field(default=RECONNECT_BASE_DELAY, gt=0)
    RECONNECT_BACKOFF_FACTOR: float = Field(default=RECONNECT_BACKOFF_FACTOR, ge=1)
    RECONNECT_MAX_DELAY: float = Field(default=RECONNECT_MAX_DELAY, gt=0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class QuerySettings(BaseSettings):
    """
    Query execution and admission control configuration.

    STAGE-QE: Concurrency cap and per-call timeout
    """

    QUERY_TIMEOUT: float = Field(default=QUERY_TIMEOUT, gt=0, description="Per-call budget")
    MAX_CONCURRENT_QUERIES: int = Field(default=MAX_CONCURRENT_QUERIES, ge=1)
    QUERY_TIMEOUT_SCAN_INTERVAL: float = Field(default=QUERY_TIMEOUT_SCAN_INTERVAL, gt=0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RetryQueueSettings(BaseSettings):
    """
    Retry queue configuration for failed mutations.

    STAGE-RQ: Bounded FIFO drained while connected
    """

    RETRY_QUEUE_MAX_SIZE: int = Field(default=RETRY_QUEUE_MAX_SIZE, ge=1)
    RETRY_QUEUE_BATCH_SIZE: int = Field(default=RETRY_QUEUE_BATCH_SIZE, ge=1)
    RETRY_QUEUE_MAX_ATTEMPTS: int = Field(default=RETRY_QUEUE_MAX_ATTEMPTS, ge=1)
    RETRY_QUEUE_MAX_AGE: float = Field(default=RETRY_QUEUE_MAX_AGE, gt=0)
    RETRY_QUEUE_DRAIN_INTERVAL: float = Field(default=RETRY_QUEUE_DRAIN_INTERVAL, gt=0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class PoolSettings(BaseSettings):
    """
    Logical connection pool configuration.

    STAGE-POOL: Fixed slot set with idle reclamation
    """

    CONNECTION_POOL_SIZE: int = Field(default=CONNECTION_POOL_SIZE, ge=1)
    IDLE_CONNECTION_TIMEOUT: float = Field(default=IDLE_CONNECTION_TIMEOUT, gt=0)
    POOL_CLEANUP_INTERVAL: float = Field(default=POOL_CLEANUP_INTERVAL, gt=0)
    ACTIVITY_UPDATE_INTERVAL: float = Field(default=ACTIVITY_UPDATE_INTERVAL, gt=0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class HealthSettings(BaseSettings):
    """
    Health check configuration.

    STAGE-H: Three sub-checks on their own schedule
    """

    HEALTH_CHECK_INTERVAL: float = Field(default=HEALTH_CHECK_INTERVAL, gt=0)
    HEALTH_CHECK_TIMEOUT: float = Field(default=HEALTH_CHECK_TIMEOUT, gt=0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class BackendSettings(BaseSettings):
    """
    Remote record API configuration.
    """

    BACKEND_URL: str = Field(default="http://localhost:8090", description="Record API base URL")
    BACKEND_AUTH_TOKEN: str | None = Field(default=None, description="Session token (optional)")
    BACKEND_AUTH_COLLECTION: str = Field(default=BACKEND_AUTH_COLLECTION)
    BACKEND_PROBE_COLLECTION: str = Field(default=BACKEND_PROBE_COLLECTION)
    BACKEND_REQUEST_TIMEOUT: float = Field(default=BACKEND_REQUEST_TIMEOUT, gt=0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration

    Architectural Decision: structlog for production-grade logging
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.
    """

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="recordlink", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    RESILIENCE_ENABLED: bool = Field(default=True, description="Start periodic tasks on start()")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from recordlink.core.config.settings import get_settings

        settings = get_settings()
        interval = settings.monitor.PING_INTERVAL
        cap = settings.query.MAX_CONCURRENT_QUERIES
    """

    # Connection monitor
    PING_INTERVAL: float = Field(default=PING_INTERVAL, gt=0, description="Seconds between pings")
    CONNECTION_TIMEOUT: float = Field(default=CONNECTION_TIMEOUT, gt=0, description="Probe timeout")

    # Reconnection
    MAX_RECONNECT_ATTEMPTS: int = Field(default=MAX_RECONNECT_ATTEMPTS, ge=1)
    RECONNECT_BASE_DELAY: float = Field(default=RECONNECT_BASE_DELAY, gt=0)
    RECONNECT_BACKOFF_FACTOR: float = Field(default=RECONNECT_BACKOFF_FACTOR, ge=1)
    RECONNECT_MAX_DELAY: float = Field(default=RECONNECT_MAX_DELAY, gt=0)

    # Query execution
    QUERY_TIMEOUT: float = Field(default=QUERY_TIMEOUT, gt=0)
    MAX_CONCURRENT_QUERIES: int = Field(default=MAX_CONCURRENT_QUERIES, ge=1)
    QUERY_TIMEOUT_SCAN_INTERVAL: float = Field(default=QUERY_TIMEOUT_SCAN_INTERVAL, gt=0)

    # Retry queue
    RETRY_QUEUE_MAX_SIZE: int = Field(default=RETRY_QUEUE_MAX_SIZE, ge=1)
    RETRY_QUEUE_BATCH_SIZE: int = Field(default=RETRY_QUEUE_BATCH_SIZE, ge=1)
    RETRY_QUEUE_MAX_ATTEMPTS: int = Field(default=RETRY_QUEUE_MAX_ATTEMPTS, ge=1)
    RETRY_QUEUE_MAX_AGE: float = Field(default=RETRY_QUEUE_MAX_AGE, gt=0)
    RETRY_QUEUE_DRAIN_INTERVAL: float = Field(default=RETRY_QUEUE_DRAIN_INTERVAL, gt=0)

    # Connection pool
    CONNECTION_POOL_SIZE: int = Field(default=CONNECTION_POOL_SIZE, ge=1)
    IDLE_CONNECTION_TIMEOUT: float = Field(default=IDLE_CONNECTION_TIMEOUT, gt=0)
    POOL_CLEANUP_INTERVAL: float = Field(default=POOL_CLEANUP_INTERVAL, gt=0)
    ACTIVITY_UPDATE_INTERVAL: float = Field(default=ACTIVITY_UPDATE_INTERVAL, gt=0)

    # Health checks
    HEALTH_CHECK_INTERVAL: float = Field(default=HEALTH_CHECK_INTERVAL, gt=0)
    HEALTH_CHECK_TIMEOUT: float = Field(default=HEALTH_CHECK_TIMEOUT, gt=0)

    # Backend
    BACKEND_URL: str = Field(default="http://localhost:8090", description="Record API base URL")
    BACKEND_AUTH_TOKEN: str | None = Field(default=None, description="Session token (optional)")
    BACKEND_AUTH_COLLECTION: str = Field(default=BACKEND_AUTH_COLLECTION)
    BACKEND_PROBE_COLLECTION: str = Field(default=BACKEND_PROBE_COLLECTION)
    BACKEND_REQUEST_TIMEOUT: float = Field(default=BACKEND_REQUEST_TIMEOUT, gt=0)

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application
    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="recordlink", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    RESILIENCE_ENABLED: bool = Field(default=True, description="Start periodic tasks on start()")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("BACKEND_URL")
    @classmethod
    def strip_trailing_slash(cls, v):
        """Normalize the base URL so paths can be joined with a leading slash."""
        return v.rstrip("/")

    # Nested configuration views
    @property
    def monitor(self) -> MonitorSettings:
        """Get connection monitor settings."""
        return MonitorSettings(
            PING_INTERVAL=self.PING_INTERVAL,
            CONNECTION_TIMEOUT=self.CONNECTION_TIMEOUT,
        )

    @property
    def reconnect(self) -> ReconnectSettings:
        """Get reconnection settings."""
        return ReconnectSettings(
            MAX_RECONNECT_ATTEMPTS=self.MAX_RECONNECT_ATTEMPTS,
            RECONNECT_BASE_DELAY=self.RECONNECT_BASE_DELAY,
            RECONNECT_BACKOFF_FACTOR=self.RECONNECT_BACKOFF_FACTOR,
            RECONNECT_MAX_DELAY=self.RECONNECT_MAX_DELAY,
        )

    @property
    def query(self) -> QuerySettings:
        """Get query execution settings."""
        return QuerySettings(
            QUERY_TIMEOUT=self.QUERY_TIMEOUT,
            MAX_CONCURRENT_QUERIES=self.MAX_CONCURRENT_QUERIES,
            QUERY_TIMEOUT_SCAN_INTERVAL=self.QUERY_TIMEOUT_SCAN_INTERVAL,
        )

    @property
    def retry_queue(self) -> RetryQueueSettings:
        """Get retry queue settings."""
        return RetryQueueSettings(
            RETRY_QUEUE_MAX_SIZE=self.RETRY_QUEUE_MAX_SIZE,
            RETRY_QUEUE_BATCH_SIZE=self.RETRY_QUEUE_BATCH_SIZE,
            RETRY_QUEUE_MAX_ATTEMPTS=self.RETRY_QUEUE_MAX_ATTEMPTS,
            RETRY_QUEUE_MAX_AGE=self.RETRY_QUEUE_MAX_AGE,
            RETRY_QUEUE_DRAIN_INTERVAL=self.RETRY_QUEUE_DRAIN_INTERVAL,
        )

    @property
    def pool(self) -> PoolSettings:
        """Get connection pool settings."""
        return PoolSettings(
            CONNECTION_POOL_SIZE=self.CONNECTION_POOL_SIZE,
            IDLE_CONNECTION_TIMEOUT=self.IDLE_CONNECTION_TIMEOUT,
            POOL_CLEANUP_INTERVAL=self.POOL_CLEANUP_INTERVAL,
            ACTIVITY_UPDATE_INTERVAL=self.ACTIVITY_UPDATE_INTERVAL,
        )

    @property
    def health(self) -> HealthSettings:
        """Get health check settings."""
        return HealthSettings(
            HEALTH_CHECK_INTERVAL=self.HEALTH_CHECK_INTERVAL,
            HEALTH_CHECK_TIMEOUT=self.HEALTH_CHECK_TIMEOUT,
        )

    @property
    def backend(self) -> BackendSettings:
        """Get backend API settings."""
        return BackendSettings(
            BACKEND_URL=self.BACKEND_URL,
            BACKEND_AUTH_TOKEN=self.BACKEND_AUTH_TOKEN,
            BACKEND_AUTH_COLLECTION=self.BACKEND_AUTH_COLLECTION,
            BACKEND_PROBE_COLLECTION=self.BACKEND_PROBE_COLLECTION,
            BACKEND_REQUEST_TIMEOUT=self.BACKEND_REQUEST_TIMEOUT,
        )

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(
            LOG_LEVEL=self.LOG_LEVEL,
            LOG_FORMAT=self.LOG_FORMAT,
        )

    @property
    def app(self) -> ApplicationSettings:
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            RESILIENCE_ENABLED=self.RESILIENCE_ENABLED,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def _load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as e:
        fields = [".".join(map(str, err["loc"])) for err in e.errors()]
        raise ConfigurationError.from_exception(
            e, f"Invalid configuration: {e.error_count()} error(s)", fields=fields
        ) from e


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.1: Settings initialization

    Returns:
        Settings: Global settings instance

    Raises:
        ConfigurationError: The environment holds invalid values
    """
    global _settings

    if _settings is None:
        _settings = _load_settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = _load_settings()
    return _settings
