#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

Type-safe, environment-based configuration for the paging engine, the bulk
mutation engine and logging.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with reload_settings()
"""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from buslane.core.config.constants import (
    BODY_PREVIEW_LENGTH,
    DEFAULT_MAX_TOTAL_MESSAGES,
    DEFAULT_MESSAGES_PER_PAGE,
    DELETE_BATCH_SIZE,
    DELETE_RECEIVE_TIMEOUT,
    LOG_SINK_MAX_ENTRIES,
    MAX_EMPTY_BATCHES,
    MAX_SESSIONS_TO_CHECK,
    PURGE_BATCH_SIZE,
    PURGE_RECEIVE_TIMEOUT,
    RESEND_BATCH_SIZE,
    RESUBMIT_RECEIVE_TIMEOUT,
    SESSION_ACCEPT_TIMEOUT,
)

_VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class PagingSettings(BaseSettings):
    """
    Message browsing configuration.

    MESSAGES_PER_PAGE is the peek size of one page; MAX_TOTAL_MESSAGES caps the
    cumulative number of messages a single context will cache before has-more
    turns false.
    """

    MESSAGES_PER_PAGE: int = Field(default=DEFAULT_MESSAGES_PER_PAGE, gt=0, description="Messages per page")
    MAX_TOTAL_MESSAGES: int = Field(default=DEFAULT_MAX_TOTAL_MESSAGES, gt=0, description="Cached message cap")
    SORT_DESCENDING: bool = Field(default=True, description="Newest first")
    BODY_PREVIEW_LENGTH: int = Field(default=BODY_PREVIEW_LENGTH, gt=0, description="List preview length")

    @model_validator(mode="after")
    def check_page_fits_cap(self):
        """The cap must allow at least one full page."""
        if self.MAX_TOTAL_MESSAGES < self.MESSAGES_PER_PAGE:
            raise ValueError("MAX_TOTAL_MESSAGES must be >= MESSAGES_PER_PAGE")
        return self

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class BulkOperationSettings(BaseSettings):
    """
    Batch sizes and receive timeouts for the bulk mutation engine.

    Timeouts are per receive call, in seconds. A timed-out receive is read as
    "no more messages", never as a failure.
    """

    PURGE_BATCH_SIZE: int = Field(default=PURGE_BATCH_SIZE, gt=0)
    PURGE_RECEIVE_TIMEOUT: float = Field(default=PURGE_RECEIVE_TIMEOUT, gt=0)
    DELETE_BATCH_SIZE: int = Field(default=DELETE_BATCH_SIZE, gt=0)
    DELETE_RECEIVE_TIMEOUT: float = Field(default=DELETE_RECEIVE_TIMEOUT, gt=0)
    MAX_EMPTY_BATCHES: int = Field(default=MAX_EMPTY_BATCHES, gt=0)
    RESEND_BATCH_SIZE: int = Field(default=RESEND_BATCH_SIZE, gt=0)
    RESUBMIT_RECEIVE_TIMEOUT: float = Field(default=RESUBMIT_RECEIVE_TIMEOUT, gt=0)
    MAX_SESSIONS_TO_CHECK: int = Field(default=MAX_SESSIONS_TO_CHECK, gt=0)
    SESSION_ACCEPT_TIMEOUT: float = Field(default=SESSION_ACCEPT_TIMEOUT, gt=0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    Architectural Decision: structlog for production-grade logging
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="console", description="Log output format")
    LOG_SINK_MAX_ENTRIES: int = Field(default=LOG_SINK_MAX_ENTRIES, gt=0, description="In-app log buffer size")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        if v.upper() not in _VALID_LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {_VALID_LOG_LEVELS}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    Usage:
        from buslane.core.config import get_settings

        settings = get_settings()
        page_size = settings.paging.MESSAGES_PER_PAGE
        batch = settings.bulk.DELETE_BATCH_SIZE
    """

    # Paging
    MESSAGES_PER_PAGE: int = Field(default=DEFAULT_MESSAGES_PER_PAGE, gt=0)
    MAX_TOTAL_MESSAGES: int = Field(default=DEFAULT_MAX_TOTAL_MESSAGES, gt=0)
    SORT_DESCENDING: bool = Field(default=True)
    BODY_PREVIEW_LENGTH: int = Field(default=BODY_PREVIEW_LENGTH, gt=0)

    # Bulk operations
    PURGE_BATCH_SIZE: int = Field(default=PURGE_BATCH_SIZE, gt=0)
    PURGE_RECEIVE_TIMEOUT: float = Field(default=PURGE_RECEIVE_TIMEOUT, gt=0)
    DELETE_BATCH_SIZE: int = Field(default=DELETE_BATCH_SIZE, gt=0)
    DELETE_RECEIVE_TIMEOUT: float = Field(default=DELETE_RECEIVE_TIMEOUT, gt=0)
    MAX_EMPTY_BATCHES: int = Field(default=MAX_EMPTY_BATCHES, gt=0)
    RESEND_BATCH_SIZE: int = Field(default=RESEND_BATCH_SIZE, gt=0)
    RESUBMIT_RECEIVE_TIMEOUT: float = Field(default=RESUBMIT_RECEIVE_TIMEOUT, gt=0)
    MAX_SESSIONS_TO_CHECK: int = Field(default=MAX_SESSIONS_TO_CHECK, gt=0)
    SESSION_ACCEPT_TIMEOUT: float = Field(default=SESSION_ACCEPT_TIMEOUT, gt=0)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: Literal["json", "console"] = Field(default="console")
    LOG_SINK_MAX_ENTRIES: int = Field(default=LOG_SINK_MAX_ENTRIES, gt=0)

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        if v.upper() not in _VALID_LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {_VALID_LOG_LEVELS}")
        return v.upper()

    @model_validator(mode="after")
    def check_page_fits_cap(self):
        """The cap must allow at least one full page."""
        if self.MAX_TOTAL_MESSAGES < self.MESSAGES_PER_PAGE:
            raise ValueError("MAX_TOTAL_MESSAGES must be >= MESSAGES_PER_PAGE")
        return self

    # Nested configuration views
    @property
    def paging(self) -> PagingSettings:
        """Get paging settings."""
        return PagingSettings(
            MESSAGES_PER_PAGE=self.MESSAGES_PER_PAGE,
            MAX_TOTAL_MESSAGES=self.MAX_TOTAL_MESSAGES,
            SORT_DESCENDING=self.SORT_DESCENDING,
            BODY_PREVIEW_LENGTH=self.BODY_PREVIEW_LENGTH,
        )

    @property
    def bulk(self) -> BulkOperationSettings:
        """Get bulk operation settings."""
        return BulkOperationSettings(
            PURGE_BATCH_SIZE=self.PURGE_BATCH_SIZE,
            PURGE_RECEIVE_TIMEOUT=self.PURGE_RECEIVE_TIMEOUT,
            DELETE_BATCH_SIZE=self.DELETE_BATCH_SIZE,
            DELETE_RECEIVE_TIMEOUT=self.DELETE_RECEIVE_TIMEOUT,
            MAX_EMPTY_BATCHES=self.MAX_EMPTY_BATCHES,
            RESEND_BATCH_SIZE=self.RESEND_BATCH_SIZE,
            RESUBMIT_RECEIVE_TIMEOUT=self.RESUBMIT_RECEIVE_TIMEOUT,
            MAX_SESSIONS_TO_CHECK=self.MAX_SESSIONS_TO_CHECK,
            SESSION_ACCEPT_TIMEOUT=self.SESSION_ACCEPT_TIMEOUT,
        )

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(
            LOG_LEVEL=self.LOG_LEVEL,
            LOG_FORMAT=self.LOG_FORMAT,
            LOG_SINK_MAX_ENTRIES=self.LOG_SINK_MAX_ENTRIES,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (lazy singleton).

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
