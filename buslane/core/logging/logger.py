#!/usr/bin/env python3
"""
Structured Logging Module using structlog

This module provides structured logging with:
- Operation ID correlation across one user action (load page, bulk delete...)
- Stage identifiers for execution flow
- JSON or console rendering
- Automatic redaction of Service Bus secrets
- Optional forwarding into an in-app LogSink

Architectural Decision: structlog for production logging
- Context-aware logging with automatic field injection
- JSON output for log aggregation, colored console output for desktop use
"""

import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

import structlog
from structlog.types import EventDict, WrappedLogger

from buslane.core.config.settings import get_settings
from buslane.core.logging.sink import LogSink, LogSinkProcessor

# Context variable for the current operation ID
operation_id_ctx: ContextVar[str | None] = ContextVar("operation_id", default=None)

_SECRET_PATTERNS = (
    (re.compile(r"SharedAccessKey=[^;\s]+", re.IGNORECASE), "SharedAccessKey=[REDACTED]"),
    (re.compile(r"SharedAccessSignature=[^;\s]+", re.IGNORECASE), "SharedAccessSignature=[REDACTED]"),
    (re.compile(r"\bsig=[^&\s;]+"), "sig=[REDACTED]"),
)


def add_operation_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add the operation ID from context to every log entry."""
    operation_id = operation_id_ctx.get()
    if operation_id:
        event_dict["operation_id"] = operation_id
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add ISO timestamp to log event."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _redact(value: str) -> str:
    for pattern, replacement in _SECRET_PATTERNS:
        value = pattern.sub(replacement, value)
    return value


def redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact shared access keys and SAS signatures.

    Connection strings regularly end up in exception messages raised by the
    SDK, so every string field is scrubbed, not just the event text.
    """
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = _redact(value)
    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Upper-case the level name."""
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def setup_logging(
    log_level: str | None = None,
    log_format: str | None = None,
    sink: LogSink | None = None,
) -> None:
    """
    Setup structured logging with structlog.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
        sink: Optional in-app sink that receives every log entry
    """
    settings = get_settings()

    log_level = log_level or settings.logging.LOG_LEVEL
    log_format = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level.upper())
    )

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_operation_id,
        add_timestamp,
        structlog.stdlib.add_log_level,
        add_log_level_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_secrets,
    ]
    if sink is not None:
        processors.append(LogSinkProcessor(sink))
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("message", key="value", stage=Stage.PAGE_NEXT)
    """
    return structlog.get_logger(name)


def set_operation_id(operation_id: str) -> None:
    """Set the operation ID for the current user action."""
    operation_id_ctx.set(operation_id)


def get_operation_id() -> str | None:
    """Get current operation ID from context."""
    return operation_id_ctx.get()


def clear_operation_id() -> None:
    """Clear operation ID from context."""
    operation_id_ctx.set(None)


def log_stage(
    logger: structlog.stdlib.BoundLogger, stage: str, message: str, level: str = "info", **kwargs
) -> None:
    """
    Log a message with stage information.

    Usage:
        log_stage(logger, Stage.PAGE_DEDUP, "Fallback scan", cached=120)
    """
    log_func = getattr(logger, level.lower())
    log_func(message, stage=getattr(stage, "value", stage), **kwargs)
