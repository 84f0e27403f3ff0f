#!/usr/bin/env python3
"""
Structured Logging Module using structlog

This module provides structured logging for the resilience layer with:
- Query ID correlation for tracing a single execute() call
- Stage/sub-stage numbering for execution flow
- JSON formatting for log aggregation
- Automatic redaction of session tokens

Architectural Decision: structlog for production logging
- Context-aware logging with automatic field injection
- JSON output for log aggregation (ELK, Splunk, etc.)
- Async-safe correlation through context variables
"""

import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

import structlog
from structlog.types import EventDict, WrappedLogger

from recordlink.core.config.settings import get_settings

# Context variable for the active query ID (task-local under asyncio)
query_id_ctx: ContextVar[int | None] = ContextVar("query_id", default=None)

_BEARER_PATTERN = re.compile(r"\b(Bearer)\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE)
_JWT_PATTERN = re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\b")
_SECRET_PAIR_PATTERN = re.compile(r"\b(token|password|secret)=([^\s&,]+)", re.IGNORECASE)


def add_query_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add query ID to log event from context variable.

    STAGE-L.1: Query ID injection
    """
    query_id = query_id_ctx.get()
    if query_id is not None:
        event_dict.setdefault("query_id", query_id)
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add ISO timestamp to log event.

    STAGE-L.2: Timestamp injection
    """
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return event_dict


def redact_secrets(message: str) -> str:
    """Mask bearer tokens, JWTs and ``token=``/``password=`` pairs."""
    message = _BEARER_PATTERN.sub(r"\1 [REDACTED]", message)
    message = _JWT_PATTERN.sub("[REDACTED]", message)
    message = _SECRET_PAIR_PATTERN.sub(r"\1=[REDACTED]", message)
    return message


def redact_credentials(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact credentials from the log message and string fields.

    STAGE-L.3: Credential redaction

    Backend errors often echo request headers or query strings, so every
    string value is scrubbed, not only the event text.
    """
    for key, value in list(event_dict.items()):
        if isinstance(value, str):
            event_dict[key] = redact_secrets(value)
    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Upper-case the level name.

    STAGE-L.4: Log level injection
    """
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Setup structured logging with structlog.

    STAGE-L: Logging initialization

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
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

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_query_id,
            add_timestamp,
            structlog.stdlib.add_log_level,
            add_log_level_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_credentials,
            renderer,
        ],
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
        logger.info("message", key="value", stage="QE.1")
    """
    return structlog.get_logger(name)


def set_query_id(query_id: int) -> None:
    """
    Set the active query ID in context.

    STAGE-QE.1: Query context initialization
    """
    query_id_ctx.set(query_id)


def get_query_id() -> int | None:
    """Get current query ID from context."""
    return query_id_ctx.get()


def clear_query_id() -> None:
    """Clear query ID from context."""
    query_id_ctx.set(None)
