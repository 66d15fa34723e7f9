"""
Structured logging for the auth service.

Provides:
- get_logger(): Get a configured structlog logger
- setup_logging(): Configure stdlib logging + structlog from LoggingSettings
- redact_sensitive_fields(): processor that masks credentials and secrets

Production uses JSON output; development uses the pretty console renderer.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

import structlog
from structlog.stdlib import BoundLogger
from structlog.types import EventDict, Processor

if TYPE_CHECKING:
    from config import LoggingSettings


# Keys matched as substrings (case-insensitive)
SENSITIVE_SUBSTRINGS = ("password", "token", "secret", "hash")

# Keys matched exactly
SENSITIVE_KEYS = {"code", "otp", "key", "authorization", "cookie"}

_PROTECTED_KEYS = {"level", "event", "timestamp", "logger"}


def get_logger(name: str) -> BoundLogger:
    """
    Get a configured logger instance.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("login_success", account_id="123", auth_method="password")
    """
    return structlog.get_logger(name)


def add_timestamp(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add ISO format timestamp to event dict."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def redact_sensitive_fields(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Redact credentials, tokens and OTP codes from log events."""
    for key in list(event_dict.keys()):
        if key in _PROTECTED_KEYS:
            continue
        lowered = key.lower()
        if lowered in SENSITIVE_KEYS or any(
            sensitive in lowered for sensitive in SENSITIVE_SUBSTRINGS
        ):
            event_dict[key] = "***REDACTED***"
    return event_dict


def configure_structlog(log_format: str = "console") -> None:
    """Configure structlog processors for the chosen output format."""
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_timestamp,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        redact_sensitive_fields,
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(), pad_event=15, sort_keys=False
        )

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_stdlib_logging(log_level: str = "INFO") -> None:
    """Route stdlib logging to stdout and quiet noisy third-party loggers."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)


def setup_logging(settings: Optional["LoggingSettings"] = None) -> None:
    """
    Initialize logging for the application.

    Should be called once, early in create_app().
    """
    log_level = settings.log_level if settings else "INFO"
    log_format = settings.log_format if settings else "console"

    configure_stdlib_logging(log_level)
    configure_structlog(log_format)

    get_logger(__name__).info(
        "logging_initialized", log_level=log_level, log_format=log_format
    )
