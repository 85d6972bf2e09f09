"""
Logging configuration for the X-ray analysis relay.

Uses structlog for structured JSON logging suitable for production.
Credentials and image payloads are redacted before any renderer sees
the event.
"""

import logging
import re
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from app.config import settings


REDACTED = "[REDACTED]"

# Event keys whose values are never written out (compared lowercased)
SENSITIVE_KEYS = frozenset({
    "authorization",
    "api_key",
    "apikey",
    "openai_api_key",
    "image_base64",
    "imagebase64",
})

# Bearer tokens and provider keys echoed back inside upstream messages
SECRET_PATTERN = re.compile(r"(Bearer\s+|sk-)[A-Za-z0-9_\-\.]+")


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return SECRET_PATTERN.sub(REDACTED, value)
    return value


def redact_sensitive(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict
) -> EventDict:
    """
    Structlog processor that hides credentials and image data.

    Values under sensitive keys are replaced entirely. Other string
    values have bearer tokens and API keys masked.
    """
    for key, value in list(event_dict.items()):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = REDACTED
        else:
            event_dict[key] = _scrub(value)
    return event_dict


def configure_logging(
    log_level: Optional[str] = None,
    json_format: bool = True
) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Override log level (defaults to settings.log_level)
        json_format: Whether to output JSON (True) or console format (False)
    """
    level = log_level or settings.log_level

    # Convert string level to logging constant
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    # Shared processors for all configurations
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_format:
        # Production: JSON output
        processors: list[Processor] = shared_processors + [
            structlog.processors.format_exc_info,
            redact_sensitive,
            structlog.processors.JSONRenderer()
        ]
    else:
        # Development: Pretty console output
        processors = shared_processors + [
            redact_sensitive,
            structlog.dev.ConsoleRenderer(colors=True)
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Also configure standard library logging (uvicorn, httpx)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )


def get_logger(name: str = "xray_relay") -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name for identification

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


# Configure logging on module import (can be reconfigured later)
configure_logging(
    log_level=settings.log_level,
    json_format=not settings.debug  # Console format in debug mode
)

# Default logger instance
logger = get_logger()
