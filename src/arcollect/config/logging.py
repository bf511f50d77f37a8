"""Structured logging configuration for arcollect."""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any, Literal

import structlog

from arcollect.config.settings import get_settings

REDACTED = "[redacted]"

SENSITIVE_KEYS = frozenset(
    {
        "access_token",
        "api_key",
        "apikey",
        "authorization",
        "password",
        "service_key",
        "token",
    }
)


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask credential-bearing keys before rendering."""
    for key in event_dict:
        if key.lower() in SENSITIVE_KEYS and event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
) -> None:
    """Configure structlog for the API server and the cron jobs.

    Console output is the default for local runs; set ``LOG_FORMAT=json``
    for deployed functions so logs stay machine-readable.

    Args:
        level: Log level. Defaults to ``LOG_LEVEL``.
        format: Output format. Defaults to ``LOG_FORMAT``.
    """
    settings = get_settings()
    log_level = level or settings.log_level
    log_format = format or settings.log_format

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level),
    )
    # httpx logs every request URL at INFO, query strings included
    logging.getLogger("httpx").setLevel(logging.WARNING)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
    ]

    if log_format == "json":
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors += [
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
