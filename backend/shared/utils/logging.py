"""
Structured logging for the Live Sync engine.

Every record carries the service name and environment. The refresh scheduler
binds `cycle` and `scope` around each cycle, so cache, limiter and upstream
records can be traced back to the cycle that caused them.

Output goes to stderr, leaving stdout to a terminal renderer.
"""
from __future__ import annotations

import logging
import sys
from datetime import date
from enum import Enum
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from shared.config import Environment, Settings, get_settings

NOISY_LOGGERS = ("httpx", "httpcore")


def plain_values(_: Any, __: str, event_dict: EventDict) -> EventDict:
    """Render enums and dates (game status, scope day) as plain strings."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
        elif isinstance(value, date):
            event_dict[key] = value.isoformat()
    return event_dict


def setup_logging(service_name: str, settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        plain_values,
    ]

    if settings.environment == Environment.DEV:
        renderers: list[Processor] = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]
    else:
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
            foreign_pre_chain=shared_processors,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    # Per-request client chatter would drown the cycle summaries
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name, environment=settings.environment.value)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
