"""
Structured logging configuration using structlog.

JSON lines in production, colored console output otherwise. Per-event
fields (topic, device_id, alert_category) are bound through contextvars so
that every line logged while an event is in flight carries them, including
lines from concurrently processed events.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from alert_relay.config.settings import get_settings

# Chatty third-party loggers (firebase-admin logs through google.*)
_QUIET_LOGGERS = ("asyncio", "urllib3", "google", "google.auth", "asyncpg")


def setup_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Log level name; defaults to ``settings.log_level``.
        json_logs: Force JSON (True) or console (False) rendering;
            defaults to JSON in production only.

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Alert suppressed", device_id="dev1", alert_category="GAS")
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()
    if json_logs is None:
        json_logs = settings.is_production

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
        force=True,
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**kwargs) -> None:
    """Bind fields to every log line emitted by the current task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
