"""Structured logging configuration using structlog.

Ledger and tournament code log snake_case event names with key/value context:

    logger.info("ledger_append", user_id=..., amount=Decimal("-10.00"))

Money values are Decimals; they are rendered as plain strings so JSON output
keeps the exact cents instead of a float approximation.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from seka.config import Settings


def _render_decimals(
    _logger: WrappedLogger, _method: str, event_dict: EventDict
) -> EventDict:
    """Render Decimal amounts as strings (JSON has no exact decimal type)."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


# Libraries whose INFO output drowns ledger events
_QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncpg", "httpx", "httpcore")


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _render_decimals,
        structlog.processors.StackInfoRenderer(),
    ]


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    app_env: str = "development",
) -> None:
    """Configure structlog on top of the standard library root logger.

    Records from stdlib loggers (tenacity retry warnings, SQLAlchemy) pass
    through the same processor chain, so one handler renders everything.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        json_logs: Force JSON output outside production
        app_env: Application environment; production always logs JSON
    """
    pre_chain = _shared_processors()
    if json_logs or app_env == "production":
        pre_chain.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_from_settings(settings: Settings) -> None:
    """Configure logging from application settings."""
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.json_logs,
        app_env=settings.app_env,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables to all subsequent log calls."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def operation_context(operation: str, **kwargs: Any) -> Iterator[None]:
    """Bind ``operation`` plus identifiers for the duration of one engine call.

    Usage:
        with operation_context("register", tournament_id=tid, user_id=uid):
            ...
    """
    with structlog.contextvars.bound_contextvars(operation=operation, **kwargs):
        yield
