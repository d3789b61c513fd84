"""Structured logging configuration with structlog."""

import logging
import sys
from typing import Any

import orjson
import structlog
from structlog.types import EventDict, Processor

from app.core.config import settings


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to log events."""
    event_dict["app_name"] = settings.APP_NAME
    event_dict["environment"] = settings.APP_ENV
    return event_dict


def _orjson_dumps(obj: Any, **kwargs: Any) -> str:
    # stdlib handlers expect str, orjson returns bytes
    return orjson.dumps(obj, **kwargs).decode()


def configure_logging() -> None:
    """
    Configure structlog for structured logging.

    - JSON output in production
    - Human-readable console output in development
    - Request context merged from contextvars
    """
    is_dev = settings.APP_ENV == "development"
    level = logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    shared_processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        # Request ID, user ID, path, ...
        structlog.contextvars.merge_contextvars,
        add_app_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if is_dev:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        ]
    else:
        processors = shared_processors + [
            structlog.processors.JSONRenderer(serializer=_orjson_dumps)
        ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
        context_class=dict,
    )

    logging.getLogger().setLevel(level)


def get_logger(name: str | None = None) -> Any:
    """
    Get a structlog logger instance.

    Args:
        name: Logger name (usually __name__). If None, returns root logger.

    Returns:
        Configured structlog logger

    Example:
        ```python
        logger = get_logger(__name__)
        logger.info("two_factor_enabled", user_id=str(user.id))
        ```
    """
    return structlog.get_logger(name)
