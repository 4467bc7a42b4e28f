"""
Structured logging for the order service.

structlog is configured once at startup: console output in development, JSON
lines everywhere else. Request correlation uses structlog's context-local
storage, so anything bound during a request (the request id, an order id)
lands on every event logged while handling it.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor

from upfit_orders.core.config import get_settings

REQUEST_ID_KEY = "request_id"

_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "asyncio")


def add_service_info(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Stamp each event with the service name and environment."""
    settings = get_settings()
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("environment", settings.environment)
    return event_dict


def configure_logging() -> None:
    """
    Configure structlog and the stdlib root logger.

    Log level comes from ``APP_LOG_LEVEL``.
    """
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_service_info,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.is_development:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.JSONRenderer())

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
        level=getattr(logging, settings.log_level),
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Bind a request id to the current context.

    Args:
        request_id: Incoming X-Request-ID, a UUID is generated if missing

    Returns:
        The bound request id
    """
    request_id = request_id or str(uuid4())
    structlog.contextvars.bind_contextvars(**{REQUEST_ID_KEY: request_id})
    return request_id


def get_request_id() -> str:
    return structlog.contextvars.get_contextvars().get(REQUEST_ID_KEY, "")


def bind_order_context(order_id: str) -> None:
    """Attach an order id to every event logged for the rest of the request."""
    structlog.contextvars.bind_contextvars(order_id=order_id)


def clear_context() -> None:
    """Drop everything bound during the request."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def log_performance(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    slow_threshold_ms: float = 500,
    **context: Any,
) -> Iterator[None]:
    """
    Log how long a block took.

    Completed blocks log at info, or warning above ``slow_threshold_ms``;
    failing blocks log at error and re-raise.

    Example:
        >>> with log_performance(logger, "order_listing", dealer_code="CVC101"):
        ...     orders = await store.list(OrderFilter(dealer_code="CVC101"))
    """
    started = time.perf_counter()
    try:
        yield
    except Exception as e:
        logger.error(
            "Operation failed",
            operation=operation,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            error_type=type(e).__name__,
            **context,
        )
        raise

    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    log_method = logger.warning if duration_ms > slow_threshold_ms else logger.info
    log_method("Operation completed", operation=operation, duration_ms=duration_ms, **context)
