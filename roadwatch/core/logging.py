"""
Structured logging configuration with request context.

JSON logs in production, coloured console logs in development. Every
request carries a correlation ID, and events are stamped with the acting
officer and the payment reference being settled when those are bound, so
a violation batch or a payment verification can be followed across log
lines.
"""

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import Processor

from roadwatch.core.config import get_settings

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
actor_id_var: ContextVar[int | None] = ContextVar("actor_id", default=None)
payment_reference_var: ContextVar[str | None] = ContextVar("payment_reference", default=None)

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("uvicorn", "uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")


def get_correlation_id() -> str:
    """Return the correlation ID bound to the current context."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Bind a correlation ID to the current context.

    Args:
        correlation_id: Incoming ID (e.g. from X-Correlation-ID). A new
            UUID4 is generated when None.

    Returns:
        str: The correlation ID that was bound.
    """
    cid = correlation_id or str(uuid.uuid4())
    correlation_id_var.set(cid)
    return cid


def bind_actor(actor_id: int | None) -> None:
    """Bind the authenticated actor for the rest of the request."""
    actor_id_var.set(actor_id)


@contextmanager
def payment_context(payment_reference: str) -> Iterator[None]:
    """Stamp ``payment_reference`` on every event logged inside the block."""
    token = payment_reference_var.set(payment_reference)
    try:
        yield
    finally:
        payment_reference_var.reset(token)


def add_request_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """
    Structlog processor stamping request context onto each event.

    Adds the correlation ID, the acting officer and the payment reference
    being settled, whichever are bound. Explicit event keys win.
    """
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    actor_id = actor_id_var.get()
    if actor_id is not None:
        event_dict.setdefault("actor_id", actor_id)
    payment_reference = payment_reference_var.get()
    if payment_reference:
        event_dict.setdefault("payment_reference", payment_reference)
    return event_dict


def drop_color_message_key(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Remove the uvicorn-specific color_message key."""
    event_dict.pop("color_message", None)
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog on top of standard library logging.

    The renderer follows ``Settings.log_format``; third-party loggers in
    ``NOISY_LOGGERS`` are capped at WARNING.
    """
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    common_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_request_context,
        drop_color_message_key,
    ]

    if settings.log_format == "json":
        processors: list[Processor] = [
            *common_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *common_processors,
            structlog.dev.ConsoleRenderer(colors=True),
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
        level=log_level,
    )

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("violations_recorded", plate="ABC-123-DE", count=2)
    """
    return structlog.get_logger(name)
