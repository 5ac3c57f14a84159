"""
Structured Logging with Structlog.

Configured once at startup by setup_logging(); nothing mutates logging
state afterwards. DEBUG_MODE selects verbose output, otherwise only
errors are emitted unless LOG_LEVEL says otherwise.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from pawbook.config import settings

_configured = False


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add client-level context to all log entries."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.client_version
    return event_dict


def setup_logging() -> None:
    """
    Configure structured logging with structlog.

    Console output by default; LOG_FORMAT=json emits one object per line:
    {
        "event": "purchase_session_created",
        "level": "info",
        "timestamp": "2025-01-08T12:00:00.123456Z",
        "logger": "pawbook.services.purchase",
        "service": "pawbook-client",
        "version": "0.1.0",
        ...additional context
    }

    Calling it again is a no-op.
    """
    global _configured
    if _configured:
        return

    level = getattr(logging, settings.effective_log_level, logging.ERROR)

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    # Processors for structlog
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    # Add exception info
    if level == logging.DEBUG:
        processors.append(structlog.processors.ExceptionRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)

    # Choose renderer based on format
    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=settings.debug_mode))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("purchase_verified", session_id=session_id, new_balance=900)
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


# Context manager for adding operation context
class log_context:
    """
    Context manager for adding structured logging context.

    Usage:
        with log_context(book_id="book-123"):
            logger.info("download_started")
            # All logs within this context will include book_id
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        """Enter context - bind context variables."""
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit context - clear context variables."""
        structlog.contextvars.unbind_contextvars(*self.context.keys())
