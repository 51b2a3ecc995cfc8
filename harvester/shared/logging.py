"""
Harvester - Structured Logging Module

Provides structured logging using structlog with JSON output for production
and colored console output for development. Credentials are masked before
rendering, and a running job binds its id into the task context so worker
log lines carry it.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from harvester.shared.config import settings

# Event keys whose values never reach a log sink
REDACTED_KEYS = frozenset({"password", "token", "cookie", "authorization"})


def redact_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask credential values bound by scrapers or passed as log fields."""
    for key in REDACTED_KEYS.intersection(event_dict):
        if event_dict[key] is not None:
            event_dict[key] = "********"
    return event_dict


def setup_logging() -> None:
    """Configure structured logging for the application."""

    is_dev = not settings.app.is_production

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        redact_secrets,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if is_dev:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]
    else:
        # JSON lines for log aggregation
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
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
        level=getattr(logging, settings.app.log_level),
    )


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance with optional initial context.

    Args:
        name: Logger name (usually __name__)
        **initial_context: Key-value pairs to bind to the logger

    Returns:
        Configured structlog logger

    Example:
        >>> logger = get_logger(__name__, job_id="job-42")
        >>> logger.info("Batch started", batch_index=0)
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


def bind_job_context(job_id: str) -> None:
    """
    Attach job_id to every log line emitted from the current task.

    Tasks spawned afterwards (the per-item workers) inherit the binding;
    the caller that spawned the job task does not.
    """
    structlog.contextvars.bind_contextvars(job_id=job_id)


class LoggerMixin:
    """
    Mixin class to add logging capabilities to any class.

    Example:
        >>> class MyScheduler(LoggerMixin):
        ...     def run(self):
        ...         self.logger.info("Scheduling")
    """

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        if not hasattr(self, "_logger"):
            self._logger = get_logger(self.__class__.__name__)
        return self._logger


# Initialize logging on module import
setup_logging()
