"""Structured logging configuration using structlog.

Provides JSON logging for production and console logging for development,
with automatic context binding and redaction of sensitive values.
"""

import logging
import sys
from typing import Any, cast

import structlog
from structlog.types import EventDict, WrappedLogger

from trailguard.redaction import Redactor

# Keys structlog itself adds; never masked
_RESERVED_KEYS: frozenset[str] = frozenset({"event", "level", "timestamp", "logger"})


class PIIRedactor:
    """Processor that redacts sensitive data from log events.

    Delegates to the same Redactor used for event payloads, so log output
    and outward event copies follow one keyword/pattern policy.
    """

    def __init__(self, redactor: Redactor | None = None) -> None:
        self._redactor = redactor or Redactor()

    def __call__(
        self,
        _logger: WrappedLogger,
        _method_name: str,
        event_dict: EventDict,
    ) -> EventDict:
        """Redact sensitive values from the event dictionary."""
        reserved = {key: event_dict[key] for key in _RESERVED_KEYS if key in event_dict}
        payload = {key: value for key, value in event_dict.items() if key not in _RESERVED_KEYS}
        redacted = self._redactor.filter_properties(payload)
        redacted.update(reserved)
        return cast(EventDict, redacted)


def setup_logging(
    level: str = "INFO",
    format: str = "json",
    redact_pii: bool = True,
    redactor: Redactor | None = None,
) -> None:
    """Configure structured logging.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format - "json" for production, "console" for development
        redact_pii: Whether to run log events through the redactor
        redactor: Redactor to use; defaults to one built from default config
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if redact_pii:
        processors.append(PIIRedactor(redactor))

    if format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    level_num = logging.getLevelName(level.upper())
    if not isinstance(level_num, int):
        level_num = logging.INFO

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance bound to the given name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        A bound structlog logger
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
