"""Closed classification of failures into retryable and terminal."""

from typing import Any

import httpx
import redis.exceptions

from trailguard.config.models.retry import RetryConfig
from trailguard.exceptions import RetryableError, TerminalError, UpstreamHTTPError

CONNECTION_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    redis.exceptions.ConnectionError,
    redis.exceptions.TimeoutError,
    httpx.TransportError,
)

# Driver messages that identify transient datastore failures when no code
# attribute is available.
TRANSIENT_MESSAGE_MARKERS: tuple[str, ...] = (
    "deadlock found",
    "lock wait timeout",
    "server has gone away",
    "lost connection",
    "connection refused",
)

_CODE_ATTRIBUTES = ("sqlstate", "pgcode", "code", "errno")
_MAX_CHAIN_DEPTH = 5


def _http_status(error: BaseException) -> int | None:
    if isinstance(error, UpstreamHTTPError):
        return error.status_code
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attribute in ("status_code", "status"):
        value = getattr(error, attribute, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _datastore_codes(error: BaseException) -> set[str]:
    codes: set[str] = set()
    for attribute in _CODE_ATTRIBUTES:
        value = getattr(error, attribute, None)
        if isinstance(value, str | int) and not isinstance(value, bool):
            codes.add(str(value))
    # MySQL drivers raise Error(code, message) without a code attribute
    if (
        len(error.args) >= 2
        and isinstance(error.args[0], int)
        and not isinstance(error.args[0], bool)
        and isinstance(error.args[1], str)
    ):
        codes.add(str(error.args[0]))
    return codes


def _error_chain(error: BaseException) -> list[BaseException]:
    """The error plus the driver errors it wraps (SQLAlchemy .orig, __cause__)."""
    chain: list[BaseException] = []
    current: Any = error
    while isinstance(current, BaseException) and current not in chain:
        chain.append(current)
        if len(chain) >= _MAX_CHAIN_DEPTH:
            break
        current = getattr(current, "orig", None) or current.__cause__
    return chain


class RetryClassifier:
    """Decides whether a failure is worth retrying.

    Order of checks:
    1. Explicit TerminalError / RetryableError
    2. HTTP status codes (only the configured ones are transient)
    3. Transient datastore codes and driver messages
    4. Connection and timeout errors
    Anything else is terminal.
    """

    def __init__(self, config: RetryConfig | None = None) -> None:
        config = config or RetryConfig()
        self._http_statuses = frozenset(config.retryable_http_statuses)
        self._datastore_codes = frozenset(config.transient_datastore_codes)

    def is_retryable(self, error: BaseException) -> bool:
        """Classify a single failure."""
        if isinstance(error, TerminalError):
            return False
        if isinstance(error, RetryableError):
            return True

        status = _http_status(error)
        if status is not None:
            return status in self._http_statuses

        for link in _error_chain(error):
            if _datastore_codes(link) & self._datastore_codes:
                return True
            message = str(link).lower()
            if any(marker in message for marker in TRANSIENT_MESSAGE_MARKERS):
                return True
            if isinstance(link, CONNECTION_ERRORS):
                return True

        return False
