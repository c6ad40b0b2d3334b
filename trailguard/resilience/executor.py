"""Retry executor: exponential backoff with jitter around async operations."""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from trailguard.config.models.retry import RetryConfig
from trailguard.observability.logging import get_logger
from trailguard.observability.metrics import (
    RETRY_ATTEMPTS,
    RETRY_EXHAUSTED,
    RETRY_RECOVERED,
    RETRY_TERMINAL,
)
from trailguard.resilience.classification import RetryClassifier

logger = get_logger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryContext:
    """State of one scheduled retry."""

    operation: str
    attempt: int
    error_type: str
    error: str
    delay_seconds: float


@dataclass
class RetryStats:
    """Per-executor totals, mirrored by the prometheus counters."""

    retries: int = 0
    recovered: int = 0
    exhausted: int = 0
    terminal: int = 0


class RetryExecutor:
    """Runs async operations, retrying transient failures.

    The delay before retry k is min(max_delay, base * multiplier**(k-1))
    plus uniform jitter of up to jitter_ratio of that value. Only the
    calling coroutine sleeps; callers must not hold locks across
    execute_with_retry.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        classifier: RetryClassifier | None = None,
        sleep: SleepFunc = asyncio.sleep,
        rng: random.Random | None = None,
        on_retry: Callable[[RetryContext], None] | None = None,
    ) -> None:
        self._config = config or RetryConfig()
        self._classifier = classifier or RetryClassifier(self._config)
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._on_retry = on_retry
        self.stats = RetryStats()

    @property
    def classifier(self) -> RetryClassifier:
        return self._classifier

    def base_delay_ms(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (1-based), without jitter."""
        config = self._config
        return min(
            float(config.max_delay_ms),
            config.base_delay_ms * config.multiplier ** (attempt - 1),
        )

    def compute_delay(self, attempt: int) -> float:
        """Backoff in seconds before retry number `attempt`, jitter included."""
        delay_ms = self.base_delay_ms(attempt)
        jitter_ms = self._rng.uniform(0, self._config.jitter_ratio * delay_ms)
        return (delay_ms + jitter_ms) / 1000

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        max_retries: int | None = None,
        operation_name: str = "operation",
    ) -> T:
        """Run an operation, retrying transient failures.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            max_retries: Override for the configured retry count
            operation_name: Label used in logs and metrics

        Returns:
            The operation's result

        Raises:
            The last error, once retries are exhausted or the error is terminal
        """
        retries = self._config.max_retries if max_retries is None else max_retries

        def wait(retry_state: RetryCallState) -> float:
            return self.compute_delay(retry_state.attempt_number)

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            context = RetryContext(
                operation=operation_name,
                attempt=retry_state.attempt_number,
                error_type=type(error).__name__,
                error=str(error),
                delay_seconds=retry_state.next_action.sleep if retry_state.next_action else 0.0,
            )
            self.stats.retries += 1
            RETRY_ATTEMPTS.labels(operation=operation_name, error_type=context.error_type).inc()
            logger.warning(
                "retry_attempt",
                operation=operation_name,
                attempt=context.attempt,
                max_retries=retries,
                error_type=context.error_type,
                error=context.error,
                delay_seconds=round(context.delay_seconds, 3),
            )
            if self._on_retry is not None:
                self._on_retry(context)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait,
            retry=retry_if_exception(self._classifier.is_retryable),
            before_sleep=before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

        attempts = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = await operation()
        except Exception as e:
            error_type = type(e).__name__
            if self._classifier.is_retryable(e):
                self.stats.exhausted += 1
                RETRY_EXHAUSTED.labels(operation=operation_name, error_type=error_type).inc()
                logger.error(
                    "retry_exhausted",
                    operation=operation_name,
                    attempts=attempts,
                    error_type=error_type,
                    error=str(e),
                )
            else:
                self.stats.terminal += 1
                RETRY_TERMINAL.labels(operation=operation_name, error_type=error_type).inc()
                logger.error(
                    "operation_failed",
                    operation=operation_name,
                    attempts=attempts,
                    error_type=error_type,
                    error=str(e),
                )
            raise

        if attempts > 1:
            self.stats.recovered += 1
            RETRY_RECOVERED.labels(operation=operation_name).inc()
            logger.info("retry_succeeded", operation=operation_name, attempts=attempts)
        return result
