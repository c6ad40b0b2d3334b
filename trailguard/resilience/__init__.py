"""Retry with exponential backoff and a closed error classification."""

from trailguard.resilience.classification import RetryClassifier
from trailguard.resilience.executor import RetryContext, RetryExecutor, RetryStats

__all__ = ["RetryClassifier", "RetryContext", "RetryExecutor", "RetryStats"]
