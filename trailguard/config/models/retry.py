"""Retry executor configuration models."""

from pydantic import BaseModel, Field


class RetryConfig(BaseModel):
    """Exponential backoff configuration.

    Delay before retry k is min(max_delay_ms, base_delay_ms * multiplier**(k-1))
    plus up to jitter_ratio of that value.
    """

    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    base_delay_ms: int = Field(default=1000, ge=0, description="Delay before the first retry")
    multiplier: float = Field(default=2.0, ge=1.0, description="Backoff multiplier")
    max_delay_ms: int = Field(default=30000, ge=0, description="Upper bound on a single delay")
    jitter_ratio: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Maximum jitter as a fraction of the computed delay",
    )
    retryable_http_statuses: list[int] = Field(
        default_factory=lambda: [408, 429, 500, 502, 503, 504],
        description="HTTP statuses treated as transient",
    )
    transient_datastore_codes: list[str] = Field(
        default_factory=lambda: [
            # MySQL: lock wait timeout, deadlock, server gone away, lost connection
            "1205",
            "1213",
            "2006",
            "2013",
            # SQLSTATE: serialization failure, deadlock, lock not available,
            # connection exception / does not exist / failure
            "40001",
            "40P01",
            "55P03",
            "08000",
            "08003",
            "08006",
        ],
        description="Datastore error codes treated as transient",
    )
