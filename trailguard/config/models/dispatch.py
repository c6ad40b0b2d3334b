"""Dispatch, batching and worker configuration models."""

from pathlib import Path

from pydantic import BaseModel, Field


class QueueNamesConfig(BaseModel):
    """Queue names used by the dispatcher."""

    default: str = Field(default="activities", description="Normal priority queue")
    high_priority: str = Field(default="activities-high", description="High priority queue")
    batch: str = Field(default="activities-batch", description="Batch job queue")

    def all(self) -> list[str]:
        """Return every configured queue name."""
        return [self.default, self.high_priority, self.batch]


class HealthThresholdsConfig(BaseModel):
    """Thresholds used by queue health monitoring."""

    queue_depth_warning: int = Field(default=1000, ge=0, description="Depth above which a queue is backlogged")
    success_rate_critical: float = Field(
        default=95.0,
        ge=0.0,
        le=100.0,
        description="Success rate (percent) below which health is critical",
    )
    processing_time_warning_ms: float = Field(
        default=1000.0,
        gt=0,
        description="Mean processing time above which health is warning",
    )
    processing_time_critical_ms: float = Field(
        default=5000.0,
        gt=0,
        description="Mean processing time above which health is critical",
    )


class DispatchConfig(BaseModel):
    """Async dispatch configuration."""

    queues: QueueNamesConfig = Field(default_factory=QueueNamesConfig)
    batch_size: int = Field(default=100, ge=1, description="Bucket size that triggers a flush")
    chunk_size: int = Field(default=100, ge=1, description="Events per batch job")
    batch_wait_seconds: int = Field(
        default=30,
        ge=1,
        description="Expected flush interval; buckets expire after this plus 60s",
    )
    high_priority_types: list[str] = Field(
        default_factory=lambda: [
            "security_incident",
            "login_failed",
            "permission_escalation",
            "system_error",
            "data_breach",
        ],
        description="Event types always routed to the high priority queue",
    )
    high_risk_threshold: int = Field(
        default=7,
        ge=1,
        le=10,
        description="Risk level at or above which events are high priority",
    )
    job_tracking_ttl_seconds: int = Field(
        default=3600,
        ge=1,
        description="How long local job handles are kept",
    )
    health: HealthThresholdsConfig = Field(default_factory=HealthThresholdsConfig)


class WorkerConfig(BaseModel):
    """Consumer-side job processing configuration."""

    max_type_length: int = Field(default=100, ge=1)
    max_description_length: int = Field(default=500, ge=1)
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    visibility_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="How long a dequeued job may stay unanswered before it is redelivered",
    )
    backup_dir: Path | None = Field(
        default=None,
        description="Directory for JSON backups of permanently failed jobs",
    )
    notify_risk_threshold: int = Field(
        default=7,
        ge=1,
        le=10,
        description="Risk level at which permanent failures are logged as critical",
    )
