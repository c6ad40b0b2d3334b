"""Dispatch domain models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from trailguard.audit.models import utc_now


class JobKind(str, Enum):
    """Shape of a queued job."""

    SINGLE = "single"
    BATCH = "batch"


class JobStatus(str, Enum):
    """Lifecycle of a locally tracked job."""

    DISPATCHED = "dispatched"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class DispatchJob(BaseModel):
    """Local handle for one enqueued job.

    job_id is generated here and is only meaningful to this process;
    broker_message_id correlates it with what the broker stored.
    """

    job_id: str
    queue: str
    kind: JobKind
    event_count: int = Field(ge=0)
    status: JobStatus = JobStatus.DISPATCHED
    broker_message_id: str | None = None
    dispatched_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class PerformanceSnapshot(BaseModel):
    """Aggregated dispatch and processing timings."""

    avg_dispatch_time_ms: float = 0.0
    avg_processing_time_ms: float = 0.0
    total_dispatched: int = 0
    total_processed: int = 0
    total_failed: int = 0

    @property
    def success_rate(self) -> float:
        """Percentage of processed jobs that succeeded; 100 with no data."""
        finished = self.total_processed + self.total_failed
        if finished == 0:
            return 100.0
        return self.total_processed / finished * 100


class QueueStats(BaseModel):
    """Point-in-time view of the dispatch pipeline."""

    queues: dict[str, int] = Field(default_factory=dict, description="Pending jobs per queue")
    failed_jobs: int = 0
    tracked_jobs: int = 0
    performance: PerformanceSnapshot = Field(default_factory=PerformanceSnapshot)
    collected_at: datetime = Field(default_factory=utc_now)

    @property
    def success_rate(self) -> float:
        return self.performance.success_rate


class HealthStatus(str, Enum):
    """Overall queue health."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class QueueHealth(BaseModel):
    """Health assessment with the issues that caused it."""

    status: HealthStatus = HealthStatus.HEALTHY
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    stats: QueueStats
