"""AuditDispatcher: non-blocking hand-off of signed records to the broker."""

import time
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any
from uuid import uuid4

from trailguard.audit.models import SignedRecord, utc_now
from trailguard.config.models.dispatch import DispatchConfig
from trailguard.dispatch.accumulator import BatchAccumulator, bucket_key
from trailguard.dispatch.broker import QueueBroker
from trailguard.dispatch.metrics import DispatchMetrics
from trailguard.dispatch.models import (
    DispatchJob,
    HealthStatus,
    JobKind,
    QueueHealth,
    QueueStats,
)
from trailguard.dispatch.routing import route_queue
from trailguard.dispatch.tracker import JobTracker
from trailguard.exceptions import DispatchError
from trailguard.observability.logging import get_logger
from trailguard.observability.metrics import (
    BATCH_FLUSHES,
    DISPATCH_FAILURES,
    DISPATCH_LATENCY,
    EVENTS_DISPATCHED,
)
from trailguard.resilience import RetryExecutor

logger = get_logger(__name__)

# Margin on top of the flush interval before an unflushed bucket expires
BUCKET_TTL_MARGIN_SECONDS = 60


def _new_job_id() -> str:
    return f"job_{uuid4().hex}"


class AuditDispatcher:
    """Routes, batches and enqueues signed records.

    Broker failures never reach the caller: they are logged and counted,
    and the affected job id comes back as "".
    """

    def __init__(
        self,
        config: DispatchConfig,
        broker: QueueBroker,
        accumulator: BatchAccumulator,
        metrics: DispatchMetrics,
        retry_executor: RetryExecutor | None = None,
        tracker: JobTracker | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._broker = broker
        self._accumulator = accumulator
        self._metrics = metrics
        self._retry = retry_executor or RetryExecutor()
        self._tracker = (
            tracker if tracker is not None else JobTracker(config.job_tracking_ttl_seconds, clock=clock)
        )
        self._clock = clock

    @property
    def tracker(self) -> JobTracker:
        return self._tracker

    async def log_async(
        self,
        record: SignedRecord,
        queue: str | None = None,
        delay_seconds: float = 0,
    ) -> str:
        """Enqueue one record.

        Args:
            record: Signed record to deliver
            queue: Explicit queue; routed by type and risk level when None
            delay_seconds: Hold the job back this long before it is visible

        Returns:
            Job id, or "" if the broker refused the job
        """
        target = queue or route_queue(record.type, record.risk_level, self._config)
        return await self._dispatch(
            target,
            JobKind.SINGLE,
            [record.model_dump(mode="json")],
            delay_seconds=delay_seconds,
        )

    async def log_batch_async(
        self,
        records: Sequence[SignedRecord],
        queue: str | None = None,
    ) -> list[str]:
        """Enqueue records in chunks of chunk_size, one job per chunk.

        Returns:
            One job id per chunk ("" for chunks the broker refused)
        """
        items = [record.model_dump(mode="json") for record in records]
        return await self._dispatch_chunks(items, queue or self._config.queues.batch)

    async def add_to_batch(self, record: SignedRecord) -> list[str]:
        """Add a record to the current per-minute bucket.

        The append that fills the bucket flushes it immediately. Chunks the
        broker refuses go back into the bucket for the next flush.

        Returns:
            Job ids of an immediate flush ("" for refused chunks), empty when
            the record was only buffered
        """
        key = bucket_key(self._clock())
        drained = await self._accumulator.append(
            key,
            record.model_dump(mode="json"),
            threshold=self._config.batch_size,
            ttl_seconds=self._bucket_ttl_seconds,
        )
        if not drained:
            return []

        job_ids, _ = await self._flush_bucket(key, drained, trigger="threshold")
        return job_ids

    async def flush_batch(self) -> int:
        """Drain every bucket, stale ones included.

        Returns:
            Number of records handed to the broker; refused records stay
            buffered and are not counted
        """
        flushed = 0
        for key in await self._accumulator.bucket_keys():
            items = await self._accumulator.drain(key)
            if not items:
                continue
            _, handed = await self._flush_bucket(key, items, trigger="scheduled")
            flushed += handed
        return flushed

    async def pending_count(self) -> int:
        """Number of records buffered in buckets and not yet handed off."""
        return sum(
            [await self._accumulator.size(key) for key in await self._accumulator.bucket_keys()]
        )

    async def get_queue_stats(self) -> QueueStats:
        """Collect queue depths, failure count and performance aggregates."""
        depths = {name: await self._broker.size(name) for name in self._config.queues.all()}
        return QueueStats(
            queues=depths,
            failed_jobs=await self._broker.failed_count(),
            tracked_jobs=len(self._tracker),
            performance=await self._metrics.snapshot(),
            collected_at=self._clock(),
        )

    async def monitor_queue_health(self) -> QueueHealth:
        """Assess queue health against the configured thresholds."""
        stats = await self.get_queue_stats()
        thresholds = self._config.health
        status = HealthStatus.HEALTHY
        issues: list[str] = []
        recommendations: list[str] = []

        def escalate(level: HealthStatus) -> None:
            nonlocal status
            if level == HealthStatus.CRITICAL or status == HealthStatus.HEALTHY:
                status = level

        for name, depth in stats.queues.items():
            if depth > thresholds.queue_depth_warning:
                escalate(HealthStatus.WARNING)
                issues.append(f"Queue {name} has {depth} pending jobs")
                recommendations.append(f"Add workers for queue {name}")

        if stats.success_rate < thresholds.success_rate_critical:
            escalate(HealthStatus.CRITICAL)
            issues.append(f"Success rate is {stats.success_rate:.1f}%")
            recommendations.append("Inspect failed jobs and the record store")

        avg_processing = stats.performance.avg_processing_time_ms
        if avg_processing > thresholds.processing_time_critical_ms:
            escalate(HealthStatus.CRITICAL)
            issues.append(f"Average processing time is {avg_processing:.0f}ms")
            recommendations.append("Check record store latency")
        elif avg_processing > thresholds.processing_time_warning_ms:
            escalate(HealthStatus.WARNING)
            issues.append(f"Average processing time is {avg_processing:.0f}ms")
            recommendations.append("Check record store latency")

        if status != HealthStatus.HEALTHY:
            logger.warning("queue_health_degraded", status=status.value, issues=issues)

        return QueueHealth(
            status=status,
            issues=issues,
            recommendations=recommendations,
            stats=stats,
        )

    async def cleanup_job_tracking(self) -> int:
        """Drop tracked jobs older than the tracking TTL."""
        removed = self._tracker.cleanup()
        if removed:
            logger.info("job_tracking_cleaned", removed=removed)
        return removed

    async def reset_performance_data(self) -> None:
        """Discard aggregated timings and counters."""
        await self._metrics.reset()
        logger.info("performance_data_reset")

    @property
    def _bucket_ttl_seconds(self) -> int:
        return self._config.batch_wait_seconds + BUCKET_TTL_MARGIN_SECONDS

    async def _flush_bucket(
        self,
        key: str,
        items: list[dict[str, Any]],
        trigger: str,
    ) -> tuple[list[str], int]:
        """Dispatch a drained bucket; restore the chunks the broker refused.

        Returns:
            Job ids per chunk and the number of records handed off
        """
        size = self._config.chunk_size
        chunks = [items[start : start + size] for start in range(0, len(items), size)]
        job_ids = [
            await self._dispatch(self._config.queues.batch, JobKind.BATCH, chunk) for chunk in chunks
        ]

        refused = [item for chunk, job_id in zip(chunks, job_ids) if not job_id for item in chunk]
        handed = len(items) - len(refused)
        if refused:
            await self._accumulator.restore(key, refused, ttl_seconds=self._bucket_ttl_seconds)
            logger.warning(
                "batch_flush_incomplete",
                bucket=key,
                handed=handed,
                restored=len(refused),
                trigger=trigger,
            )
        if handed:
            BATCH_FLUSHES.labels(trigger=trigger).inc()
            logger.info("batch_flushed", bucket=key, count=handed, trigger=trigger)
        return job_ids, handed

    async def _dispatch_chunks(self, items: list[dict[str, Any]], queue: str) -> list[str]:
        size = self._config.chunk_size
        return [
            await self._dispatch(queue, JobKind.BATCH, items[start : start + size])
            for start in range(0, len(items), size)
        ]

    async def _dispatch(
        self,
        queue: str,
        kind: JobKind,
        records: list[dict[str, Any]],
        delay_seconds: float = 0,
    ) -> str:
        job_id = _new_job_id()
        payload = {
            "job_id": job_id,
            "kind": kind.value,
            "records": records,
            "dispatched_at": self._clock().isoformat(),
        }

        started = time.perf_counter()
        try:
            message_id = await self._enqueue(queue, payload, delay_seconds)
        except DispatchError as e:
            DISPATCH_FAILURES.labels(queue=queue).inc()
            logger.error(
                "dispatch_failed",
                queue=queue,
                kind=kind.value,
                event_count=len(records),
                error=e.message,
            )
            return ""

        elapsed = time.perf_counter() - started
        DISPATCH_LATENCY.labels(queue=queue).observe(elapsed)
        EVENTS_DISPATCHED.labels(queue=queue, kind=kind.value).inc(len(records))
        await self._metrics.record_dispatch(queue, elapsed * 1000)

        self._tracker.track(
            DispatchJob(
                job_id=job_id,
                queue=queue,
                kind=kind,
                event_count=len(records),
                broker_message_id=message_id,
                dispatched_at=self._clock(),
            )
        )
        logger.debug(
            "job_dispatched",
            job_id=job_id,
            queue=queue,
            kind=kind.value,
            event_count=len(records),
            delay_seconds=delay_seconds,
        )
        return job_id

    async def _enqueue(self, queue: str, payload: dict[str, Any], delay_seconds: float) -> str:
        try:
            return await self._retry.execute_with_retry(
                lambda: self._broker.enqueue(queue, payload, delay_seconds),
                operation_name="broker_enqueue",
            )
        except DispatchError:
            raise
        except Exception as e:
            raise DispatchError(f"Failed to enqueue job: {e}", queue=queue) from e
