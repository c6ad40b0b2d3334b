"""Dispatch metrics aggregation.

Running timings and counters behind queue health. Unlike the batch
accumulator these are eventually consistent: concurrent updates may
interleave, and a slightly stale mean is acceptable.
"""

from abc import ABC, abstractmethod

import redis.asyncio as redis

from trailguard.dispatch.models import PerformanceSnapshot


class DispatchMetrics(ABC):
    """Abstract interface for the dispatch metrics aggregator."""

    @abstractmethod
    async def record_dispatch(self, queue: str, duration_ms: float) -> None:
        """Record the time taken to enqueue one job."""
        pass

    @abstractmethod
    async def record_processing(self, queue: str, duration_ms: float, success: bool) -> None:
        """Record a processed job and its outcome."""
        pass

    @abstractmethod
    async def snapshot(self) -> PerformanceSnapshot:
        """Return current aggregates."""
        pass

    @abstractmethod
    async def reset(self) -> None:
        """Discard all aggregated performance data."""
        pass


class InMemoryDispatchMetrics(DispatchMetrics):
    """Process-local aggregates using incremental means."""

    def __init__(self) -> None:
        self._snapshot = PerformanceSnapshot()
        self._processing_samples = 0

    async def record_dispatch(self, queue: str, duration_ms: float) -> None:  # noqa: ARG002
        current = self._snapshot
        count = current.total_dispatched + 1
        mean = current.avg_dispatch_time_ms + (duration_ms - current.avg_dispatch_time_ms) / count
        self._snapshot = current.model_copy(
            update={"total_dispatched": count, "avg_dispatch_time_ms": mean}
        )

    async def record_processing(
        self,
        queue: str,  # noqa: ARG002
        duration_ms: float,
        success: bool,
    ) -> None:
        current = self._snapshot
        self._processing_samples += 1
        mean = (
            current.avg_processing_time_ms
            + (duration_ms - current.avg_processing_time_ms) / self._processing_samples
        )
        update: dict[str, float | int] = {"avg_processing_time_ms": mean}
        if success:
            update["total_processed"] = current.total_processed + 1
        else:
            update["total_failed"] = current.total_failed + 1
        self._snapshot = current.model_copy(update=update)

    async def snapshot(self) -> PerformanceSnapshot:
        return self._snapshot

    async def reset(self) -> None:
        self._snapshot = PerformanceSnapshot()
        self._processing_samples = 0


class RedisDispatchMetrics(DispatchMetrics):
    """Aggregates shared across processes in one Redis hash.

    Sums and counts are stored with HINCRBY/HINCRBYFLOAT; means are derived
    on read.

    Key structure:
    - {prefix}:metrics - Hash of counters and time sums
    """

    def __init__(self, client: redis.Redis, key_prefix: str = "trailguard") -> None:
        self._client = client
        self._prefix = key_prefix

    def _key(self) -> str:
        return f"{self._prefix}:metrics"

    async def record_dispatch(self, queue: str, duration_ms: float) -> None:  # noqa: ARG002
        pipe = self._client.pipeline(transaction=False)
        pipe.hincrby(self._key(), "dispatch_count", 1)
        pipe.hincrbyfloat(self._key(), "dispatch_time_sum", duration_ms)
        await pipe.execute()

    async def record_processing(
        self,
        queue: str,  # noqa: ARG002
        duration_ms: float,
        success: bool,
    ) -> None:
        pipe = self._client.pipeline(transaction=False)
        pipe.hincrby(self._key(), "processing_count", 1)
        pipe.hincrbyfloat(self._key(), "processing_time_sum", duration_ms)
        pipe.hincrby(self._key(), "processed_success" if success else "processed_failed", 1)
        await pipe.execute()

    async def snapshot(self) -> PerformanceSnapshot:
        raw = await self._client.hgetall(self._key())
        values = {
            (key.decode() if isinstance(key, bytes) else key): float(value)
            for key, value in raw.items()
        }
        dispatch_count = int(values.get("dispatch_count", 0))
        processing_count = int(values.get("processing_count", 0))
        return PerformanceSnapshot(
            avg_dispatch_time_ms=(
                values.get("dispatch_time_sum", 0.0) / dispatch_count if dispatch_count else 0.0
            ),
            avg_processing_time_ms=(
                values.get("processing_time_sum", 0.0) / processing_count
                if processing_count
                else 0.0
            ),
            total_dispatched=dispatch_count,
            total_processed=int(values.get("processed_success", 0)),
            total_failed=int(values.get("processed_failed", 0)),
        )

    async def reset(self) -> None:
        await self._client.delete(self._key())
