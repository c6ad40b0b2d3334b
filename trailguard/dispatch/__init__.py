"""Asynchronous dispatch, batching and processing of signed records."""

from trailguard.dispatch.accumulator import (
    BatchAccumulator,
    InMemoryBatchAccumulator,
    RedisBatchAccumulator,
    bucket_key,
)
from trailguard.dispatch.broker import (
    BrokerMessage,
    InMemoryQueueBroker,
    QueueBroker,
    RedisQueueBroker,
)
from trailguard.dispatch.dispatcher import AuditDispatcher
from trailguard.dispatch.metrics import (
    DispatchMetrics,
    InMemoryDispatchMetrics,
    RedisDispatchMetrics,
)
from trailguard.dispatch.models import (
    DispatchJob,
    HealthStatus,
    JobKind,
    JobStatus,
    PerformanceSnapshot,
    QueueHealth,
    QueueStats,
)
from trailguard.dispatch.routing import Priority, classify_priority, route_queue
from trailguard.dispatch.tracker import JobTracker
from trailguard.dispatch.worker import AuditWorker

__all__ = [
    "AuditDispatcher",
    "AuditWorker",
    "BatchAccumulator",
    "BrokerMessage",
    "DispatchJob",
    "DispatchMetrics",
    "HealthStatus",
    "InMemoryBatchAccumulator",
    "InMemoryDispatchMetrics",
    "InMemoryQueueBroker",
    "JobKind",
    "JobStatus",
    "JobTracker",
    "PerformanceSnapshot",
    "Priority",
    "QueueBroker",
    "QueueHealth",
    "QueueStats",
    "RedisBatchAccumulator",
    "RedisDispatchMetrics",
    "RedisQueueBroker",
    "bucket_key",
    "classify_priority",
    "route_queue",
]
