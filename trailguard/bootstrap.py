"""Bootstrap module for wiring the trailguard pipeline from configuration.

Builds every component from Settings, choosing in-memory or Redis
backends per storage section. The record store is an external
collaborator: pass one in, or an in-memory store is used.

Example usage:

    from trailguard.bootstrap import bootstrap

    container = bootstrap()

    job_id = await container.trail.record_async(
        Event(type="login_failed", description="Bad password", actor_id="42")
    )
"""

from dataclasses import dataclass
from typing import Any

import redis.asyncio as redis
from prometheus_client import start_http_server

from trailguard.audit.store import AuditRecordStore
from trailguard.audit.stores import InMemoryAuditRecordStore
from trailguard.config import get_settings
from trailguard.config.settings import Settings
from trailguard.dispatch import (
    AuditDispatcher,
    AuditWorker,
    BatchAccumulator,
    DispatchMetrics,
    InMemoryBatchAccumulator,
    InMemoryDispatchMetrics,
    InMemoryQueueBroker,
    JobTracker,
    QueueBroker,
    RedisBatchAccumulator,
    RedisDispatchMetrics,
    RedisQueueBroker,
)
from trailguard.integrity import IntegrityAuditor, SignatureRemediator, Signer
from trailguard.observability.logging import get_logger, setup_logging
from trailguard.redaction import Redactor
from trailguard.resilience import RetryExecutor
from trailguard.trail import AuditTrail

logger = get_logger(__name__)


@dataclass
class TrailguardContainer:
    """Every wired component, for callers that need more than the facade."""

    settings: Settings
    redactor: Redactor
    signer: Signer
    retry_executor: RetryExecutor
    store: AuditRecordStore
    broker: QueueBroker
    accumulator: BatchAccumulator
    metrics: DispatchMetrics
    tracker: JobTracker
    dispatcher: AuditDispatcher
    worker: AuditWorker
    auditor: IntegrityAuditor
    remediator: SignatureRemediator
    trail: AuditTrail
    redis_client: Any | None = None


def _needs_redis(settings: Settings) -> bool:
    storage = settings.storage
    return "redis" in (storage.broker, storage.batch, storage.metrics)


def bootstrap(
    settings: Settings | None = None,
    store: AuditRecordStore | None = None,
    redis_client: redis.Redis | None = None,
    configure_logging: bool = True,
    start_metrics_server: bool = False,
) -> TrailguardContainer:
    """Build the full pipeline.

    Args:
        settings: Settings to use (default: get_settings())
        store: Persisted record store (default: in-memory)
        redis_client: Shared Redis client; created from storage.redis.url
            when a Redis backend is configured and none is given
        configure_logging: Whether to call setup_logging()
        start_metrics_server: Whether to expose prometheus metrics on
            observability.metrics.port (ignored when metrics are disabled)

    Returns:
        TrailguardContainer with every component

    Raises:
        ConfigurationError: If the signing secret is not configured
    """
    settings = settings or get_settings()
    redactor = Redactor(settings.redaction)

    if configure_logging:
        logging_config = settings.observability.logging
        setup_logging(
            level=logging_config.level,
            format=logging_config.format,
            redact_pii=logging_config.redact_pii,
            redactor=redactor,
        )

    metrics_config = settings.observability.metrics
    if start_metrics_server and metrics_config.enabled:
        start_http_server(metrics_config.port)
        logger.info("metrics_server_started", port=metrics_config.port)

    signer = Signer(settings.integrity)
    retry_executor = RetryExecutor(settings.retry)
    store = store if store is not None else InMemoryAuditRecordStore()

    storage = settings.storage
    if redis_client is None and _needs_redis(settings):
        redis_client = redis.from_url(storage.redis.url, decode_responses=True)
    prefix = storage.redis.key_prefix

    broker: QueueBroker
    if storage.broker == "redis":
        broker = RedisQueueBroker(redis_client, key_prefix=prefix)
    else:
        broker = InMemoryQueueBroker()

    accumulator: BatchAccumulator
    if storage.batch == "redis":
        accumulator = RedisBatchAccumulator(redis_client, key_prefix=prefix)
    else:
        accumulator = InMemoryBatchAccumulator()

    metrics: DispatchMetrics
    if storage.metrics == "redis":
        metrics = RedisDispatchMetrics(redis_client, key_prefix=prefix)
    else:
        metrics = InMemoryDispatchMetrics()

    tracker = JobTracker(settings.dispatch.job_tracking_ttl_seconds)
    dispatcher = AuditDispatcher(
        settings.dispatch,
        broker,
        accumulator,
        metrics,
        retry_executor=retry_executor,
        tracker=tracker,
    )
    worker = AuditWorker(
        settings.worker,
        broker,
        store,
        metrics,
        retry_executor=retry_executor,
        tracker=tracker,
    )
    auditor = IntegrityAuditor(signer, store, settings.auditor, retry_executor=retry_executor)
    remediator = SignatureRemediator(signer, store)
    trail = AuditTrail(signer, redactor, dispatcher)

    logger.info(
        "trailguard_bootstrapped",
        broker=storage.broker,
        batch=storage.batch,
        metrics=storage.metrics,
    )
    return TrailguardContainer(
        settings=settings,
        redactor=redactor,
        signer=signer,
        retry_executor=retry_executor,
        store=store,
        broker=broker,
        accumulator=accumulator,
        metrics=metrics,
        tracker=tracker,
        dispatcher=dispatcher,
        worker=worker,
        auditor=auditor,
        remediator=remediator,
        trail=trail,
        redis_client=redis_client,
    )
