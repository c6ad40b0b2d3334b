"""AuditWorker: consumer side of the dispatch queues.

Takes jobs off the broker, validates and persists their records, and
reports timings back to the shared metrics aggregator. Delivery is
at-least-once, so records already in the store are skipped.
"""

import asyncio
import json
import time
from collections.abc import Callable, Sequence
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from trailguard.audit.models import SignedRecord, utc_now
from trailguard.audit.store import AuditRecordStore
from trailguard.config.models.dispatch import WorkerConfig
from trailguard.dispatch.broker import BrokerMessage, QueueBroker
from trailguard.dispatch.metrics import DispatchMetrics
from trailguard.dispatch.models import JobStatus
from trailguard.dispatch.tracker import JobTracker
from trailguard.exceptions import EventValidationError
from trailguard.observability.logging import get_logger
from trailguard.observability.metrics import JOB_PROCESSING_LATENCY, JOBS_PROCESSED
from trailguard.resilience import RetryExecutor

logger = get_logger(__name__)


class AuditWorker:
    """Processes queued audit jobs."""

    def __init__(
        self,
        config: WorkerConfig,
        broker: QueueBroker,
        store: AuditRecordStore,
        metrics: DispatchMetrics,
        retry_executor: RetryExecutor | None = None,
        tracker: JobTracker | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._broker = broker
        self._store = store
        self._metrics = metrics
        self._retry = retry_executor or RetryExecutor()
        self._tracker = tracker
        self._clock = clock

    async def run(self, queues: Sequence[str], stop: asyncio.Event) -> None:
        """Poll queues in the given order until stop is set.

        Jobs left in flight by a crashed worker are put back on their queue
        at startup and whenever this worker finds nothing to do.
        """
        logger.info("worker_started", queues=list(queues))
        await self.reclaim_stale(queues)
        while not stop.is_set():
            handled = False
            for queue in queues:
                if await self.process_next(queue):
                    handled = True
                    break
            if not handled:
                await self.reclaim_stale(queues)
                try:
                    await asyncio.wait_for(stop.wait(), timeout=self._config.poll_interval_seconds)
                except TimeoutError:
                    pass
        logger.info("worker_stopped")

    async def reclaim_stale(self, queues: Sequence[str]) -> int:
        """Redeliver jobs dequeued longer than the visibility timeout ago."""
        total = 0
        for queue in queues:
            reclaimed = await self._broker.reclaim(queue, self._config.visibility_timeout_seconds)
            if reclaimed:
                logger.warning("stale_jobs_reclaimed", queue=queue, count=reclaimed)
            total += reclaimed
        return total

    async def process_next(self, queue: str) -> bool:
        """Process one message from a queue.

        Returns:
            True if a message was taken off the queue
        """
        message = await self._broker.dequeue(queue)
        if message is None:
            return False
        await self.handle(message)
        return True

    async def handle(self, message: BrokerMessage) -> bool:
        """Validate and persist every record of one job.

        Returns:
            True on success; False when the job was moved to failed storage
        """
        job_id = message.payload.get("job_id", message.message_id)
        self._set_status(job_id, JobStatus.PROCESSING)
        started = time.perf_counter()

        try:
            records = self.parse_records(message.payload)
            stored = 0
            for record in records:
                if await self._retry.execute_with_retry(
                    partial(self._persist, record),
                    operation_name="store_save",
                ):
                    stored += 1
        except Exception as e:
            elapsed = time.perf_counter() - started
            await self._handle_failure(message, job_id, e, elapsed)
            return False

        elapsed = time.perf_counter() - started
        await self._broker.ack(message)
        await self._metrics.record_processing(message.queue, elapsed * 1000, success=True)
        JOBS_PROCESSED.labels(queue=message.queue, outcome="success").inc()
        JOB_PROCESSING_LATENCY.labels(queue=message.queue).observe(elapsed)
        self._set_status(job_id, JobStatus.DONE)
        logger.info(
            "job_processed",
            job_id=job_id,
            queue=message.queue,
            records=len(records),
            stored=stored,
            duplicates=len(records) - stored,
            elapsed_ms=round(elapsed * 1000, 2),
        )
        return True

    def parse_records(self, payload: dict[str, Any]) -> list[SignedRecord]:
        """Decode and validate the records carried by a job payload.

        Raises:
            EventValidationError: If any record is malformed
        """
        raw_records = payload.get("records")
        if not isinstance(raw_records, list):
            raise EventValidationError("Job payload has no records list", field="records")

        records = []
        for raw in raw_records:
            try:
                record = SignedRecord.model_validate(raw)
            except ValidationError as e:
                raise EventValidationError(f"Malformed record: {e}") from e
            self.validate(record)
            records.append(record)
        return records

    def validate(self, record: SignedRecord) -> None:
        """Check required fields and length limits.

        Raises:
            EventValidationError: On the first violated rule
        """
        if not record.type.strip():
            raise EventValidationError("Event type is required", field="type")
        if len(record.type) > self._config.max_type_length:
            raise EventValidationError(
                f"Event type exceeds {self._config.max_type_length} characters", field="type"
            )
        if not record.description.strip():
            raise EventValidationError("Event description is required", field="description")
        if len(record.description) > self._config.max_description_length:
            raise EventValidationError(
                f"Event description exceeds {self._config.max_description_length} characters",
                field="description",
            )

    async def _persist(self, record: SignedRecord) -> bool:
        if await self._store.exists(record.id):
            logger.debug("duplicate_record_skipped", record_id=record.record_id)
            return False
        await self._store.save(record)
        return True

    async def _handle_failure(
        self,
        message: BrokerMessage,
        job_id: str,
        error: Exception,
        elapsed: float,
    ) -> None:
        await self._broker.fail(message, str(error))
        await self._metrics.record_processing(message.queue, elapsed * 1000, success=False)
        JOBS_PROCESSED.labels(queue=message.queue, outcome="failure").inc()
        self._set_status(job_id, JobStatus.FAILED)

        backup_path = await self._write_backup(message, job_id, error)
        risk = self._max_risk_level(message.payload)
        log = logger.critical if risk >= self._config.notify_risk_threshold else logger.error
        log(
            "job_failed",
            job_id=job_id,
            queue=message.queue,
            error_type=type(error).__name__,
            error=str(error),
            risk_level=risk,
            backup_path=str(backup_path) if backup_path else None,
        )

    async def _write_backup(
        self,
        message: BrokerMessage,
        job_id: str,
        error: Exception,
    ) -> Path | None:
        """Write the failed payload to the backup directory, if configured."""
        backup_dir = self._config.backup_dir
        if backup_dir is None:
            return None

        failed_at = self._clock()
        path = backup_dir / f"failed_{job_id}_{failed_at.strftime('%Y%m%d%H%M%S%f')}.json"
        document = json.dumps(
            {
                "job_id": job_id,
                "message_id": message.message_id,
                "queue": message.queue,
                "error": str(error),
                "error_type": type(error).__name__,
                "failed_at": failed_at.isoformat(),
                "payload": message.payload,
            },
            indent=2,
            default=str,
        )
        try:
            await asyncio.to_thread(backup_dir.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(path.write_text, document, encoding="utf-8")
        except OSError as e:
            logger.error("job_backup_failed", job_id=job_id, path=str(path), error=str(e))
            return None
        return path

    @staticmethod
    def _max_risk_level(payload: dict[str, Any]) -> int:
        levels = [
            raw.get("risk_level", 1)
            for raw in payload.get("records") or []
            if isinstance(raw, dict)
        ]
        numeric = [level for level in levels if isinstance(level, int)]
        return max(numeric, default=1)

    def _set_status(self, job_id: str, status: JobStatus) -> None:
        if self._tracker is not None:
            self._tracker.update_status(job_id, status)
