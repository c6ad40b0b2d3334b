"""Unit tests for AuditWorker."""

import asyncio
import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from structlog.testing import capture_logs

from trailguard.audit.models import SignedRecord
from trailguard.config.models.dispatch import DispatchConfig, WorkerConfig
from trailguard.dispatch import (
    AuditDispatcher,
    AuditWorker,
    InMemoryBatchAccumulator,
    InMemoryDispatchMetrics,
    InMemoryQueueBroker,
    JobStatus,
    JobTracker,
)
from trailguard.exceptions import EventValidationError

FIXED_NOW = datetime(2024, 5, 1, 12, 30, tzinfo=UTC)


@pytest.fixture
def broker() -> InMemoryQueueBroker:
    return InMemoryQueueBroker()


@pytest.fixture
def metrics() -> InMemoryDispatchMetrics:
    return InMemoryDispatchMetrics()


@pytest.fixture
def tracker() -> JobTracker:
    return JobTracker(clock=lambda: FIXED_NOW)


@pytest.fixture
def worker_config(tmp_path) -> WorkerConfig:
    return WorkerConfig(backup_dir=tmp_path / "failed", poll_interval_seconds=0.01)


@pytest.fixture
def dispatcher(broker, metrics, tracker, retry_executor) -> AuditDispatcher:
    return AuditDispatcher(
        DispatchConfig(),
        broker,
        InMemoryBatchAccumulator(),
        metrics,
        retry_executor=retry_executor,
        tracker=tracker,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def worker(worker_config, broker, record_store, metrics, retry_executor, tracker) -> AuditWorker:
    return AuditWorker(
        worker_config,
        broker,
        record_store,
        metrics,
        retry_executor=retry_executor,
        tracker=tracker,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def make_record(signer, make_event):
    def _make_record(**overrides) -> SignedRecord:
        return signer.stamp(make_event(**overrides))

    return _make_record


class TestProcessing:
    """Tests for the happy path."""

    async def test_persists_records(self, dispatcher, worker, record_store, make_record) -> None:
        record = make_record()
        await dispatcher.log_async(record)

        assert await worker.process_next("activities") is True

        stored = await record_store.get(record.id)
        assert stored == record

    async def test_empty_queue(self, worker) -> None:
        assert await worker.process_next("activities") is False

    async def test_batch_job(self, dispatcher, worker, record_store, make_record) -> None:
        await dispatcher.log_batch_async([make_record() for _ in range(5)])

        await worker.process_next("activities-batch")

        assert len(record_store) == 5

    async def test_duplicates_skipped(self, dispatcher, worker, record_store, make_record) -> None:
        record = make_record()
        await record_store.save(record)
        record_store.save = AsyncMock(wraps=record_store.save)
        await dispatcher.log_async(record)

        assert await worker.process_next("activities") is True

        record_store.save.assert_not_awaited()

    async def test_tracker_and_metrics_updated(
        self, dispatcher, worker, tracker, metrics, make_record
    ) -> None:
        job_id = await dispatcher.log_async(make_record())

        await worker.process_next("activities")

        assert tracker.get(job_id).status == JobStatus.DONE
        snapshot = await metrics.snapshot()
        assert snapshot.total_processed == 1
        assert snapshot.total_failed == 0

    async def test_transient_store_error_retried(
        self, dispatcher, worker, record_store, sleep_recorder, make_record
    ) -> None:
        record = make_record()
        real_save = record_store.save
        record_store.save = AsyncMock(side_effect=[ConnectionError("reset"), None])
        await dispatcher.log_async(record)

        assert await worker.process_next("activities") is True

        assert record_store.save.await_count == 2
        assert sleep_recorder.delays == [1.0]
        record_store.save = real_save


class TestFailures:
    """Tests for jobs that cannot be processed."""

    async def test_invalid_record_moves_job_to_failed(
        self, dispatcher, worker, broker, tracker, metrics, record_store, make_record
    ) -> None:
        job_id = await dispatcher.log_async(make_record(description=" "))

        assert await worker.process_next("activities") is True

        assert len(record_store) == 0
        assert await broker.failed_count() == 1
        assert "description" in broker.failed_jobs[0]["error"]
        assert tracker.get(job_id).status == JobStatus.FAILED
        assert (await metrics.snapshot()).total_failed == 1

    async def test_backup_file_written(
        self, dispatcher, worker, worker_config, make_record
    ) -> None:
        job_id = await dispatcher.log_async(make_record(type="x" * 101))

        await worker.process_next("activities")

        backups = list(worker_config.backup_dir.glob(f"failed_{job_id}_*.json"))
        assert len(backups) == 1
        document = json.loads(backups[0].read_text(encoding="utf-8"))
        assert document["job_id"] == job_id
        assert document["error_type"] == "EventValidationError"
        assert document["payload"]["records"][0]["type"] == "x" * 101

    async def test_no_backup_without_directory(
        self, broker, record_store, metrics, retry_executor, dispatcher, make_record, tmp_path
    ) -> None:
        worker = AuditWorker(WorkerConfig(), broker, record_store, metrics, retry_executor=retry_executor)
        await dispatcher.log_async(make_record(description=""))

        await worker.process_next("activities")

        assert await broker.failed_count() == 1
        assert list(tmp_path.iterdir()) == []

    async def test_high_risk_failure_logged_critical(self, dispatcher, worker, make_record) -> None:
        await dispatcher.log_async(make_record(risk_level=9, description=""))

        with capture_logs() as logs:
            await worker.process_next("activities-high")

        failures = [entry for entry in logs if entry["event"] == "job_failed"]
        assert failures[0]["log_level"] == "critical"
        assert failures[0]["risk_level"] == 9

    async def test_low_risk_failure_logged_error(self, dispatcher, worker, make_record) -> None:
        await dispatcher.log_async(make_record(risk_level=2, description=""))

        with capture_logs() as logs:
            await worker.process_next("activities")

        failures = [entry for entry in logs if entry["event"] == "job_failed"]
        assert failures[0]["log_level"] == "error"

    async def test_persistent_store_error_fails_job(
        self, dispatcher, worker, broker, record_store, sleep_recorder, make_record
    ) -> None:
        record_store.save = AsyncMock(side_effect=ConnectionError("down"))
        await dispatcher.log_async(make_record())

        await worker.process_next("activities")

        assert record_store.save.await_count == 4
        assert await broker.failed_count() == 1


class TestParsing:
    """Tests for payload parsing and validation."""

    def test_missing_records_list(self, worker) -> None:
        with pytest.raises(EventValidationError):
            worker.parse_records({"job_id": "job_1"})

    def test_malformed_record(self, worker) -> None:
        with pytest.raises(EventValidationError):
            worker.parse_records({"records": [{"type": "login"}]})

    def test_valid_payload(self, worker, make_record) -> None:
        record = make_record()

        parsed = worker.parse_records({"records": [record.model_dump(mode="json")]})

        assert parsed == [record]

    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"type": ""}, "type"),
            ({"type": "t" * 101}, "type"),
            ({"description": "   "}, "description"),
            ({"description": "d" * 501}, "description"),
        ],
    )
    def test_validate_rules(self, worker, make_record, overrides, field) -> None:
        with pytest.raises(EventValidationError) as exc_info:
            worker.validate(make_record(**overrides))

        assert exc_info.value.field == field


class TestRunLoop:
    """Tests for the polling loop."""

    async def test_run_drains_until_stopped(self, dispatcher, worker, record_store, make_record) -> None:
        await dispatcher.log_async(make_record())
        await dispatcher.log_async(make_record(type="login_failed"))
        stop = asyncio.Event()

        task = asyncio.create_task(worker.run(["activities-high", "activities"], stop))
        for _ in range(100):
            if len(record_store) == 2:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        assert len(record_store) == 2

    async def test_reclaim_redelivers_abandoned_job(
        self, record_store, metrics, retry_executor, make_record
    ) -> None:
        clock = {"now": 1000.0}
        broker = InMemoryQueueBroker(clock=lambda: clock["now"])
        worker = AuditWorker(
            WorkerConfig(visibility_timeout_seconds=60, poll_interval_seconds=0.01),
            broker,
            record_store,
            metrics,
            retry_executor=retry_executor,
        )
        payload = {"job_id": "job_1", "records": [make_record().model_dump(mode="json")]}
        await broker.enqueue("activities", payload)
        assert await broker.dequeue("activities") is not None

        assert await worker.reclaim_stale(["activities"]) == 0

        clock["now"] += 61
        with capture_logs() as logs:
            assert await worker.reclaim_stale(["activities"]) == 1

        assert any(entry["event"] == "stale_jobs_reclaimed" for entry in logs)
        assert await worker.process_next("activities") is True
        assert len(record_store) == 1
