"""Unit tests for IntegrityAuditor."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from trailguard.audit.models import AuditStatus, CorruptionReason
from trailguard.config.models.integrity import AuditorConfig
from trailguard.integrity import IntegrityAuditor

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
SCAN_TIME = datetime(2024, 5, 2, 0, 0, tzinfo=UTC)


@pytest.fixture
def auditor(signer, record_store, retry_executor) -> IntegrityAuditor:
    return IntegrityAuditor(
        signer,
        record_store,
        retry_executor=retry_executor,
        clock=lambda: SCAN_TIME,
    )


@pytest.fixture
def populate(signer, record_store, make_event):
    """Store `total` signed records, tampering with the indexes given."""

    async def _populate(total: int, tampered=(), unsigned=()):
        records = []
        for index in range(total):
            record = signer.stamp(
                make_event(
                    description=f"event {index}",
                    created_at=BASE_TIME + timedelta(minutes=index),
                )
            )
            if index in tampered:
                record = record.model_copy(update={"description": "rewritten"})
            if index in unsigned:
                record = record.model_copy(update={"signature": None})
            await record_store.save(record)
            records.append(record)
        return records

    return _populate


class TestPerformIntegrityCheck:
    """Tests for bulk scans."""

    async def test_clean_store(self, auditor, populate) -> None:
        await populate(5)

        report = await auditor.perform_integrity_check()

        assert report.status == AuditStatus.CLEAN
        assert report.is_clean
        assert report.total_checked == 5
        assert report.valid == 5
        assert report.corrupted_records == []

    async def test_empty_store(self, auditor) -> None:
        report = await auditor.perform_integrity_check()

        assert report.status == AuditStatus.CLEAN
        assert report.total_checked == 0

    @pytest.mark.parametrize("batch_size", [1, 3, 7, 10, 25])
    async def test_tampered_count_independent_of_batch_size(
        self, auditor, populate, batch_size
    ) -> None:
        records = await populate(10, tampered={0, 4, 9})

        report = await auditor.perform_integrity_check(batch_size=batch_size)

        assert report.total_checked == 10
        assert report.invalid == 3
        assert report.valid == 7
        assert report.status == AuditStatus.CORRUPTION_DETECTED
        assert {c.id for c in report.corrupted_records} == {
            records[i].record_id for i in (0, 4, 9)
        }
        assert all(c.reason == CorruptionReason.SIGNATURE_MISMATCH for c in report.corrupted_records)

    async def test_counts_add_up(self, auditor, populate) -> None:
        await populate(12, tampered={1, 2}, unsigned={5})

        report = await auditor.perform_integrity_check(batch_size=4)

        assert report.valid + report.invalid + report.missing_signature == report.total_checked
        assert report.missing_signature == 1
        assert report.invalid == 2

    async def test_missing_signature_flags_corruption(self, auditor, populate) -> None:
        await populate(3, unsigned={1})

        report = await auditor.perform_integrity_check()

        assert report.status == AuditStatus.CORRUPTION_DETECTED
        assert report.invalid == 0
        assert report.corrupted_records[0].reason == CorruptionReason.MISSING_SIGNATURE

    async def test_unverifiable_record_counted_invalid(
        self, auditor, signer, record_store, make_event, populate
    ) -> None:
        await populate(2)
        broken = signer.stamp(make_event(created_at=BASE_TIME + timedelta(hours=1)))
        broken = broken.model_copy(update={"properties": {"blob": object()}})
        await record_store.save(broken)

        report = await auditor.perform_integrity_check()

        assert report.total_checked == 3
        assert report.invalid == 1
        assert report.verification_errors == 1
        assert report.corrupted_records[0].reason == CorruptionReason.VERIFICATION_ERROR
        assert report.corrupted_records[0].error

    async def test_date_range_filters_records(self, auditor, populate) -> None:
        await populate(10)

        report = await auditor.perform_integrity_check(
            date_range=(BASE_TIME + timedelta(minutes=2), BASE_TIME + timedelta(minutes=5))
        )

        assert report.total_checked == 4

    async def test_naive_date_range_taken_as_utc(self, auditor, populate) -> None:
        await populate(10)
        naive_start = datetime(2024, 5, 1, 12, 2)
        naive_end = datetime(2024, 5, 1, 12, 5)

        report = await auditor.perform_integrity_check(date_range=(naive_start, naive_end))

        assert report.status == AuditStatus.CLEAN
        assert report.total_checked == 4
        assert report.window_start == naive_start.replace(tzinfo=UTC)
        assert report.window_end == naive_end.replace(tzinfo=UTC)

    async def test_naive_end_after_scan_start_is_capped(self, auditor, populate) -> None:
        await populate(3)

        report = await auditor.perform_integrity_check(date_range=(None, datetime(2030, 1, 1)))

        assert report.window_end == SCAN_TIME
        assert report.total_checked == 3

    async def test_window_end_capped_at_scan_start(
        self, auditor, signer, record_store, make_event, populate
    ) -> None:
        await populate(3)
        future = signer.stamp(make_event(created_at=SCAN_TIME + timedelta(minutes=1)))
        await record_store.save(future)

        report = await auditor.perform_integrity_check(
            date_range=(None, SCAN_TIME + timedelta(days=1))
        )

        assert report.window_end == SCAN_TIME
        assert report.total_checked == 3

    async def test_store_failure_aborts(self, signer, retry_executor) -> None:
        store = AsyncMock()
        store.list_page = AsyncMock(side_effect=RuntimeError("disk on fire"))
        auditor = IntegrityAuditor(signer, store, retry_executor=retry_executor)

        report = await auditor.perform_integrity_check()

        assert report.status == AuditStatus.ABORTED
        assert report.error == "RuntimeError: disk on fire"
        assert not report.is_clean

    async def test_transient_store_failure_recovers(
        self, signer, record_store, retry_executor, populate
    ) -> None:
        await populate(4)
        real_list_page = record_store.list_page
        record_store.list_page = AsyncMock(
            side_effect=[ConnectionError("reset"), await real_list_page(limit=1000)]
        )
        auditor = IntegrityAuditor(
            signer, record_store, retry_executor=retry_executor, clock=lambda: SCAN_TIME
        )

        report = await auditor.perform_integrity_check()

        assert report.status == AuditStatus.CLEAN
        assert report.total_checked == 4

    async def test_corrupted_summaries_truncated(
        self, signer, record_store, retry_executor, populate
    ) -> None:
        await populate(6, tampered={0, 1, 2, 3, 4})
        auditor = IntegrityAuditor(
            signer,
            record_store,
            config=AuditorConfig(max_reported_corruptions=2),
            retry_executor=retry_executor,
            clock=lambda: SCAN_TIME,
        )

        report = await auditor.perform_integrity_check()

        assert report.invalid == 5
        assert len(report.corrupted_records) == 2
        assert report.corrupted_truncated is True

    async def test_invalid_batch_size(self, auditor) -> None:
        with pytest.raises(ValueError):
            await auditor.perform_integrity_check(batch_size=0)

    async def test_report_timing_fields(self, auditor, populate) -> None:
        await populate(1)

        report = await auditor.perform_integrity_check()

        assert report.started_at == SCAN_TIME
        assert report.completed_at == SCAN_TIME
        assert report.audit_id.startswith("audit_")
        assert report.batch_size == 1000
