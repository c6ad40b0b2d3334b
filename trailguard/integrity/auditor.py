"""Bulk integrity scans over persisted signed records."""

import time
from collections.abc import Callable
from datetime import datetime
from functools import partial
from uuid import uuid4

from trailguard.audit.models import (
    AuditReport,
    AuditStatus,
    CorruptedRecord,
    CorruptionReason,
    SignedRecord,
    utc_now,
)
from trailguard.audit.store import AuditRecordStore, PageCursor, cursor_for
from trailguard.config.models.integrity import AuditorConfig
from trailguard.exceptions import VerificationError
from trailguard.integrity.canonical import as_utc
from trailguard.integrity.signer import Signer
from trailguard.observability.logging import get_logger
from trailguard.observability.metrics import INTEGRITY_SCAN_LATENCY, INTEGRITY_SCANS
from trailguard.resilience import RetryExecutor

logger = get_logger(__name__)

DateRange = tuple[datetime | None, datetime | None]


class IntegrityAuditor:
    """Re-verifies stored records page by page.

    The scan window is closed at the moment the scan starts, and pages are
    fetched by keyset (created_at, id), so records written during a scan are
    neither double counted nor skipped. A record that cannot be verified is
    counted invalid; only a store failure that survives retries stops the
    scan, and then the report is ABORTED rather than clean.
    """

    def __init__(
        self,
        signer: Signer,
        store: AuditRecordStore,
        config: AuditorConfig | None = None,
        retry_executor: RetryExecutor | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._signer = signer
        self._store = store
        self._config = config or AuditorConfig()
        self._retry = retry_executor or RetryExecutor()
        self._clock = clock

    async def perform_integrity_check(
        self,
        date_range: DateRange | None = None,
        batch_size: int | None = None,
    ) -> AuditReport:
        """Scan records created within date_range.

        Args:
            date_range: (start, end); either bound may be None. The end is
                capped at the scan start time. Naive bounds are taken as UTC.
            batch_size: Records per page (default from config)

        Returns:
            AuditReport with counts and corrupted-record summaries
        """
        size = self._config.batch_size if batch_size is None else batch_size
        if size < 1:
            raise ValueError("batch_size must be positive")

        started_at = self._clock()
        timer = time.perf_counter()
        start, end = date_range or (None, None)
        start = as_utc(start) if start is not None else None
        end = as_utc(end) if end is not None else None
        window_end = min(end, started_at) if end is not None else started_at

        report = AuditReport(
            audit_id=f"audit_{uuid4().hex[:12]}",
            status=AuditStatus.CLEAN,
            window_start=start,
            window_end=window_end,
            started_at=started_at,
            batch_size=size,
        )
        logger.info(
            "integrity_check_started",
            audit_id=report.audit_id,
            window_start=start.isoformat() if start else None,
            window_end=window_end.isoformat(),
            batch_size=size,
        )

        cursor: PageCursor | None = None
        try:
            while True:
                page = await self._retry.execute_with_retry(
                    partial(
                        self._store.list_page,
                        start_time=start,
                        end_time=window_end,
                        after=cursor,
                        limit=size,
                    ),
                    operation_name="store_list_page",
                )
                for record in page:
                    self._check_record(record, report)
                if len(page) < size:
                    break
                cursor = cursor_for(page[-1])
        except Exception as e:
            report.status = AuditStatus.ABORTED
            report.error = f"{type(e).__name__}: {e}"
            logger.error(
                "integrity_check_aborted",
                audit_id=report.audit_id,
                checked=report.total_checked,
                error=report.error,
            )
        else:
            if report.invalid or report.missing_signature:
                report.status = AuditStatus.CORRUPTION_DETECTED

        report.completed_at = self._clock()
        report.elapsed_seconds = time.perf_counter() - timer
        INTEGRITY_SCANS.labels(status=report.status.value).inc()
        INTEGRITY_SCAN_LATENCY.observe(report.elapsed_seconds)

        log = logger.info if report.status == AuditStatus.CLEAN else logger.warning
        log(
            "integrity_check_completed",
            audit_id=report.audit_id,
            status=report.status.value,
            total_checked=report.total_checked,
            valid=report.valid,
            invalid=report.invalid,
            missing_signature=report.missing_signature,
            verification_errors=report.verification_errors,
            elapsed_seconds=round(report.elapsed_seconds, 3),
        )
        return report

    def _check_record(self, record: SignedRecord, report: AuditReport) -> None:
        report.total_checked += 1

        if not record.signature:
            report.missing_signature += 1
            self._add_corrupted(report, record, CorruptionReason.MISSING_SIGNATURE)
            return

        try:
            valid = self._signer.verify(record)
        except VerificationError as e:
            report.invalid += 1
            report.verification_errors += 1
            self._add_corrupted(report, record, CorruptionReason.VERIFICATION_ERROR, e.message)
            return

        if valid:
            report.valid += 1
        else:
            report.invalid += 1
            self._add_corrupted(report, record, CorruptionReason.SIGNATURE_MISMATCH)

    def _add_corrupted(
        self,
        report: AuditReport,
        record: SignedRecord,
        reason: CorruptionReason,
        error: str | None = None,
    ) -> None:
        if len(report.corrupted_records) >= self._config.max_reported_corruptions:
            report.corrupted_truncated = True
            return
        report.corrupted_records.append(
            CorruptedRecord(
                id=record.record_id,
                type=record.type,
                created_at=record.created_at,
                actor_id=record.actor_id,
                reason=reason,
                error=error,
            )
        )
