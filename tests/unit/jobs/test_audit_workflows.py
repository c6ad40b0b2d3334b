"""Unit tests for the scheduled audit workflows.

Tests workflow logic, idempotency, and error handling.
"""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from structlog.testing import capture_logs

from trailguard.audit.models import AuditReport, AuditStatus, CorruptedRecord, CorruptionReason
from trailguard.config.models.jobs import HatchetConfig, JobsConfig
from trailguard.jobs import HatchetClient
from trailguard.jobs.workflows import (
    FlushAuditBatchesWorkflow,
    FlushBatchesInput,
    IntegrityScanInput,
    IntegrityScanWorkflow,
    batch_flush,
    integrity_scan,
    register_workflows,
)

NOW = datetime(2024, 5, 2, 3, 0, tzinfo=UTC)


class FakeHatchet:
    """Records workflow registrations and leaves decorated classes untouched."""

    def __init__(self):
        self.workflows = []
        self.steps = []

    def workflow(self, **kwargs):
        def decorator(cls):
            self.workflows.append(kwargs)
            return cls

        return decorator

    def step(self, **kwargs):
        def decorator(fn):
            self.steps.append(kwargs)
            return fn

        return decorator


def _context(payload=None):
    context = MagicMock()
    context.workflow_input.return_value = payload
    return context


def _report(status, corrupted=(), error=None):
    return AuditReport(
        audit_id="audit_abc",
        status=status,
        window_start=None,
        window_end=NOW,
        started_at=NOW,
        batch_size=1000,
        total_checked=10,
        valid=10 - len(corrupted),
        invalid=len(corrupted),
        corrupted_records=[
            CorruptedRecord(
                id=record_id,
                type="login",
                created_at=NOW,
                reason=CorruptionReason.SIGNATURE_MISMATCH,
            )
            for record_id in corrupted
        ],
        error=error,
    )


@pytest.fixture
def mock_dispatcher():
    """Create a mock dispatcher."""
    dispatcher = AsyncMock()
    dispatcher.flush_batch = AsyncMock(return_value=12)
    dispatcher.cleanup_job_tracking = AsyncMock(return_value=3)
    dispatcher.pending_count = AsyncMock(return_value=0)
    return dispatcher


@pytest.fixture
def mock_auditor():
    """Create a mock auditor."""
    auditor = AsyncMock()
    auditor.perform_integrity_check = AsyncMock(return_value=_report(AuditStatus.CLEAN))
    return auditor


class TestFlushAuditBatchesWorkflow:
    """Tests for FlushAuditBatchesWorkflow."""

    def test_workflow_name(self):
        assert FlushAuditBatchesWorkflow.WORKFLOW_NAME == "flush-audit-batches"

    def test_workflow_cron_schedule(self):
        """Test workflow runs every minute."""
        assert FlushAuditBatchesWorkflow.CRON_SCHEDULE == "* * * * *"

    async def test_run_flushes_and_cleans(self, mock_dispatcher):
        workflow = FlushAuditBatchesWorkflow(mock_dispatcher)

        result = await workflow.run(FlushBatchesInput())

        assert result.success is True
        assert result.flushed_count == 12
        assert result.cleaned_jobs == 3
        assert result.pending_count == 0
        assert result.error is None

    async def test_run_without_cleanup(self, mock_dispatcher):
        workflow = FlushAuditBatchesWorkflow(mock_dispatcher)

        result = await workflow.run(FlushBatchesInput(cleanup_jobs=False))

        assert result.cleaned_jobs == 0
        mock_dispatcher.cleanup_job_tracking.assert_not_called()

    async def test_run_handles_dispatcher_exception(self, mock_dispatcher):
        """Test workflow reports failures instead of raising."""
        mock_dispatcher.flush_batch.side_effect = Exception("redis down")
        workflow = FlushAuditBatchesWorkflow(mock_dispatcher)

        result = await workflow.run(FlushBatchesInput())

        assert result.success is False
        assert result.flushed_count == 0
        assert "redis down" in result.error

    async def test_idempotency_multiple_runs(self, mock_dispatcher):
        """Test a second run over drained buckets still succeeds."""
        mock_dispatcher.flush_batch.side_effect = [12, 0]
        workflow = FlushAuditBatchesWorkflow(mock_dispatcher)

        first = await workflow.run(FlushBatchesInput())
        second = await workflow.run(FlushBatchesInput())

        assert first.flushed_count == 12
        assert second.success is True
        assert second.flushed_count == 0

    async def test_refused_records_reported_as_pending(self, mock_dispatcher):
        """Test records the broker refused are reported, not counted as flushed."""
        mock_dispatcher.flush_batch.return_value = 0
        mock_dispatcher.pending_count.return_value = 7
        workflow = FlushAuditBatchesWorkflow(mock_dispatcher)

        with capture_logs() as logs:
            result = await workflow.run(FlushBatchesInput())

        assert result.success is True
        assert result.flushed_count == 0
        assert result.pending_count == 7
        assert any(entry["event"] == "audit_batches_pending" for entry in logs)


class TestIntegrityScanWorkflow:
    """Tests for IntegrityScanWorkflow."""

    def test_workflow_name(self):
        assert IntegrityScanWorkflow.WORKFLOW_NAME == "audit-integrity-scan"

    def test_workflow_cron_schedule(self):
        """Test workflow runs daily at 3 AM."""
        assert IntegrityScanWorkflow.CRON_SCHEDULE == "0 3 * * *"

    async def test_run_scans_lookback_window(self, mock_auditor):
        workflow = IntegrityScanWorkflow(mock_auditor, clock=lambda: NOW)

        result = await workflow.run(IntegrityScanInput(lookback_hours=6, batch_size=50))

        assert result.success is True
        assert result.status == "clean"
        assert result.total_checked == 10
        mock_auditor.perform_integrity_check.assert_awaited_once_with(
            date_range=(NOW - timedelta(hours=6), None),
            batch_size=50,
        )

    async def test_run_whole_store(self, mock_auditor):
        workflow = IntegrityScanWorkflow(mock_auditor, clock=lambda: NOW)

        await workflow.run(IntegrityScanInput(lookback_hours=None))

        mock_auditor.perform_integrity_check.assert_awaited_once_with(
            date_range=None, batch_size=None
        )

    async def test_invalid_lookback(self, mock_auditor):
        workflow = IntegrityScanWorkflow(mock_auditor)

        result = await workflow.run(IntegrityScanInput(lookback_hours=0))

        assert result.success is False
        assert result.status == "aborted"
        assert "Invalid lookback_hours" in result.error
        mock_auditor.perform_integrity_check.assert_not_called()

    async def test_corruption_is_successful_scan(self, mock_auditor):
        mock_auditor.perform_integrity_check.return_value = _report(
            AuditStatus.CORRUPTION_DETECTED, corrupted=["r-1", "r-2"]
        )
        workflow = IntegrityScanWorkflow(mock_auditor)

        result = await workflow.run(IntegrityScanInput())

        assert result.success is True
        assert result.status == "corruption_detected"
        assert result.invalid == 2
        assert result.corrupted_ids == ["r-1", "r-2"]

    async def test_aborted_scan_is_failure(self, mock_auditor):
        mock_auditor.perform_integrity_check.return_value = _report(
            AuditStatus.ABORTED, error="ConnectionError: refused"
        )
        workflow = IntegrityScanWorkflow(mock_auditor)

        result = await workflow.run(IntegrityScanInput())

        assert result.success is False
        assert result.error == "ConnectionError: refused"


class TestRegistration:
    """Tests for registering workflows with Hatchet."""

    async def test_register_batch_flush(self, mock_dispatcher):
        hatchet = FakeHatchet()

        registered = batch_flush.register_workflow(hatchet, mock_dispatcher, cron_schedule="*/5 * * * *")
        output = await registered().flush_batches(_context({"cleanup_jobs": False}))

        assert hatchet.workflows == [{"name": "flush-audit-batches", "on_crons": ["*/5 * * * *"]}]
        assert output["flushed_count"] == 12
        assert output["cleaned_jobs"] == 0
        assert output["success"] is True
        assert output["pending_count"] == 0

    async def test_register_integrity_scan_uses_default_lookback(self, mock_auditor):
        hatchet = FakeHatchet()

        registered = integrity_scan.register_workflow(hatchet, mock_auditor, lookback_hours=12)
        output = await registered().scan(_context(None))

        assert hatchet.workflows[0]["on_crons"] == ["0 3 * * *"]
        assert output["status"] == "clean"
        date_range = mock_auditor.perform_integrity_check.call_args.kwargs["date_range"]
        assert date_range[0] is not None

    def test_register_workflows_from_container(self, mock_dispatcher, mock_auditor):
        hatchet = FakeHatchet()
        container = SimpleNamespace(
            settings=SimpleNamespace(jobs=JobsConfig()),
            dispatcher=mock_dispatcher,
            auditor=mock_auditor,
        )

        registered = register_workflows(hatchet, container)

        assert len(registered) == 2
        assert [w["name"] for w in hatchet.workflows] == [
            "flush-audit-batches",
            "audit-integrity-scan",
        ]


class TestHatchetClient:
    """Tests for HatchetClient."""

    def test_disabled_client_returns_none(self):
        client = HatchetClient(HatchetConfig(enabled=False))

        assert client.get_client() is None
        assert client.is_available is False

    def test_config_exposed(self):
        config = HatchetConfig(server_url="http://hatchet:7077")

        assert HatchetClient(config).config.server_url == "http://hatchet:7077"
