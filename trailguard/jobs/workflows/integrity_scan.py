"""Integrity scan workflow.

Scheduled job that re-verifies the signatures of recently written audit
records. Runs daily by default and scans the configured lookback window.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from trailguard.audit.models import AuditStatus, utc_now
from trailguard.integrity.auditor import IntegrityAuditor
from trailguard.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass
class IntegrityScanInput:
    """Input for the integrity scan workflow."""

    lookback_hours: int | None = 24  # None = whole store
    batch_size: int | None = None


@dataclass
class IntegrityScanOutput:
    """Output from the integrity scan workflow."""

    audit_id: str | None
    status: str
    total_checked: int
    invalid: int
    missing_signature: int
    corrupted_ids: list[str] = field(default_factory=list)
    success: bool = True
    error: str | None = None


class IntegrityScanWorkflow:
    """Workflow to run a bulk integrity check.

    success is False when the scan aborted; corruption is a successful
    scan with a non-clean status.
    """

    WORKFLOW_NAME = "audit-integrity-scan"
    CRON_SCHEDULE = "0 3 * * *"  # Daily at 3 AM UTC

    def __init__(
        self,
        auditor: IntegrityAuditor,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._auditor = auditor
        self._clock = clock

    async def run(self, input_data: IntegrityScanInput) -> IntegrityScanOutput:
        """Execute the integrity scan."""
        if input_data.lookback_hours is not None and input_data.lookback_hours < 1:
            return IntegrityScanOutput(
                audit_id=None,
                status=AuditStatus.ABORTED.value,
                total_checked=0,
                invalid=0,
                missing_signature=0,
                success=False,
                error=f"Invalid lookback_hours: {input_data.lookback_hours}",
            )

        date_range = None
        if input_data.lookback_hours is not None:
            date_range = (self._clock() - timedelta(hours=input_data.lookback_hours), None)

        report = await self._auditor.perform_integrity_check(
            date_range=date_range,
            batch_size=input_data.batch_size,
        )
        if report.status == AuditStatus.CORRUPTION_DETECTED:
            logger.critical(
                "audit_corruption_detected",
                audit_id=report.audit_id,
                invalid=report.invalid,
                missing_signature=report.missing_signature,
            )

        return IntegrityScanOutput(
            audit_id=report.audit_id,
            status=report.status.value,
            total_checked=report.total_checked,
            invalid=report.invalid,
            missing_signature=report.missing_signature,
            corrupted_ids=[record.id for record in report.corrupted_records],
            success=report.status != AuditStatus.ABORTED,
            error=report.error,
        )


def register_workflow(
    hatchet: Any,
    auditor: IntegrityAuditor,
    cron_schedule: str | None = None,
    lookback_hours: int = 24,
) -> Any:
    """Register the integrity scan workflow with Hatchet.

    Args:
        hatchet: Hatchet SDK instance
        auditor: Auditor that performs the scan
        cron_schedule: Override for the default schedule
        lookback_hours: Default window when the run input gives none

    Returns:
        Registered workflow
    """
    workflow_instance = IntegrityScanWorkflow(auditor)

    @hatchet.workflow(
        name=IntegrityScanWorkflow.WORKFLOW_NAME,
        on_crons=[cron_schedule or IntegrityScanWorkflow.CRON_SCHEDULE],
    )
    class HatchetIntegrityScanWorkflow:
        """Hatchet workflow wrapper for the integrity scan."""

        @hatchet.step(retries=2, retry_delay="300s", timeout="60m")
        async def scan(self, context: Any) -> dict:
            input_data = context.workflow_input() or {}
            result = await workflow_instance.run(
                IntegrityScanInput(
                    lookback_hours=input_data.get("lookback_hours", lookback_hours),
                    batch_size=input_data.get("batch_size"),
                )
            )
            return {
                "audit_id": result.audit_id,
                "status": result.status,
                "total_checked": result.total_checked,
                "invalid": result.invalid,
                "missing_signature": result.missing_signature,
                "corrupted_ids": result.corrupted_ids,
                "success": result.success,
                "error": result.error,
            }

    return HatchetIntegrityScanWorkflow
