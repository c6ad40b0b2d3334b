"""Batch flush workflow.

Scheduled job that drains every batch bucket, including buckets from
earlier minutes that never reached the size threshold. Records the broker
refuses stay buffered and are reported as pending. Also drops expired
local job handles. Runs every minute by default.
"""

from dataclasses import dataclass
from typing import Any

from trailguard.dispatch.dispatcher import AuditDispatcher
from trailguard.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass
class FlushBatchesInput:
    """Input for the batch flush workflow."""

    cleanup_jobs: bool = True


@dataclass
class FlushBatchesOutput:
    """Output from the batch flush workflow."""

    flushed_count: int
    cleaned_jobs: int
    success: bool
    pending_count: int = 0
    error: str | None = None


class FlushAuditBatchesWorkflow:
    """Workflow to flush pending audit batches.

    Idempotent: a second run finds the buckets already empty.
    """

    WORKFLOW_NAME = "flush-audit-batches"
    CRON_SCHEDULE = "* * * * *"  # Every minute

    def __init__(self, dispatcher: AuditDispatcher) -> None:
        self._dispatcher = dispatcher

    async def run(self, input_data: FlushBatchesInput) -> FlushBatchesOutput:
        """Drain all buckets and optionally clean up job tracking."""
        try:
            flushed = await self._dispatcher.flush_batch()
            cleaned = await self._dispatcher.cleanup_job_tracking() if input_data.cleanup_jobs else 0
            pending = await self._dispatcher.pending_count()
        except Exception as e:
            logger.error("flush_audit_batches_failed", error=str(e))
            return FlushBatchesOutput(flushed_count=0, cleaned_jobs=0, success=False, error=str(e))

        if flushed:
            logger.info("audit_batches_flushed", flushed_count=flushed, cleaned_jobs=cleaned)
        if pending:
            logger.warning("audit_batches_pending", pending_count=pending)
        return FlushBatchesOutput(
            flushed_count=flushed,
            cleaned_jobs=cleaned,
            success=True,
            pending_count=pending,
        )


def register_workflow(
    hatchet: Any,
    dispatcher: AuditDispatcher,
    cron_schedule: str | None = None,
) -> Any:
    """Register the batch flush workflow with Hatchet.

    Args:
        hatchet: Hatchet SDK instance
        dispatcher: Dispatcher whose buckets are flushed
        cron_schedule: Override for the default schedule

    Returns:
        Registered workflow
    """
    workflow_instance = FlushAuditBatchesWorkflow(dispatcher)

    @hatchet.workflow(
        name=FlushAuditBatchesWorkflow.WORKFLOW_NAME,
        on_crons=[cron_schedule or FlushAuditBatchesWorkflow.CRON_SCHEDULE],
    )
    class HatchetFlushAuditBatchesWorkflow:
        """Hatchet workflow wrapper for the batch flush."""

        @hatchet.step(retries=1, retry_delay="10s")
        async def flush_batches(self, context: Any) -> dict:
            input_data = context.workflow_input() or {}
            result = await workflow_instance.run(
                FlushBatchesInput(cleanup_jobs=input_data.get("cleanup_jobs", True))
            )
            return {
                "flushed_count": result.flushed_count,
                "cleaned_jobs": result.cleaned_jobs,
                "success": result.success,
                "pending_count": result.pending_count,
                "error": result.error,
            }

    return HatchetFlushAuditBatchesWorkflow
