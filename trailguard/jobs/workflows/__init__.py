"""Hatchet workflow definitions.

This module contains the scheduled audit workflows:
- FlushAuditBatchesWorkflow: Drains pending batch buckets
- IntegrityScanWorkflow: Re-verifies recent record signatures
"""

from typing import Any

from trailguard.jobs.workflows import batch_flush, integrity_scan
from trailguard.jobs.workflows.batch_flush import (
    FlushAuditBatchesWorkflow,
    FlushBatchesInput,
    FlushBatchesOutput,
)
from trailguard.jobs.workflows.integrity_scan import (
    IntegrityScanInput,
    IntegrityScanOutput,
    IntegrityScanWorkflow,
)


def register_workflows(hatchet: Any, container: Any) -> list[Any]:
    """Register every workflow against a bootstrapped container.

    Schedules come from container.settings.jobs.hatchet.
    """
    config = container.settings.jobs.hatchet
    return [
        batch_flush.register_workflow(
            hatchet,
            container.dispatcher,
            cron_schedule=config.cron_flush_batches,
        ),
        integrity_scan.register_workflow(
            hatchet,
            container.auditor,
            cron_schedule=config.cron_integrity_scan,
            lookback_hours=config.integrity_scan_lookback_hours,
        ),
    ]


__all__ = [
    "FlushAuditBatchesWorkflow",
    "FlushBatchesInput",
    "FlushBatchesOutput",
    "IntegrityScanInput",
    "IntegrityScanOutput",
    "IntegrityScanWorkflow",
    "register_workflows",
]
