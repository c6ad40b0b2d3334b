"""Audit domain models.

Contains the Pydantic models for the audit trail:
- Event / SignedRecord for captured actions
- AuditReport for integrity scans
- TamperReport for snapshot comparisons
"""

from trailguard.audit.models.event import Event, SignedRecord, utc_now
from trailguard.audit.models.report import (
    AuditReport,
    AuditStatus,
    CorruptedRecord,
    CorruptionReason,
)
from trailguard.audit.models.tamper import FieldChange, TamperReport

__all__ = [
    "AuditReport",
    "AuditStatus",
    "CorruptedRecord",
    "CorruptionReason",
    "Event",
    "FieldChange",
    "SignedRecord",
    "TamperReport",
    "utc_now",
]
