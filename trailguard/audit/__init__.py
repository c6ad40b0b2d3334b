"""Audit domain: event models, reports and the record store interface."""

from trailguard.audit.models import AuditReport, AuditStatus, Event, SignedRecord
from trailguard.audit.store import AuditRecordStore

__all__ = [
    "AuditRecordStore",
    "AuditReport",
    "AuditStatus",
    "Event",
    "SignedRecord",
]
