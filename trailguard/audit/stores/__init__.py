"""Audit record stores."""

from trailguard.audit.store import AuditRecordStore
from trailguard.audit.stores.inmemory import InMemoryAuditRecordStore

__all__ = [
    "AuditRecordStore",
    "InMemoryAuditRecordStore",
]
