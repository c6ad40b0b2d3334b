"""AuditRecordStore abstract interface."""

from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from trailguard.audit.models import SignedRecord

PageCursor = tuple[datetime, str]


class AuditRecordStore(ABC):
    """Abstract interface for the persisted record of truth.

    The relational store itself is an external collaborator; this is the
    narrow surface the worker, auditor and remediator need. Pages are
    ordered by (created_at, id) so keyset pagination stays stable while
    new records are written.
    """

    @abstractmethod
    async def save(self, record: SignedRecord) -> UUID:
        """Persist a signed record."""
        pass

    @abstractmethod
    async def get(self, record_id: UUID) -> SignedRecord | None:
        """Get a record by ID."""
        pass

    @abstractmethod
    async def exists(self, record_id: UUID) -> bool:
        """Check whether a record is already persisted."""
        pass

    @abstractmethod
    async def list_page(
        self,
        *,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        after: PageCursor | None = None,
        limit: int = 1000,
    ) -> list[SignedRecord]:
        """List records with start_time <= created_at <= end_time.

        Results are ordered by (created_at, str(id)) and begin strictly
        after the given cursor.
        """
        pass

    @abstractmethod
    async def update_signature(self, record_id: UUID, signature: str) -> SignedRecord | None:
        """Overwrite a record's signature. Returns None if the record is missing."""
        pass


def cursor_for(record: SignedRecord) -> PageCursor:
    """Build the keyset cursor pointing at a record."""
    return (record.created_at, str(record.id))
