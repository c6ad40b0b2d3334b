"""In-memory implementation of AuditRecordStore."""

from datetime import datetime
from uuid import UUID

from trailguard.audit.models import SignedRecord
from trailguard.audit.store import AuditRecordStore, PageCursor, cursor_for


class InMemoryAuditRecordStore(AuditRecordStore):
    """In-memory implementation of AuditRecordStore for testing and development.

    Uses simple dict storage with a sort per page query.
    Not suitable for production use.
    """

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._records: dict[UUID, SignedRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    async def save(self, record: SignedRecord) -> UUID:
        """Save a signed record."""
        self._records[record.id] = record
        return record.id

    async def get(self, record_id: UUID) -> SignedRecord | None:
        """Get a record by ID."""
        return self._records.get(record_id)

    async def exists(self, record_id: UUID) -> bool:
        """Check whether a record is stored."""
        return record_id in self._records

    async def list_page(
        self,
        *,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        after: PageCursor | None = None,
        limit: int = 1000,
    ) -> list[SignedRecord]:
        """List a page of records in (created_at, id) order."""
        results = []
        for record in self._records.values():
            if start_time is not None and record.created_at < start_time:
                continue
            if end_time is not None and record.created_at > end_time:
                continue
            if after is not None and cursor_for(record) <= after:
                continue
            results.append(record)
        results.sort(key=cursor_for)
        return results[:limit]

    async def update_signature(self, record_id: UUID, signature: str) -> SignedRecord | None:
        """Replace the stored signature."""
        record = self._records.get(record_id)
        if record is None:
            return None
        updated = record.model_copy(update={"signature": signature})
        self._records[record_id] = updated
        return updated

