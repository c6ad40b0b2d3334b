"""AuditTrail: the entry point business code logs through.

Redacts an event's properties, signs it and hands it to the dispatcher.
Properties are redacted before signing, so the stored signature covers
exactly what was persisted.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

from trailguard.audit.models import Event, SignedRecord, TamperReport
from trailguard.dispatch.dispatcher import AuditDispatcher
from trailguard.integrity.signer import Signer
from trailguard.redaction import Redactor


class AuditTrail:
    """Facade over redaction, signing and dispatch."""

    def __init__(self, signer: Signer, redactor: Redactor, dispatcher: AuditDispatcher) -> None:
        self._signer = signer
        self._redactor = redactor
        self._dispatcher = dispatcher

    @property
    def dispatcher(self) -> AuditDispatcher:
        return self._dispatcher

    def record(self, event: Event) -> SignedRecord:
        """Redact and sign an event without dispatching it."""
        redacted = event.model_copy(
            update={"properties": self._redactor.filter_properties(event.properties)}
        )
        return self._signer.stamp(redacted)

    async def record_async(
        self,
        event: Event,
        queue: str | None = None,
        delay_seconds: float = 0,
    ) -> str:
        """Sign an event and enqueue it as a single job."""
        return await self._dispatcher.log_async(
            self.record(event), queue=queue, delay_seconds=delay_seconds
        )

    async def record_batch_async(
        self,
        events: Sequence[Event],
        queue: str | None = None,
    ) -> list[str]:
        """Sign events and enqueue them as chunked batch jobs."""
        return await self._dispatcher.log_batch_async(
            [self.record(event) for event in events], queue=queue
        )

    async def collect(self, event: Event) -> list[str]:
        """Sign an event and add it to the current batch bucket."""
        return await self._dispatcher.add_to_batch(self.record(event))

    def verify(self, record: BaseModel | Mapping[str, Any]) -> bool:
        return self._signer.verify(record)

    def detect_tampering(
        self,
        record: BaseModel | Mapping[str, Any],
        original_snapshot: BaseModel | Mapping[str, Any],
        requester_ip: str | None = None,
        requester_user_agent: str | None = None,
    ) -> TamperReport:
        """Compare a record with a trusted snapshot and report what changed."""
        return self._signer.inspect_tampering(
            record, original_snapshot, requester_ip, requester_user_agent
        )

    def display_copy(self, record: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
        """Masked copy of a record for showing outside the trust boundary."""
        return self._redactor.filter_record(record)
