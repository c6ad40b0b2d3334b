"""Privileged signature regeneration."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from uuid import UUID

from trailguard.audit.models import Event, SignedRecord
from trailguard.audit.store import AuditRecordStore
from trailguard.exceptions import RemediationError
from trailguard.integrity.signer import Signer
from trailguard.observability.logging import get_logger
from trailguard.observability.metrics import SIGNATURES_REGENERATED

logger = get_logger(__name__)

REMEDIATION_EVENT_TYPE = "signature_regenerated"
REMEDIATION_RISK_LEVEL = 8


@dataclass
class RemediationResult:
    """Outcome of regenerating several signatures."""

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        """True when at least one record could not be re-signed."""
        return bool(self.failed)


class SignatureRemediator:
    """Re-signs records after an operator has confirmed their content.

    Regenerating a signature makes the current content authoritative, so
    every call is attributed to an operator and first leaves its own signed
    audit record behind.
    """

    def __init__(self, signer: Signer, store: AuditRecordStore) -> None:
        self._signer = signer
        self._store = store

    async def regenerate_signature(
        self,
        record: SignedRecord | UUID,
        *,
        operator_id: str,
        reason: str,
    ) -> SignedRecord:
        """Recompute and store a record's signature.

        Raises:
            RemediationError: If no operator is given, the record is missing,
                or any write fails
        """
        if not operator_id or not operator_id.strip():
            raise RemediationError("Signature regeneration requires an operator id")

        record_id = record.record_id if isinstance(record, SignedRecord) else str(record)
        try:
            if isinstance(record, UUID):
                loaded = await self._store.get(record)
                if loaded is None:
                    raise RemediationError(f"Record not found: {record}", record_id=record_id)
                record = loaded

            new_signature = self._signer.sign(record)
            remediation_event = Event(
                type=REMEDIATION_EVENT_TYPE,
                description=f"Signature regenerated for record {record_id}",
                module="integrity",
                actor_id=operator_id,
                subject_type="audit_record",
                subject_id=record_id,
                properties={
                    "old_signature": record.signature,
                    "new_signature": new_signature,
                    "reason": reason,
                },
                risk_level=REMEDIATION_RISK_LEVEL,
            )
            await self._store.save(self._signer.stamp(remediation_event))

            updated = await self._store.update_signature(record.id, new_signature)
            if updated is None:
                raise RemediationError(f"Record not found: {record_id}", record_id=record_id)
        except RemediationError:
            SIGNATURES_REGENERATED.labels(outcome="failure").inc()
            raise
        except Exception as e:
            SIGNATURES_REGENERATED.labels(outcome="failure").inc()
            logger.error(
                "signature_regeneration_failed",
                record_id=record_id,
                operator_id=operator_id,
                error=str(e),
            )
            raise RemediationError(
                f"Failed to regenerate signature for {record_id}: {e}", record_id=record_id
            ) from e

        SIGNATURES_REGENERATED.labels(outcome="success").inc()
        logger.warning(
            "signature_regenerated",
            record_id=record_id,
            operator_id=operator_id,
            reason=reason,
        )
        return updated

    async def regenerate_many(
        self,
        records: Iterable[SignedRecord | UUID],
        *,
        operator_id: str,
        reason: str,
    ) -> RemediationResult:
        """Regenerate several signatures, reporting each outcome."""
        if not operator_id or not operator_id.strip():
            raise RemediationError("Signature regeneration requires an operator id")

        result = RemediationResult()
        for record in records:
            record_id = record.record_id if isinstance(record, SignedRecord) else str(record)
            try:
                await self.regenerate_signature(record, operator_id=operator_id, reason=reason)
            except RemediationError as e:
                result.failed[record_id] = e.message
            else:
                result.succeeded.append(record_id)

        if result.failed:
            logger.error(
                "signature_regeneration_incomplete",
                succeeded=len(result.succeeded),
                failed=len(result.failed),
                partial=result.partial,
            )
        return result
