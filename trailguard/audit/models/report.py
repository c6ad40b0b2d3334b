"""Integrity audit report models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class AuditStatus(str, Enum):
    """Outcome of an integrity scan."""

    CLEAN = "clean"
    CORRUPTION_DETECTED = "corruption_detected"
    ABORTED = "aborted"


class CorruptionReason(str, Enum):
    """Why a record was flagged."""

    SIGNATURE_MISMATCH = "signature_mismatch"
    MISSING_SIGNATURE = "missing_signature"
    VERIFICATION_ERROR = "verification_error"


class CorruptedRecord(BaseModel):
    """Summary of a record that failed verification."""

    id: str
    type: str
    created_at: datetime
    actor_id: str | None = None
    reason: CorruptionReason
    error: str | None = None


class AuditReport(BaseModel):
    """Result of a bulk integrity scan.

    valid + invalid + missing_signature always equals total_checked;
    verification_errors is a subset of invalid.
    """

    audit_id: str
    status: AuditStatus
    window_start: datetime | None
    window_end: datetime
    started_at: datetime
    completed_at: datetime | None = None
    elapsed_seconds: float = 0.0
    batch_size: int
    total_checked: int = 0
    valid: int = 0
    invalid: int = 0
    missing_signature: int = 0
    verification_errors: int = 0
    corrupted_records: list[CorruptedRecord] = Field(default_factory=list)
    corrupted_truncated: bool = False
    error: str | None = None

    @property
    def is_clean(self) -> bool:
        return self.status == AuditStatus.CLEAN
