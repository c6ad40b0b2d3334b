"""Event and SignedRecord models for the audit domain."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(UTC)


class Event(BaseModel):
    """A security-relevant action captured at the point it happened.

    Frozen: once created (and especially once signed) an event is never
    mutated. Corrections are new events.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4, description="Unique identifier")
    type: str = Field(..., description="Event type tag, e.g. login_failed")
    description: str = Field(..., description="Human-readable summary")
    module: str | None = Field(default=None, description="Originating module")
    actor_id: str | None = Field(default=None, description="Who performed the action")
    subject_type: str | None = Field(default=None, description="Kind of object acted on")
    subject_id: str | None = Field(default=None, description="Object acted on")
    properties: dict[str, Any] = Field(default_factory=dict, description="Event payload")
    ip_address: str | None = Field(default=None, description="Requester IP")
    user_agent: str | None = Field(default=None, description="Requester user agent")
    result: str = Field(default="success", description="Outcome of the action")
    risk_level: int = Field(default=1, description="Risk level, 1 (low) to 10 (high)")
    created_at: datetime = Field(default_factory=utc_now, description="Event time")
    updated_at: datetime = Field(default_factory=utc_now, description="Last persistence write")

    @field_validator("actor_id", "subject_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> Any:
        if isinstance(value, int | UUID):
            return str(value)
        return value

    @field_validator("risk_level", mode="before")
    @classmethod
    def _clamp_risk_level(cls, value: Any) -> int:
        if value is None:
            return 1
        return max(1, min(10, int(value)))


class SignedRecord(Event):
    """An Event stamped with its integrity signature.

    Created by Signer.stamp(); the signature covers every field except the
    configured exclusions (id, signature, updated_at by default).
    """

    signature: str | None = Field(default=None, description="'<version>:<hex digest>'")

    @property
    def signature_version(self) -> str | None:
        """Version tag of the stored signature, if any."""
        if not self.signature or ":" not in self.signature:
            return None
        return self.signature.split(":", 1)[0]

    @property
    def record_id(self) -> str:
        return str(self.id)
