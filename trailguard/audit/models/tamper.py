"""Tamper detection report models."""

from typing import Any, Literal

from pydantic import BaseModel, Field

TamperSeverity = Literal["none", "medium", "high"]


class FieldChange(BaseModel):
    """One critical field whose value differs from the snapshot."""

    field: str
    original_value: Any
    current_value: Any


class TamperReport(BaseModel):
    """Result of comparing a record against an original snapshot."""

    record_id: str
    tampering_detected: bool = False
    changes: list[FieldChange] = Field(default_factory=list)
    severity: TamperSeverity = "none"
    requester_ip: str | None = None
    requester_user_agent: str | None = None

    @property
    def changed_fields(self) -> list[str]:
        return [change.field for change in self.changes]
