"""Integrity configuration models.

Covers record signing and the bulk integrity auditor.
"""

from pydantic import BaseModel, Field, SecretStr


class IntegrityConfig(BaseModel):
    """Signing and verification configuration."""

    signing_secret: SecretStr | None = Field(
        default=None,
        description="Master signing secret (from TRAILGUARD_INTEGRITY__SIGNING_SECRET)",
    )
    key_namespace: str = Field(
        default="integrity",
        min_length=1,
        description="Namespace appended to the secret when deriving the HMAC key",
    )
    signature_version: str = Field(
        default="v1",
        description="Version tag prefixed to new signatures",
    )
    excluded_fields: list[str] = Field(
        default_factory=lambda: ["id", "signature", "updated_at"],
        description="Fields never covered by the signature",
    )
    timestamp_fields: list[str] = Field(
        default_factory=lambda: ["created_at", "updated_at", "occurred_at", "timestamp"],
        description="Keys whose string values are normalized as timestamps",
    )
    critical_fields: list[str] = Field(
        default_factory=lambda: [
            "type",
            "description",
            "actor_id",
            "subject_type",
            "subject_id",
            "created_at",
        ],
        description="Fields compared by tamper detection",
    )


class AuditorConfig(BaseModel):
    """Bulk integrity scan configuration."""

    batch_size: int = Field(
        default=1000,
        ge=1,
        description="Records fetched per page during a scan",
    )
    max_reported_corruptions: int = Field(
        default=1000,
        ge=0,
        description="Cap on corrupted-record summaries kept in one report",
    )
