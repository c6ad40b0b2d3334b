"""Redaction configuration models."""

from pydantic import BaseModel, Field

DEFAULT_SENSITIVE_KEYWORDS: tuple[str, ...] = (
    "password",
    "passwd",
    "token",
    "secret",
    "key",
    "api_key",
    "credit_card",
    "card_number",
    "cvv",
    "pin",
    "ssn",
    "phone",
    "email",
    "ip_address",
    "session",
    "auth",
    "authorization",
    "credential",
    "credentials",
    "private_key",
    "bearer",
)


class RedactionConfig(BaseModel):
    """Sensitive data masking configuration.

    The extra_* lists are added to the defaults rather than replacing them.
    """

    sensitive_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SENSITIVE_KEYWORDS),
        description="Key names masked regardless of their value",
    )
    extra_sensitive_keywords: list[str] = Field(
        default_factory=list,
        description="Additional key names to mask",
    )
    extra_patterns: dict[str, str] = Field(
        default_factory=dict,
        description="Additional value patterns (name -> regex)",
    )
    mask_char: str = Field(
        default="*",
        min_length=1,
        max_length=1,
        description="Character used to mask values",
    )
    visible_chars: int = Field(
        default=4,
        ge=0,
        description="Leading characters left visible when masking",
    )
    placeholder: str = Field(
        default="[REDACTED]",
        description="Replacement for non-string sensitive values",
    )
    user_agent_max_length: int = Field(
        default=50,
        ge=0,
        description="User agent length kept in display copies",
    )
