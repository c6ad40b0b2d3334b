"""Sensitive data redaction for event payloads and log events."""

from trailguard.redaction.patterns import DEFAULT_PATTERNS
from trailguard.redaction.redactor import Redactor

__all__ = ["DEFAULT_PATTERNS", "Redactor"]
