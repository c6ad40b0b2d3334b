"""Record signing, tamper detection and integrity auditing."""

from trailguard.integrity.auditor import IntegrityAuditor
from trailguard.integrity.canonical import Canonicalizer, normalize_timestamp
from trailguard.integrity.remediation import RemediationResult, SignatureRemediator
from trailguard.integrity.signer import Signer
from trailguard.integrity.tampering import TamperDetector

__all__ = [
    "Canonicalizer",
    "IntegrityAuditor",
    "RemediationResult",
    "Signer",
    "SignatureRemediator",
    "TamperDetector",
    "normalize_timestamp",
]
