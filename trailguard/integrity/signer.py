"""HMAC signing and verification of audit records."""

import hashlib
import hmac
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pydantic import BaseModel

from trailguard.audit.models import Event, SignedRecord, TamperReport
from trailguard.config.models.integrity import IntegrityConfig
from trailguard.exceptions import ConfigurationError, VerificationError
from trailguard.integrity.canonical import Canonicalizer
from trailguard.integrity.tampering import TamperDetector
from trailguard.observability.logging import get_logger
from trailguard.observability.metrics import SIGNATURES_VERIFIED

logger = get_logger(__name__)

# Digest constructor per signature version. Unknown versions never verify.
SIGNATURE_ALGORITHMS: dict[str, Callable[..., Any]] = {
    "v1": hashlib.sha256,
}

Signable = BaseModel | Mapping[str, Any]


def _record_id(record: Signable) -> str | None:
    value = record.get("id") if isinstance(record, Mapping) else getattr(record, "id", None)
    return str(value) if value is not None else None


def _signature_of(record: Signable) -> Any:
    if isinstance(record, Mapping):
        return record.get("signature")
    return getattr(record, "signature", None)


class Signer:
    """Signs records and verifies stored signatures.

    The HMAC key is derived as "<secret>:<namespace>", so one master secret
    can serve several purposes without signatures being interchangeable.
    Signatures carry a version prefix ("v1:<hex>") so the algorithm can be
    rotated while older records stay verifiable.
    """

    def __init__(
        self,
        config: IntegrityConfig,
        canonicalizer: Canonicalizer | None = None,
    ) -> None:
        secret = config.signing_secret.get_secret_value() if config.signing_secret else ""
        if not secret:
            raise ConfigurationError(
                "Signing secret is not configured (set TRAILGUARD_INTEGRITY__SIGNING_SECRET)"
            )
        if config.signature_version not in SIGNATURE_ALGORITHMS:
            raise ConfigurationError(f"Unsupported signature version: {config.signature_version}")

        self._key = f"{secret}:{config.key_namespace}".encode()
        self._version = config.signature_version
        self._canonicalizer = canonicalizer or Canonicalizer(
            excluded_fields=config.excluded_fields,
            timestamp_fields=config.timestamp_fields,
        )
        self._tamper_detector = TamperDetector(self._canonicalizer, config.critical_fields)

    @property
    def version(self) -> str:
        return self._version

    @property
    def canonicalizer(self) -> Canonicalizer:
        return self._canonicalizer

    def _digest(self, version: str, payload: bytes) -> str:
        algorithm = SIGNATURE_ALGORITHMS[version]
        return hmac.new(self._key, payload, algorithm).hexdigest()

    def sign(self, data: Signable) -> str:
        """Compute the signature of an event, record or plain mapping.

        Raises:
            TypeError: If the data contains a value with no canonical form
        """
        payload = self._canonicalizer.canonicalize(data)
        return f"{self._version}:{self._digest(self._version, payload)}"

    def stamp(self, event: Event) -> SignedRecord:
        """Return a SignedRecord carrying the event's fields and signature.

        Properties are brought to their JSON form before signing, so a record
        still verifies after travelling through a queue as JSON.
        """
        fields = event.model_dump(mode="json", exclude={"signature"})
        record = SignedRecord.model_validate(fields)
        return record.model_copy(update={"signature": self.sign(record)})

    def verify(self, record: Signable) -> bool:
        """Check a record's stored signature in constant time.

        Missing signatures and unknown version prefixes are simply invalid.

        Raises:
            VerificationError: If the record cannot be canonicalized
        """
        signature = _signature_of(record)
        if not signature or not isinstance(signature, str):
            SIGNATURES_VERIFIED.labels(outcome="missing").inc()
            return False

        version, _, digest = signature.partition(":")
        if not digest or version not in SIGNATURE_ALGORITHMS:
            logger.debug("unknown_signature_version", record_id=_record_id(record), version=version)
            SIGNATURES_VERIFIED.labels(outcome="invalid").inc()
            return False

        try:
            payload = self._canonicalizer.canonicalize(record)
        except (TypeError, ValueError, AttributeError) as e:
            SIGNATURES_VERIFIED.labels(outcome="error").inc()
            raise VerificationError(
                f"Record cannot be canonicalized: {e}", record_id=_record_id(record)
            ) from e

        valid = hmac.compare_digest(self._digest(version, payload), digest)
        SIGNATURES_VERIFIED.labels(outcome="valid" if valid else "invalid").inc()
        if not valid:
            logger.debug("signature_mismatch", record_id=_record_id(record), version=version)
        return valid

    def batch_verify(self, records: Iterable[Signable]) -> dict[str, bool]:
        """Verify many records, isolating failures to the record that caused them.

        Records without an id are keyed by their position.
        """
        results: dict[str, bool] = {}
        for index, record in enumerate(records):
            record_id = _record_id(record) or str(index)
            try:
                results[record_id] = self.verify(record)
            except VerificationError as e:
                logger.warning("record_verification_failed", record_id=record_id, error=e.message)
                results[record_id] = False
        return results

    def detect_tampering(
        self,
        record: Signable,
        original_snapshot: Signable,
        requester_ip: str | None = None,
        requester_user_agent: str | None = None,
    ) -> bool:
        """Compare critical fields against a trusted snapshot."""
        return self.inspect_tampering(
            record, original_snapshot, requester_ip, requester_user_agent
        ).tampering_detected

    def inspect_tampering(
        self,
        record: Signable,
        original_snapshot: Signable,
        requester_ip: str | None = None,
        requester_user_agent: str | None = None,
    ) -> TamperReport:
        """Like detect_tampering, returning the full report."""
        return self._tamper_detector.inspect(
            record,
            original_snapshot,
            requester_ip=requester_ip,
            requester_user_agent=requester_user_agent,
        )
