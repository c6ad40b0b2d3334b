"""Field-level tamper detection against a trusted snapshot."""

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel

from trailguard.audit.models import FieldChange, TamperReport
from trailguard.integrity.canonical import Canonicalizer
from trailguard.observability.logging import get_logger
from trailguard.observability.metrics import TAMPERING_DETECTED

logger = get_logger(__name__)

LOG_VALUE_MAX_LENGTH = 100
HIGH_SEVERITY_MIN_CHANGES = 3


def _as_mapping(data: BaseModel | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="python")
    return data


def _truncate(value: Any) -> Any:
    if isinstance(value, str) and len(value) > LOG_VALUE_MAX_LENGTH:
        return value[:LOG_VALUE_MAX_LENGTH] + "..."
    return value


class TamperDetector:
    """Compares the critical fields of a record with an original snapshot.

    Values are compared in canonical form, so a datetime and its ISO string
    are equal. Findings are logged together with who asked.
    """

    def __init__(self, canonicalizer: Canonicalizer, critical_fields: Iterable[str]) -> None:
        self._canonicalizer = canonicalizer
        self._critical_fields = tuple(critical_fields)

    @property
    def critical_fields(self) -> tuple[str, ...]:
        return self._critical_fields

    def inspect(
        self,
        record: BaseModel | Mapping[str, Any],
        original_snapshot: BaseModel | Mapping[str, Any],
        requester_ip: str | None = None,
        requester_user_agent: str | None = None,
    ) -> TamperReport:
        current = _as_mapping(record)
        original = _as_mapping(original_snapshot)

        changes = []
        for field in self._critical_fields:
            original_value = self._canonicalizer.normalize_value(field, original.get(field))
            current_value = self._canonicalizer.normalize_value(field, current.get(field))
            if original_value != current_value:
                changes.append(
                    FieldChange(
                        field=field,
                        original_value=original_value,
                        current_value=current_value,
                    )
                )

        record_id = str(current.get("id") or original.get("id") or "")
        if not changes:
            return TamperReport(
                record_id=record_id,
                requester_ip=requester_ip,
                requester_user_agent=requester_user_agent,
            )

        severity = "high" if len(changes) >= HIGH_SEVERITY_MIN_CHANGES else "medium"
        TAMPERING_DETECTED.labels(severity=severity).inc()
        logger.warning(
            "tampering_detected",
            record_id=record_id,
            fields=[change.field for change in changes],
            changes={
                change.field: {
                    "original": _truncate(change.original_value),
                    "current": _truncate(change.current_value),
                }
                for change in changes
            },
            severity=severity,
            requester_ip=requester_ip,
            requester_user_agent=requester_user_agent,
        )
        return TamperReport(
            record_id=record_id,
            tampering_detected=True,
            changes=changes,
            severity=severity,
            requester_ip=requester_ip,
            requester_user_agent=requester_user_agent,
        )
