"""Deterministic serialization of records for signing.

One semantically equal input always yields the same bytes: keys sorted,
compact separators, no ASCII escaping, excluded fields dropped and every
timestamp rendered as ISO-8601 UTC with microseconds and a Z suffix.
"""

import json
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def as_utc(value: datetime) -> datetime:
    """Convert to UTC; naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def normalize_timestamp(value: datetime) -> str:
    """Render a datetime in the single canonical UTC form."""
    return as_utc(value).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 string, returning None if it is not one."""
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class Canonicalizer:
    """Builds the canonical byte form of a record."""

    def __init__(
        self,
        excluded_fields: Iterable[str] = ("id", "signature", "updated_at"),
        timestamp_fields: Iterable[str] = ("created_at", "updated_at", "occurred_at", "timestamp"),
    ) -> None:
        self._excluded = frozenset(excluded_fields)
        self._timestamp_fields = frozenset(timestamp_fields)

    @property
    def excluded_fields(self) -> frozenset[str]:
        return self._excluded

    def prepare(self, data: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
        """Return the normalized, JSON-ready mapping covered by a signature."""
        mapping = data.model_dump(mode="python") if isinstance(data, BaseModel) else data
        return {
            str(key): self.normalize_value(str(key), value)
            for key, value in mapping.items()
            if str(key) not in self._excluded
        }

    def canonicalize(self, data: BaseModel | Mapping[str, Any]) -> bytes:
        """Serialize a record to its canonical bytes.

        Raises:
            TypeError: If a value has no canonical JSON form
            ValueError: If a value cannot be serialized (e.g. NaN)
        """
        prepared = self.prepare(data)
        text = json.dumps(
            prepared,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
        return text.encode("utf-8")

    def normalize_value(self, key: str | None, value: Any) -> Any:
        """Normalize one value; key decides whether strings are timestamps."""
        if isinstance(value, datetime):
            return normalize_timestamp(value)
        if isinstance(value, str):
            if key in self._timestamp_fields:
                parsed = parse_timestamp(value)
                if parsed is not None:
                    return normalize_timestamp(parsed)
            return value
        if isinstance(value, bool | int | float) or value is None:
            return value
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, UUID | Decimal):
            return str(value)
        if isinstance(value, Enum):
            return self.normalize_value(key, value.value)
        if isinstance(value, BaseModel):
            return self.normalize_value(key, value.model_dump(mode="python"))
        if isinstance(value, Mapping):
            return {str(k): self.normalize_value(str(k), v) for k, v in value.items()}
        if isinstance(value, set | frozenset):
            items = [self.normalize_value(None, item) for item in value]
            return sorted(items, key=lambda item: json.dumps(item, sort_keys=True, ensure_ascii=False))
        if isinstance(value, list | tuple):
            return [self.normalize_value(None, item) for item in value]
        raise TypeError(f"Value of type {type(value).__name__} has no canonical form")
