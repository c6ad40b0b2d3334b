"""Redactor: masks sensitive values before data leaves the trust boundary.

Two independent checks run over nested payloads:
1. Key-name matching against a keyword set, masking the whole value
2. Regex patterns on string values, masking only the matched span

Redaction is idempotent: running it over its own output changes nothing.
"""

import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel

from trailguard.config.models.redaction import RedactionConfig
from trailguard.redaction.patterns import DEFAULT_PATTERNS

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

# Keywords at least this long also match as a substring of the joined key
# ("sessionid" contains "session"). Shorter ones ("key", "pin", "auth") must
# match a whole key segment so "monkey" or "author" stay visible.
_SUBSTRING_MATCH_MIN_LENGTH = 5


def _key_parts(name: str) -> tuple[str, ...]:
    spaced = _CAMEL_BOUNDARY.sub("_", name).lower()
    return tuple(part for part in _NON_ALNUM.split(spaced) if part)


def _contains_run(haystack: tuple[str, ...], needle: tuple[str, ...]) -> bool:
    width = len(needle)
    return any(haystack[i : i + width] == needle for i in range(len(haystack) - width + 1))


class Redactor:
    """Masks sensitive keys and values in nested payloads.

    Keyword and pattern sets start from the configured defaults and can be
    extended at runtime with add_keywords() / add_pattern(); nothing is ever
    removed.
    """

    def __init__(self, config: RedactionConfig | None = None) -> None:
        self._config = config or RedactionConfig()
        self._keywords: dict[str, tuple[str, ...]] = {}
        self._patterns: dict[str, re.Pattern[str]] = dict(DEFAULT_PATTERNS)

        self.add_keywords(*self._config.sensitive_keywords)
        self.add_keywords(*self._config.extra_sensitive_keywords)
        for name, pattern in self._config.extra_patterns.items():
            self.add_pattern(name, pattern)

    @property
    def mask_char(self) -> str:
        return self._config.mask_char

    @property
    def placeholder(self) -> str:
        return self._config.placeholder

    @property
    def keywords(self) -> frozenset[str]:
        return frozenset(self._keywords)

    @property
    def pattern_names(self) -> list[str]:
        return list(self._patterns)

    def add_keywords(self, *keywords: str) -> None:
        """Add sensitive key names."""
        for keyword in keywords:
            parts = _key_parts(keyword)
            if parts:
                self._keywords["_".join(parts)] = parts

    def add_pattern(self, name: str, pattern: str | re.Pattern[str]) -> None:
        """Add (or replace by name) a sensitive value pattern."""
        self._patterns[name] = re.compile(pattern) if isinstance(pattern, str) else pattern

    def is_sensitive_key(self, key: Any) -> bool:
        """Check whether a key name matches any sensitive keyword."""
        parts = _key_parts(str(key))
        if not parts:
            return False
        joined = "".join(parts)
        for keyword_parts in self._keywords.values():
            if _contains_run(parts, keyword_parts):
                return True
            keyword_joined = "".join(keyword_parts)
            if len(keyword_joined) >= _SUBSTRING_MATCH_MIN_LENGTH and keyword_joined in joined:
                return True
        return False

    def contains_sensitive_data(self, value: str) -> bool:
        """Check whether a string matches any sensitive value pattern."""
        return any(pattern.search(value) for pattern in self._patterns.values())

    def mask_value(self, value: Any, visible_chars: int | None = None) -> str:
        """Mask a single value, keeping a short leading prefix.

        Strings no longer than the prefix are masked entirely. Non-string
        values become the placeholder.
        """
        if not isinstance(value, str):
            return self.placeholder
        if value == self.placeholder:
            return value

        visible = self._config.visible_chars if visible_chars is None else visible_chars
        if len(value) <= visible:
            return self.mask_char * len(value)
        return value[:visible] + self.mask_char * (len(value) - visible)

    def redact_string(self, value: str) -> str:
        """Mask every pattern match inside a string.

        Passes repeat until the string is stable: the mask left by one
        pattern can expose a match for another.
        """
        while True:
            redacted = value
            for pattern in self._patterns.values():
                redacted = pattern.sub(lambda match: self.mask_value(match.group(0)), redacted)
            if redacted == value:
                return redacted
            value = redacted

    def redact(self, value: Any) -> Any:
        """Redact an arbitrary value (mapping, list, string or scalar)."""
        if isinstance(value, Mapping):
            return self.filter_properties(value)
        if isinstance(value, list | tuple):
            return [self.redact(item) for item in value]
        if isinstance(value, str):
            return self.redact_string(value)
        return value

    def filter_properties(self, properties: Mapping[str, Any] | None) -> dict[str, Any]:
        """Recursively redact a property map."""
        if not properties:
            return {}

        result: dict[str, Any] = {}
        for key, value in properties.items():
            if self.is_sensitive_key(key):
                result[key] = self.mask_value(value)
            else:
                result[key] = self.redact(value)
        return result

    def mask_ip_address(self, ip_address: str | None) -> str | None:
        """Hide the last octet of an IPv4 address; other formats are hidden fully."""
        if not ip_address:
            return ip_address
        parts = ip_address.split(".")
        if len(parts) == 4:
            return ".".join(parts[:3]) + ".***"
        return "***"

    def mask_user_agent(self, user_agent: str | None) -> str | None:
        """Truncate long user agent strings."""
        limit = self._config.user_agent_max_length
        if not user_agent or len(user_agent) <= limit:
            return user_agent
        return user_agent[:limit] + "..."

    def filter_record(
        self,
        record: BaseModel | Mapping[str, Any],
        drop_fields: Iterable[str] = ("signature",),
    ) -> dict[str, Any]:
        """Build a display copy of an event or signed record.

        Properties are redacted, ip address and user agent masked, and
        integrity fields dropped.
        """
        if isinstance(record, BaseModel):
            data = record.model_dump(mode="json")
        else:
            data = dict(record)

        if "properties" in data:
            data["properties"] = self.filter_properties(data["properties"])
        if "ip_address" in data:
            data["ip_address"] = self.mask_ip_address(data["ip_address"])
        if "user_agent" in data:
            data["user_agent"] = self.mask_user_agent(data["user_agent"])
        for field in drop_fields:
            data.pop(field, None)
        return data
