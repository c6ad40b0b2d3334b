"""Value patterns that identify sensitive data inside free-form strings.

Order matters: more specific shapes run first so that, for example, an IPv4
address is masked as an address before the phone pattern can see it.
"""

import re

JWT_PATTERN = re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+")
CREDIT_CARD_PATTERN = re.compile(r"(?<!\d)\d{4}[ -]?\d{4}[ -]?\d{4}[ -]?\d{1,7}(?!\d)")
EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
SSN_PATTERN = re.compile(r"(?<!\d)\d{3}-\d{2}-\d{4}(?!\d)")
IPV4_PATTERN = re.compile(
    r"(?<![\d.])(?:(?:25[0-5]|2[0-4]\d|1?\d?\d)\.){3}(?:25[0-5]|2[0-4]\d|1?\d?\d)(?![\d.])"
)
PHONE_PATTERN = re.compile(
    r"(?<![\w+])(?:"
    r"(?:\+\d{1,3}[ -]?)?(?:\(\d{3}\)|\d{3})[ -]?\d{3}[ -]?\d{4}"
    r"|09\d{2}-?\d{3}-?\d{3}"
    r")(?!\w)"
)
OPAQUE_TOKEN_PATTERN = re.compile(r"(?<![A-Za-z0-9])[A-Za-z0-9]{32,}(?![A-Za-z0-9])")

DEFAULT_PATTERNS: dict[str, re.Pattern[str]] = {
    "jwt": JWT_PATTERN,
    "credit_card": CREDIT_CARD_PATTERN,
    "email": EMAIL_PATTERN,
    "ssn": SSN_PATTERN,
    "ipv4": IPV4_PATTERN,
    "phone": PHONE_PATTERN,
    "opaque_token": OPAQUE_TOKEN_PATTERN,
}
