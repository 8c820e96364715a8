"""Redaction helpers for safe logging.

Guest contact details (name, email, phone, special requests) are PII and
must pass through these helpers before reaching a log line.
"""

import re
from typing import Any

_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

_REDACTED = "[REDACTED]"

# Draft/reservation fields that are never logged, whatever their content
GUEST_PII_FIELDS = frozenset(
    {"guest_name", "guest_email", "guest_phone", "special_requests"}
)


def redact_string(value: str) -> str:
    """Redact phone and email patterns from a string."""
    result = _PHONE_PATTERN.sub(_REDACTED, value)
    result = _EMAIL_PATTERN.sub(_REDACTED, result)
    return result


def redact_value(value: Any) -> str:
    """Redact any value for safe logging. Returns string representation."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        # Structure only, never values
        return f"dict(keys={list(value.keys())})"
    if isinstance(value, (list, tuple)):
        return f"list(len={len(value)})"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging.

    Known guest PII fields are replaced outright; everything else is
    pattern-redacted.
    """
    return {
        k: (_REDACTED if k in GUEST_PII_FIELDS and v else redact_value(v))
        for k, v in kwargs.items()
    }
