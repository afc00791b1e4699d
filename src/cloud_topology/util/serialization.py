from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

REDACTED_VALUE = "<redacted>"
SENSITIVE_KEY_SUBSTRINGS = (
    "private_key",
    "privatekey",
    "passphrase",
    "password",
    "secret",
    "token",
    "credential",
    "user_data",
    "userdata",
)


def _is_sensitive_key(key: Any) -> bool:
    if not isinstance(key, str):
        return False
    lowered = key.lower()
    return any(token in lowered for token in SENSITIVE_KEY_SUBSTRINGS)


def sanitize_for_json(value: Any) -> Any:
    """
    Convert scanner metadata to JSON-safe values and redact sensitive fields.

    Scanners hand over SDK payloads verbatim, so metadata may hold datetimes,
    Decimals (DynamoDB), bytes or nested SDK objects.
    """
    if isinstance(value, Enum):
        return sanitize_for_json(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            key = str(k)
            if _is_sensitive_key(key):
                out[key] = REDACTED_VALUE
            else:
                out[key] = sanitize_for_json(v)
        return out
    if isinstance(value, (list, tuple)):
        return [sanitize_for_json(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((sanitize_for_json(v) for v in value), key=str)
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return sanitize_for_json(to_dict())
    if hasattr(value, "__dict__"):
        return sanitize_for_json(vars(value))
    return value
