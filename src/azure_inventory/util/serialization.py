from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

REDACTED_VALUE = "<redacted>"
SENSITIVE_KEY_SUBSTRINGS = (
    "private_key",
    "passphrase",
    "password",
    "secret",
    "shared_key",
    "token",
    "custom_data",
)


def _is_sensitive_key(key: Any) -> bool:
    if not isinstance(key, str):
        return False
    lowered = key.lower()
    return any(token in lowered for token in SENSITIVE_KEY_SUBSTRINGS)


def sanitize_for_json(value: Any) -> Any:
    """
    Convert common non-JSON types to plain forms and redact sensitive fields.
    """
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            if _is_sensitive_key(k):
                out[k] = REDACTED_VALUE
            else:
                out[k] = sanitize_for_json(v)
        return out
    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_json(v) for v in value]
    as_dict = getattr(value, "as_dict", None)
    if callable(as_dict):
        try:
            return sanitize_for_json(as_dict())
        except Exception:
            return str(value)
    if hasattr(value, "__dict__"):
        return sanitize_for_json({k: v for k, v in vars(value).items() if not k.startswith("_")})
    return value


def model_to_dict(obj: Any) -> dict[str, Any]:
    """
    Convert an Azure SDK model (or a plain dict) into a loosely typed dict.
    Keys follow the SDK attribute names (snake_case).
    """
    if obj is None:
        return {}
    data = sanitize_for_json(obj)
    return data if isinstance(data, dict) else {}
