"""Masking applied to before/after/meta payloads before they reach the audit log."""

from __future__ import annotations

import copy
import json
import re
from typing import Any

REDACTED = "[REDACTED]"
MASKED = "[MASKED]"

_SECRET_KEYS = ("token", "secret", "password", "otp")
_ACCOUNT_KEYS = ("bank", "account", "ifsc")
_COMPENSATION_KEYS = ("salary", "ctc", "compensation")
_LOCATION_KEYS = ("url", "storage", "document")
_NON_DIGITS = re.compile(r"\D")


def _mask_value(key: str, value: Any) -> Any:
    if value is None:
        return None
    k = key.lower()

    if any(s in k for s in _SECRET_KEYS):
        return REDACTED

    if any(s in k for s in _ACCOUNT_KEYS):
        digits = _NON_DIGITS.sub("", str(value))
        return f"****{digits[-4:]}" if len(digits) >= 4 else "****"

    if any(s in k for s in _COMPENSATION_KEYS):
        return MASKED

    if any(s in k for s in _LOCATION_KEYS):
        text = str(value)
        if text.startswith(("http://", "https://", "data:")):
            return MASKED

    return value


def _mask(obj: Any, key: str = "") -> Any:
    if isinstance(obj, dict):
        return {k: _mask(v, str(k)) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_mask(item, key) for item in obj]
    return _mask_value(key, obj)


def _json_safe(data: Any) -> Any:
    # Round-trip through JSON so dates, decimals and enums land as plain values.
    try:
        return json.loads(json.dumps(data, default=str))
    except (TypeError, ValueError):
        return copy.deepcopy(data)


def scrub_audit_data(entity_type: str, data: Any) -> Any:
    if data is None:
        return None

    masked = _mask(_json_safe(data))
    if entity_type != "SYSTEM_CONFIG" or not isinstance(masked, dict):
        return masked

    key = str(masked.get("key", "")).upper()
    if any(s in key for s in ("SECRET", "PASSWORD", "TOKEN")):
        return {**masked, "value": REDACTED}
    return masked
