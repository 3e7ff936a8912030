from __future__ import annotations

import hmac
import re
from typing import Any, Optional

from ..core.exceptions import ValidationError

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def require_non_empty(value: Optional[str], field_name: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def require_min_length(value: Optional[str], field_name: str, min_len: int) -> str:
    if value is None or len(value) < min_len:
        raise ValidationError(f"{field_name} must be at least {min_len} characters")
    return value


def require_hhmm(value: Optional[str], field_name: str) -> str:
    value = (value or "").strip()
    if not _HHMM.match(value):
        raise ValidationError(f"{field_name} must be in HH:MM format")
    return value


def require_non_negative_int(value: Any, field_name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a non-negative integer")
    if number < 0:
        raise ValidationError(f"{field_name} must be a non-negative integer")
    return number


def optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def truncate(value: Any, max_len: int) -> Optional[str]:
    if value is None:
        return None
    return str(value)[:max_len]


def secret_matches(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison of a caller-supplied secret; works for any unicode input."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
