from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any


def iso(value: Any) -> Any:
    """Render dates/enums the way the JSON API returns them."""
    if isinstance(value, datetime):
        return value.isoformat() + ("Z" if value.tzinfo is None else "")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value
