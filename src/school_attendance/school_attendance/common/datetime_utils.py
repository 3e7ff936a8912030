from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..core.constants import DEFAULT_TIMEZONE
from ..core.exceptions import ValidationError


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date: {value!r}")


def now_utc() -> datetime:
    """Current UTC time as a naive datetime (the way MySQL DATETIME stores it).

    Note: Wrapped so tests can patch/mock easier.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_zone(tz_name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def is_valid_timezone(tz_name: str) -> bool:
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def to_local(value: datetime, tz_name: Optional[str]) -> datetime:
    """Convert a naive UTC (or aware) datetime into the school's local time."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(get_zone(tz_name))


def to_utc_naive(value: datetime, tz_name: Optional[str]) -> datetime:
    """Naive values are interpreted in the school's timezone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=get_zone(tz_name))
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def local_date(value: datetime, tz_name: Optional[str]) -> date:
    return to_local(value, tz_name).date()


def minutes_of_day(value: datetime) -> int:
    return value.hour * 60 + value.minute


def hhmm_to_minutes(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    parts = str(value).split(":")
    if len(parts) < 2:
        return None
    try:
        return int(parts[0]) * 60 + int(parts[1])
    except ValueError:
        return None


def parse_device_datetime(value: str) -> datetime:
    """Parse the ISO-8601 ``dateTime`` a terminal sends (offset is optional)."""
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"Invalid dateTime: {value!r}")


def date_range_for_period(
    period: Optional[str],
    *,
    today: date,
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> Tuple[date, date]:
    """Resolve a reporting period into an inclusive (start, end) date range."""

    period = (period or "today").lower()
    if period == "today":
        return today, today
    if period == "yesterday":
        day = today - timedelta(days=1)
        return day, day
    if period == "week":
        return today - timedelta(days=6), today
    if period == "month":
        return today.replace(day=1), today
    if period == "custom":
        if not start or not end:
            raise ValidationError("startDate and endDate are required for custom period")
        start_d = parse_iso_date(start)
        end_d = parse_iso_date(end)
        if end_d < start_d:
            raise ValidationError("endDate must not be before startDate")
        return start_d, end_d
    raise ValidationError(f"Unknown period: {period}")
