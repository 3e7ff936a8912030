"""Attendance status rules shared by ingestion, reports, dashboards and jobs."""
from __future__ import annotations

from collections import Counter
from typing import Iterable, Mapping, Optional, Tuple

from ..common.datetime_utils import hhmm_to_minutes
from ..core.enums import AttendanceStatus, EffectiveStatus


def classify_first_scan(
    *,
    scan_minutes: int,
    class_start_time: Optional[str],
    late_threshold_minutes: int,
    absence_cutoff_minutes: int,
    existing_status: Optional[AttendanceStatus] = None,
) -> Tuple[AttendanceStatus, Optional[int]]:
    """Status for the first IN scan of the day and the minutes late.

    An ABSENT already recorded for the day (e.g. by the absence job) is kept.
    """

    if existing_status == AttendanceStatus.ABSENT:
        return AttendanceStatus.ABSENT, None

    start = hhmm_to_minutes(class_start_time)
    if start is None:
        return AttendanceStatus.PRESENT, None

    diff = scan_minutes - start
    if diff >= absence_cutoff_minutes:
        return AttendanceStatus.ABSENT, None
    if diff >= late_threshold_minutes:
        return AttendanceStatus.LATE, diff - late_threshold_minutes
    return AttendanceStatus.PRESENT, None


def compute_attendance_status(
    db_status: Optional[AttendanceStatus],
    class_start_time: Optional[str],
    absence_cutoff_minutes: int,
    now_minutes: int,
) -> EffectiveStatus:
    """Effective status for display; students without a row get a pending state."""

    if db_status is not None:
        return EffectiveStatus(AttendanceStatus(db_status).value)

    start = hhmm_to_minutes(class_start_time)
    if start is None or now_minutes < start:
        return EffectiveStatus.PENDING_EARLY
    if now_minutes < start + absence_cutoff_minutes:
        return EffectiveStatus.PENDING_LATE
    return EffectiveStatus.ABSENT


def calculate_attendance_percent(present: int, late: int, total: int) -> int:
    if total <= 0:
        return 0
    return round((present + late) / total * 100)


def split_no_scan_counts_by_class(
    no_scan_by_class: Mapping[Optional[str], int],
    class_start_times: Mapping[str, Optional[str]],
    *,
    absence_cutoff_minutes: int,
    now_minutes: int,
) -> dict[str, int]:
    """Split students without a scan into pendingEarly / pendingLate / absent."""

    out = {"pendingEarly": 0, "pendingLate": 0, "absent": 0}
    for class_id, count in no_scan_by_class.items():
        status = compute_attendance_status(
            None,
            class_start_times.get(class_id) if class_id else None,
            absence_cutoff_minutes,
            now_minutes,
        )
        if status == EffectiveStatus.PENDING_EARLY:
            out["pendingEarly"] += count
        elif status == EffectiveStatus.PENDING_LATE:
            out["pendingLate"] += count
        else:
            out["absent"] += count
    return out


def count_statuses(statuses: Iterable[AttendanceStatus]) -> dict[str, int]:
    counts = Counter(AttendanceStatus(s) for s in statuses)
    return {
        "present": counts[AttendanceStatus.PRESENT],
        "late": counts[AttendanceStatus.LATE],
        "absent": counts[AttendanceStatus.ABSENT],
        "excused": counts[AttendanceStatus.EXCUSED],
    }
