from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

from ..common.serialization import iso
from ..core.enums import AttendanceStatus, EventType


@dataclass(frozen=True)
class AttendanceEvent:
    """Một lần quét tại thiết bị (bản ghi thô, không sửa)."""

    id: str
    event_key: str
    school_id: str
    student_id: Optional[str]
    device_id: Optional[str]
    event_type: EventType
    timestamp: datetime
    raw_payload: Optional[Any] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "schoolId": self.school_id,
            "studentId": self.student_id,
            "deviceId": self.device_id,
            "eventType": self.event_type.value,
            "timestamp": iso(self.timestamp),
        }


@dataclass(frozen=True)
class DailyAttendance:
    """Bản ghi điểm danh trong ngày của một học sinh (duy nhất theo student + date)."""

    id: str
    school_id: str
    student_id: str
    date: date
    status: AttendanceStatus
    first_scan_time: Optional[datetime] = None
    last_scan_time: Optional[datetime] = None
    late_minutes: Optional[int] = None
    last_in_time: Optional[datetime] = None
    last_out_time: Optional[datetime] = None
    currently_in_school: bool = False
    scan_count: int = 0
    total_time_on_premises: int = 0
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "schoolId": self.school_id,
            "studentId": self.student_id,
            "date": iso(self.date),
            "status": self.status.value,
            "firstScanTime": iso(self.first_scan_time),
            "lastScanTime": iso(self.last_scan_time),
            "lateMinutes": self.late_minutes,
            "lastInTime": iso(self.last_in_time),
            "lastOutTime": iso(self.last_out_time),
            "currentlyInSchool": self.currently_in_school,
            "scanCount": self.scan_count,
            "totalTimeOnPremises": self.total_time_on_premises,
            "notes": self.notes,
        }
