from __future__ import annotations

import io
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Optional, Sequence

import pandas as pd

from ..classes.repository import ClassRepository
from ..common.datetime_utils import local_date, minutes_of_day, now_utc, parse_iso_date, to_local
from ..common.serialization import iso
from ..common.validators import optional_str
from ..core.enums import AttendanceStatus, Role
from ..core.exceptions import AuthorizationError, NotFoundError, ValidationError
from ..database.mysql_base import new_id
from ..schools.model import School
from ..students.model import Student
from ..students.repository import StudentRepository
from .model import DailyAttendance
from .repository import AttendanceRepository
from .status import compute_attendance_status

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "Date",
    "Student",
    "Class",
    "Status",
    "First scan",
    "Last scan",
    "Late minutes",
    "Minutes on premises",
    "Notes",
]


@dataclass(frozen=True)
class ReportRow:
    record: DailyAttendance
    student: Optional[Student]
    class_name: Optional[str]

    def to_dict(self) -> dict:
        out = self.record.to_dict()
        out["studentName"] = self.student.name if self.student else None
        out["classId"] = self.student.class_id if self.student else None
        out["className"] = self.class_name
        return out


class AttendanceService:
    """Use case: today's board, date-range reports, export and manual overrides."""

    def __init__(
        self,
        attendance: AttendanceRepository,
        students: StudentRepository,
        classes: ClassRepository,
    ):
        self._attendance = attendance
        self._students = students
        self._classes = classes

    def today(self, school: School, *, class_ids: Optional[Sequence[str]] = None, now: Optional[datetime] = None) -> dict:
        now = now or now_utc()
        today = local_date(now, school.timezone)
        now_minutes = minutes_of_day(to_local(now, school.timezone))

        classes = {c.id: c for c in self._classes.list_by_school(school.id)}
        students = self._students.list_active(school.id, class_ids=class_ids)
        rows = {
            r.student_id: r
            for r in self._attendance.list_daily(school.id, today, today, student_ids=[s.id for s in students])
        }

        items: list[dict] = []
        for student in students:
            record = rows.get(student.id)
            school_class = classes.get(student.class_id) if student.class_id else None
            status = compute_attendance_status(
                record.status if record else None,
                school_class.start_time if school_class else None,
                school.absence_cutoff_minutes,
                now_minutes,
            )
            items.append(
                {
                    "student": student.to_dict(),
                    "className": school_class.name if school_class else None,
                    "status": status.value,
                    "firstScanTime": iso(record.first_scan_time) if record else None,
                    "lastScanTime": iso(record.last_scan_time) if record else None,
                    "lateMinutes": record.late_minutes if record else None,
                    "currentlyInSchool": record.currently_in_school if record else False,
                    "attendanceId": record.id if record else None,
                }
            )
        return {"date": today.isoformat(), "items": items}

    def report(
        self,
        school: School,
        start: date,
        end: date,
        *,
        class_ids: Optional[Sequence[str]] = None,
    ) -> list[ReportRow]:
        if end < start:
            raise ValidationError("endDate must not be before startDate")

        class_names = {c.id: c.name for c in self._classes.list_by_school(school.id)}
        students = {s.id: s for s in self._students.list_active(school.id, class_ids=class_ids)}
        student_ids = list(students) if class_ids is not None else None
        if student_ids is not None and not student_ids:
            return []

        out: list[ReportRow] = []
        for record in self._attendance.list_daily(school.id, start, end, student_ids=student_ids):
            student = students.get(record.student_id)
            class_name = class_names.get(student.class_id) if student and student.class_id else None
            out.append(ReportRow(record=record, student=student, class_name=class_name))
        out.sort(key=lambda r: (r.record.date, r.class_name or "", r.student.name if r.student else ""))
        return out

    def export_xlsx(self, school: School, rows: Sequence[ReportRow]) -> io.BytesIO:
        data = []
        for row in rows:
            record = row.record
            data.append(
                {
                    "Date": record.date.isoformat(),
                    "Student": row.student.name if row.student else "",
                    "Class": row.class_name or "",
                    "Status": record.status.value,
                    "First scan": self._clock_time(record.first_scan_time, school),
                    "Last scan": self._clock_time(record.last_scan_time, school),
                    "Late minutes": record.late_minutes or 0,
                    "Minutes on premises": record.total_time_on_premises or 0,
                    "Notes": record.notes or "",
                }
            )
        df = pd.DataFrame(data, columns=EXPORT_COLUMNS)

        output = io.BytesIO()
        with pd.ExcelWriter(output, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="Attendance")
        output.seek(0)
        return output

    @staticmethod
    def _clock_time(value: Optional[datetime], school: School) -> str:
        if value is None:
            return ""
        return to_local(value, school.timezone).strftime("%H:%M")

    def get_record(self, daily_id: str) -> DailyAttendance:
        record = self._attendance.get_daily(daily_id)
        if not record:
            raise NotFoundError("Attendance record not found")
        return record

    def update_record(self, record: DailyAttendance, data: dict[str, Any], *, role: Role) -> DailyAttendance:
        """Manual override of a day's status and/or notes (e.g. EXCUSED)."""

        changes = self._override_changes(data, role)
        if not changes:
            raise ValidationError("Nothing to update")

        self._attendance.update_daily(record.id, changes)
        logger.info(
            "Attendance %s updated manually by %s: %s -> %s",
            record.id,
            role.value,
            record.status.value,
            changes.get("status", record.status).value,
        )
        return replace(record, **changes)

    def upsert_record(self, student: Student, data: dict[str, Any], *, role: Role) -> DailyAttendance:
        """Set a student's status for a day, creating the daily row when the student never scanned."""

        day = parse_iso_date(str(data.get("date") or ""))
        changes = self._override_changes(data, role)
        existing = self._attendance.get_daily_for_student(student.id, day)

        with self._attendance.transaction() as tx:
            if existing:
                if changes:
                    tx.update_daily(existing.id, changes)
                record = replace(existing, **changes)
            else:
                if "status" not in changes:
                    raise ValidationError("status is required")
                record = DailyAttendance(
                    id=new_id(),
                    school_id=student.school_id,
                    student_id=student.id,
                    date=day,
                    status=changes["status"],
                    notes=changes.get("notes"),
                )
                tx.create_daily(record)

        logger.info(
            "Attendance upsert student=%s date=%s by %s: %s -> %s",
            student.id,
            day.isoformat(),
            role.value,
            existing.status.value if existing else None,
            record.status.value,
        )
        return record

    def bulk_update(self, school_id: Optional[str], data: dict[str, Any]) -> int:
        """Apply one status (and optional notes) to many daily rows; rows of other schools are skipped."""

        ids = data.get("ids")
        if not isinstance(ids, list) or not ids:
            raise ValidationError("ids is required")
        if "status" not in data:
            raise ValidationError("status is required")
        changes = self._override_changes(data, Role.SCHOOL_ADMIN)

        updated = 0
        with self._attendance.transaction() as tx:
            for daily_id in dict.fromkeys(str(i) for i in ids):
                record = tx.get_daily(daily_id)
                if record is None or (school_id is not None and record.school_id != school_id):
                    continue
                tx.update_daily(daily_id, changes)
                updated += 1
        logger.info("Bulk attendance update school=%s status=%s rows=%s", school_id or "*", changes["status"].value, updated)
        return updated

    @staticmethod
    def _override_changes(data: dict[str, Any], role: Role) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        if data.get("status") is not None:
            try:
                status = AttendanceStatus(str(data.get("status") or "").upper())
            except ValueError:
                raise ValidationError("Invalid status")
            if role == Role.TEACHER and status != AttendanceStatus.EXCUSED:
                raise AuthorizationError("Teachers can only mark as EXCUSED")
            changes["status"] = status
            if status != AttendanceStatus.LATE:
                changes["late_minutes"] = None
        if "notes" in data:
            changes["notes"] = optional_str(data.get("notes"))
        return changes

    def student_history(self, student: Student, start: date, end: date) -> list[DailyAttendance]:
        if end < start:
            raise ValidationError("endDate must not be before startDate")
        rows = self._attendance.list_daily(student.school_id, start, end, student_ids=[student.id])
        return sorted(rows, key=lambda r: r.date, reverse=True)
