from __future__ import annotations

import io
import logging
import math
from datetime import date, datetime
from typing import Any, Optional, Sequence

from ..attendance.repository import AttendanceRepository
from ..attendance.status import calculate_attendance_percent, compute_attendance_status
from ..classes.repository import ClassRepository
from ..classes.service import ClassService
from ..common.datetime_utils import date_range_for_period, local_date, minutes_of_day, now_utc, to_local
from ..common.names import build_full_name, normalize_gender, normalize_name_part
from ..common.serialization import iso
from ..common.validators import optional_str
from ..core.constants import IMPORT_CHUNK_SIZE, IMPORT_MAX_FILE_BYTES, STUDENTS_PAGE_SIZE
from ..core.enums import AttendanceStatus, EffectiveStatus
from ..core.exceptions import ConflictError, DuplicateKeyError, ValidationError
from ..database.mysql_base import new_id
from ..schools.model import School
from .excel import XLSX_MIMETYPE, parse_import_rows, read_sheet, roster_record, write_roster
from .face_image import save_face_image
from .model import Student
from .repository import StudentRepository

logger = logging.getLogger(__name__)

DUPLICATE_IN_CLASS = "Duplicate student in class"


class StudentService:
    """Use case: roster listing, edits, soft delete and spreadsheet import/export."""

    def __init__(
        self,
        students: StudentRepository,
        classes: ClassRepository,
        attendance: AttendanceRepository,
        class_service: ClassService,
        *,
        uploads_dir: str = "uploads",
        max_import_bytes: int = IMPORT_MAX_FILE_BYTES,
    ):
        self._students = students
        self._classes = classes
        self._attendance = attendance
        self._class_service = class_service
        self._uploads_dir = uploads_dir
        self._max_import_bytes = max_import_bytes

    # Listing
    def list_students(
        self,
        school: School,
        *,
        page: int = 1,
        search: Optional[str] = None,
        class_ids: Optional[Sequence[str]] = None,
        period: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        now = now or now_utc()
        page = max(1, int(page or 1))
        today = local_date(now, school.timezone)
        start, end = date_range_for_period(period, today=today, start=start_date, end=end_date)
        single_day = start == end
        is_today = single_day and start == today
        now_minutes = minutes_of_day(to_local(now, school.timezone))

        students, total = self._students.search(
            school.id,
            class_ids=class_ids,
            search=(search or "").strip() or None,
            offset=(page - 1) * STUDENTS_PAGE_SIZE,
            limit=STUDENTS_PAGE_SIZE,
        )
        classes = {c.id: c for c in self._classes.list_by_school(school.id)}

        records: dict[str, list] = {s.id: [] for s in students}
        if students:
            for row in self._attendance.list_daily(school.id, start, end, student_ids=list(records)):
                records.setdefault(row.student_id, []).append(row)

        items: list[dict] = []
        for student in students:
            rows = sorted(records.get(student.id, []), key=lambda r: r.date)
            statuses = [r.status for r in rows]
            present = statuses.count(AttendanceStatus.PRESENT)
            late = statuses.count(AttendanceStatus.LATE)
            last = rows[-1] if rows else None
            school_class = classes.get(student.class_id) if student.class_id else None

            item = student.to_dict()
            item["class"] = school_class.to_dict() if school_class else None
            if single_day:
                if is_today:
                    effective = compute_attendance_status(
                        last.status if last else None,
                        school_class.start_time if school_class else None,
                        school.absence_cutoff_minutes,
                        now_minutes,
                    )
                elif last:
                    effective = EffectiveStatus(last.status.value)
                else:
                    effective = EffectiveStatus.ABSENT if start < today else EffectiveStatus.PENDING_EARLY
                item["todayStatus"] = last.status.value if last else None
                item["todayFirstScan"] = iso(last.first_scan_time) if last else None
                item["todayEffectiveStatus"] = effective.value
                item["periodStats"] = None
            else:
                item["todayStatus"] = None
                item["todayFirstScan"] = None
                item["todayEffectiveStatus"] = None
                item["periodStats"] = {
                    "presentCount": present,
                    "lateCount": late,
                    "absentCount": statuses.count(AttendanceStatus.ABSENT),
                    "excusedCount": statuses.count(AttendanceStatus.EXCUSED),
                    "totalDays": len(rows),
                    "attendancePercent": calculate_attendance_percent(present, late, len(rows)),
                }
            items.append(item)

        return {
            "data": items,
            "total": total,
            "page": page,
            "totalPages": math.ceil(total / STUDENTS_PAGE_SIZE) if total else 0,
            "period": {"startDate": start.isoformat(), "endDate": end.isoformat(), "isSingleDay": single_day},
            "stats": self._overall(items, total, single_day),
        }

    @staticmethod
    def _overall(items: Sequence[dict], total: int, single_day: bool) -> dict:
        if single_day:
            def count(key: str, value: str) -> int:
                return sum(1 for i in items if i.get(key) == value)

            early = count("todayEffectiveStatus", EffectiveStatus.PENDING_EARLY.value)
            late_pending = count("todayEffectiveStatus", EffectiveStatus.PENDING_LATE.value)
            return {
                "total": total,
                "present": count("todayStatus", "PRESENT"),
                "late": count("todayStatus", "LATE"),
                "absent": count("todayStatus", "ABSENT"),
                "excused": count("todayStatus", "EXCUSED"),
                "pending": early + late_pending,
                "pendingEarly": early,
                "pendingLate": late_pending,
            }

        def add(key: str) -> int:
            return sum((i.get("periodStats") or {}).get(key, 0) for i in items)

        return {
            "total": total,
            "present": add("presentCount"),
            "late": add("lateCount"),
            "absent": add("absentCount"),
            "excused": add("excusedCount"),
            "pending": 0,
            "pendingEarly": 0,
            "pendingLate": 0,
        }

    # Edits
    def update(self, student: Student, data: dict[str, Any]) -> Student:
        first_name = normalize_name_part(data.get("firstName"))
        last_name = normalize_name_part(data.get("lastName"))
        if not first_name or not last_name:
            raise ValidationError("First name and last name are required")

        class_id = optional_str(data.get("classId"))
        if not class_id:
            raise ValidationError("Class is required")
        school_class = self._classes.get_by_id(class_id)
        if not school_class or school_class.school_id != student.school_id:
            raise ValidationError("Class not found")

        changes: dict[str, Any] = {
            "name": build_full_name(last_name, first_name),
            "first_name": first_name,
            "last_name": last_name,
            "father_name": normalize_name_part(data.get("fatherName")) or None,
            "class_id": class_id,
        }
        if "gender" in data:
            gender = normalize_gender(data.get("gender"))
            if gender is None:
                raise ValidationError("Invalid gender")
            changes["gender"] = gender
        if "parentPhone" in data:
            changes["parent_phone"] = optional_str(data.get("parentPhone"))
        if "deviceStudentId" in data:
            changes["device_student_id"] = optional_str(data.get("deviceStudentId"))

        duplicate = self._students.find_duplicate_in_class(
            school_id=student.school_id,
            class_id=class_id,
            first_name=first_name,
            last_name=last_name,
            full_name=changes["name"],
            exclude_id=student.id,
        )
        if duplicate:
            raise ConflictError(DUPLICATE_IN_CLASS)

        if data.get("faceImageBase64"):
            changes["photo_url"] = save_face_image(self._uploads_dir, student.id, data["faceImageBase64"])

        try:
            updated = self._students.update(student.id, changes)
        except DuplicateKeyError:
            raise ValidationError("Device ID already in use")
        logger.info("Student updated: %s school=%s", student.id, student.school_id)
        return updated or student

    def delete(self, student: Student) -> None:
        self._students.update(student.id, {"is_active": False})
        logger.info("Student deactivated: %s school=%s", student.id, student.school_id)

    # Spreadsheets
    def import_excel(
        self,
        school_id: str,
        *,
        content: bytes,
        filename: str,
        mimetype: Optional[str] = None,
        create_missing_class: bool = False,
    ) -> dict:
        if not content:
            raise ValidationError("No file uploaded")
        if not (filename or "").lower().endswith(".xlsx"):
            raise ValidationError("Invalid file type")
        if mimetype and mimetype.lower() not in (XLSX_MIMETYPE, "application/octet-stream"):
            raise ValidationError("Invalid file type")
        if len(content) > self._max_import_bytes:
            raise ValidationError("File too large")

        classes = {c.name.strip().lower(): c for c in self._classes.list_by_school(school_id)}
        parsed = parse_import_rows(
            read_sheet(content),
            set(classes),
            allow_create_missing_class=create_missing_class,
        )

        if create_missing_class:
            for name in parsed.missing_class_names:
                school_class = self._class_service.create_missing(school_id, name)
                classes[school_class.name.strip().lower()] = school_class

        class_ids = list({classes[r.class_name.lower()].id for r in parsed.rows if r.class_name.lower() in classes})
        existing = {
            f"{s.class_id}|{s.last_name.lower()}|{s.first_name.lower()}": s
            for s in (self._students.list_active(school_id, class_ids=class_ids) if class_ids else [])
        }

        pending: list[Student] = []
        for row in parsed.rows:
            school_class = classes.get(row.class_name.lower()) if row.class_name else None
            class_id = school_class.id if school_class else None
            if class_id:
                clash = existing.get(f"{class_id}|{row.last_name.lower()}|{row.first_name.lower()}")
                if clash and clash.device_student_id != row.device_student_id:
                    parsed.skip(row.row, DUPLICATE_IN_CLASS)
                    continue
            pending.append(
                Student(
                    id=new_id(),
                    school_id=school_id,
                    class_id=class_id,
                    device_student_id=row.device_student_id,
                    name=row.name,
                    first_name=row.first_name,
                    last_name=row.last_name,
                    father_name=row.father_name or None,
                    gender=row.gender,
                    parent_phone=row.parent_phone or None,
                    is_active=True,
                )
            )

        imported = 0
        for offset in range(0, len(pending), IMPORT_CHUNK_SIZE):
            chunk = pending[offset : offset + IMPORT_CHUNK_SIZE]
            with self._students.transaction() as tx:
                for student in chunk:
                    tx.upsert_by_device_student_id(student)
            imported += len(chunk)

        logger.info("Excel import school=%s imported=%s skipped=%s", school_id, imported, parsed.skipped)
        return {"imported": imported, "skipped": parsed.skipped, "errors": parsed.errors}

    def template(self, school_id: str) -> io.BytesIO:
        class_names = [c.name for c in self._classes.list_by_school(school_id)]
        return write_roster([], class_names)

    def export(self, school_id: str, *, class_ids: Optional[Sequence[str]] = None) -> io.BytesIO:
        classes = self._classes.list_by_school(school_id)
        names = {c.id: c.name for c in classes}
        students = self._students.list_active(school_id, class_ids=class_ids)
        records = [roster_record(s, names.get(s.class_id) if s.class_id else None) for s in students]
        return write_roster(records, [c.name for c in classes])

    @staticmethod
    def export_filename(prefix: str, day: Optional[date] = None) -> str:
        return f"{prefix}_{(day or now_utc().date()).strftime('%Y%m%d')}.xlsx"
