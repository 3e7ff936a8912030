from __future__ import annotations

import logging
import time
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Optional

from ..classes.model import SchoolClass
from ..classes.repository import ClassRepository
from ..common.datetime_utils import local_date, minutes_of_day, now_utc, parse_device_datetime, to_local, to_utc_naive
from ..common.validators import secret_matches
from ..core.constants import MAX_SESSION_MINUTES, MIN_SCAN_INTERVAL_SECONDS
from ..core.enums import AttendanceStatus, DeviceType, EventType
from ..core.exceptions import AuthorizationError, DuplicateKeyError, NotFoundError, ValidationError
from ..database.mysql_base import new_id
from ..devices.service import DeviceService
from ..realtime.broadcaster import EventBroadcaster
from ..schools.model import School
from ..schools.repository import SchoolRepository
from ..students.model import Student
from ..students.repository import StudentRepository
from .model import AttendanceEvent, DailyAttendance
from .repository import AttendanceRepository
from .status import classify_first_scan
from .webhook import build_event_key, normalize_event

logger = logging.getLogger("webhook")

DIRECTIONS = {"in": EventType.IN, "out": EventType.OUT}


class WebhookIngestService:
    """Use case: turn terminal scan webhooks into events and daily attendance rows."""

    def __init__(
        self,
        schools: SchoolRepository,
        students: StudentRepository,
        classes: ClassRepository,
        attendance: AttendanceRepository,
        devices: DeviceService,
        broadcaster: EventBroadcaster,
        *,
        min_scan_interval_seconds: int = MIN_SCAN_INTERVAL_SECONDS,
        enforce_secret: bool = False,
        uploads_dir: str = "uploads",
        clock: Callable[[], datetime] = now_utc,
    ):
        self._schools = schools
        self._students = students
        self._classes = classes
        self._attendance = attendance
        self._devices = devices
        self._broadcaster = broadcaster
        self._min_scan_interval = max(0, int(min_scan_interval_seconds))
        self._enforce_secret = enforce_secret
        self._uploads_dir = Path(uploads_dir)
        self._clock = clock

    def resolve_school(self, school_id: str, direction: str, provided_secret: Optional[str]) -> School:
        if direction not in DIRECTIONS:
            raise ValidationError("Invalid direction")
        school = self._schools.get_by_id(school_id)
        if not school:
            raise NotFoundError("School not found")
        if self._enforce_secret:
            expected = school.webhook_secret_in if direction == "in" else school.webhook_secret_out
            if not secret_matches(provided_secret, expected):
                logger.warning("Invalid webhook secret school=%s direction=%s", school_id, direction)
                raise AuthorizationError("Invalid webhook secret")
        return school

    def save_picture(self, content: bytes) -> Optional[str]:
        if not content:
            return None
        try:
            self._uploads_dir.mkdir(parents=True, exist_ok=True)
            path = self._uploads_dir / f"{int(time.time() * 1000)}-face.jpg"
            path.write_bytes(content)
        except OSError:
            logger.exception("Picture save error")
            return None
        return path.as_posix()

    def ingest(self, school: School, direction: str, access_event: Any, *, picture_path: Optional[str] = None) -> dict:
        normalized = normalize_event(access_event)
        if not normalized:
            logger.warning("Ignored webhook payload school=%s direction=%s", school.id, direction)
            return {"ok": True, "ignored": True}

        logger.info(
            "Webhook event school=%s direction=%s employeeNo=%s device=%s dateTime=%s",
            school.id,
            direction,
            normalized.employee_no,
            normalized.device_id,
            normalized.date_time,
        )

        event_type = DIRECTIONS[direction]
        event_time = to_utc_naive(parse_device_datetime(normalized.date_time), school.timezone)
        day = local_date(event_time, school.timezone)
        is_today = day == local_date(self._clock(), school.timezone)

        device = self._devices.resolve_for_webhook(
            school.id,
            normalized.device_id,
            seen_at=event_time,
            device_type=DeviceType.ENTRANCE if event_type == EventType.IN else DeviceType.EXIT,
        )
        student = self._students.get_by_device_student_id(school.id, normalized.employee_no)
        school_class = self._classes.get_by_id(student.class_id) if student and student.class_id else None

        raw_payload = dict(normalized.raw_payload)
        raw_payload["_savedPicture"] = picture_path
        event = AttendanceEvent(
            id=new_id(),
            event_key=build_event_key(normalized.device_id, normalized.employee_no, normalized.date_time, direction),
            school_id=school.id,
            student_id=student.id if student else None,
            device_id=device.id if device else None,
            event_type=event_type,
            timestamp=event_time,
            raw_payload=raw_payload,
        )

        try:
            with self._attendance.transaction() as tx:
                outcome = self._apply(tx, school, student, school_class, event, day)
        except DuplicateKeyError:
            logger.info("Duplicate event ignored key=%s", event.event_key)
            return {"ok": True, "ignored": True, "reason": "duplicate_event"}

        if outcome == "duplicate_scan":
            logger.info("Duplicate scan ignored student=%s type=%s", student.id if student else None, event_type.value)
            return {"ok": True, "ignored": True, "reason": "duplicate_scan"}

        if student and picture_path:
            try:
                self._students.update(student.id, {"photo_url": picture_path})
            except Exception:
                logger.exception("Failed to store scan picture for student=%s", student.id)

        payload = event.to_dict()
        payload["student"] = (
            {
                "id": student.id,
                "name": student.name,
                "classId": school_class.id if school_class else None,
                "class": {"name": school_class.name} if school_class else None,
            }
            if student
            else None
        )
        if is_today:
            self._broadcaster.publish_attendance(school.id, payload)
        return {"ok": True, "event": payload}

    def _apply(
        self,
        tx: AttendanceRepository,
        school: School,
        student: Optional[Student],
        school_class: Optional[SchoolClass],
        event: AttendanceEvent,
        day: date,
    ) -> str:
        at = event.timestamp
        existing = tx.get_daily_for_student(student.id, day) if student else None

        if existing is not None and self._is_duplicate_scan(existing, event):
            return "duplicate_scan"

        tx.create_event(event)
        if student is None:
            return "event_only"

        scan_minutes = minutes_of_day(to_local(at, school.timezone))

        if existing is not None:
            changes: dict[str, Any] = {"last_scan_time": at, "scan_count": existing.scan_count + 1}
            if event.event_type == EventType.IN:
                if not existing.first_scan_time and school_class:
                    status, late = classify_first_scan(
                        scan_minutes=scan_minutes,
                        class_start_time=school_class.start_time,
                        late_threshold_minutes=school.late_threshold_minutes,
                        absence_cutoff_minutes=school.absence_cutoff_minutes,
                        existing_status=existing.status,
                    )
                    changes["status"] = status
                    changes["late_minutes"] = late
                if not existing.first_scan_time:
                    changes["first_scan_time"] = at
                changes["last_in_time"] = at
                changes["currently_in_school"] = True
            else:
                changes["last_out_time"] = at
                changes["currently_in_school"] = False
                if existing.last_in_time and existing.currently_in_school:
                    minutes = round((at - existing.last_in_time).total_seconds() / 60)
                    if 0 < minutes < MAX_SESSION_MINUTES:
                        changes["total_time_on_premises"] = (existing.total_time_on_premises or 0) + minutes
            tx.update_daily(existing.id, changes)
            return "updated"

        status, late = AttendanceStatus.PRESENT, None
        if event.event_type == EventType.IN and school_class:
            status, late = classify_first_scan(
                scan_minutes=scan_minutes,
                class_start_time=school_class.start_time,
                late_threshold_minutes=school.late_threshold_minutes,
                absence_cutoff_minutes=school.absence_cutoff_minutes,
            )
        is_in = event.event_type == EventType.IN
        tx.create_daily(
            DailyAttendance(
                id=new_id(),
                school_id=school.id,
                student_id=student.id,
                date=day,
                status=status,
                first_scan_time=at if is_in else None,
                last_scan_time=at,
                late_minutes=late,
                last_in_time=at if is_in else None,
                last_out_time=None if is_in else at,
                currently_in_school=is_in,
                scan_count=1,
                notes=None if is_in else "OUT before first IN",
            )
        )
        return "created"

    def _is_duplicate_scan(self, existing: DailyAttendance, event: AttendanceEvent) -> bool:
        if event.event_type == EventType.IN and existing.currently_in_school and existing.last_in_time:
            return (event.timestamp - existing.last_in_time).total_seconds() < self._min_scan_interval
        if event.event_type == EventType.OUT and not existing.currently_in_school and existing.last_out_time:
            return (event.timestamp - existing.last_out_time).total_seconds() < self._min_scan_interval
        return False
