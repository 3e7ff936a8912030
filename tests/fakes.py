"""In-memory repositories shared by the tests."""
from __future__ import annotations

import copy
from contextlib import contextmanager
from dataclasses import fields, replace
from datetime import date, datetime
from typing import Optional, Sequence

from src.school_attendance.school_attendance.attendance.model import AttendanceEvent, DailyAttendance
from src.school_attendance.school_attendance.classes.model import SchoolClass
from src.school_attendance.school_attendance.core.enums import AttendanceStatus
from src.school_attendance.school_attendance.core.exceptions import DuplicateKeyError
from src.school_attendance.school_attendance.database.mysql_base import new_id
from src.school_attendance.school_attendance.devices.model import Device
from src.school_attendance.school_attendance.schools.model import School
from src.school_attendance.school_attendance.students.model import (
    ProvisioningLog,
    Student,
    StudentDeviceLink,
    StudentProvisioning,
)
from src.school_attendance.school_attendance.users.model import User


def _apply(obj, changes: dict):
    names = {f.name for f in fields(obj)}
    return replace(obj, **{k: v for k, v in changes.items() if k in names})


class _Transactional:
    """Snapshot the state on enter and restore it when the block raises."""

    _state: tuple = ()

    @contextmanager
    def transaction(self):
        saved = {name: copy.copy(getattr(self, name)) for name in self._state}
        try:
            yield self
        except BaseException:
            for name, value in saved.items():
                setattr(self, name, value)
            raise


class InMemorySchools:
    def __init__(self, *schools: School):
        self.items: dict[str, School] = {s.id: s for s in schools}

    def get_by_id(self, school_id: str) -> Optional[School]:
        return self.items.get(school_id)

    def list_all(self) -> Sequence[School]:
        return sorted(self.items.values(), key=lambda s: s.name)

    def create(self, school: School) -> None:
        self.items[school.id] = school

    def update(self, school_id: str, changes: dict) -> bool:
        if school_id not in self.items:
            return False
        self.items[school_id] = _apply(self.items[school_id], changes)
        return True


class InMemoryUsers:
    def __init__(self, *users: User):
        self.items: dict[str, User] = {u.id: u for u in users}
        self.teacher_classes: dict[str, list[str]] = {}

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self.items.get(user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return next((u for u in self.items.values() if u.email == email), None)

    def list_by_school(self, school_id: str) -> Sequence[User]:
        return [u for u in self.items.values() if u.school_id == school_id]

    def create(self, user: User) -> None:
        if self.get_by_email(user.email):
            raise DuplicateKeyError("users.email")
        self.items[user.id] = user

    def list_teacher_class_ids(self, teacher_id: str) -> list[str]:
        return list(self.teacher_classes.get(teacher_id, []))

    def set_teacher_classes(self, teacher_id: str, class_ids: Sequence[str]) -> None:
        self.teacher_classes[teacher_id] = list(class_ids)


class InMemoryClasses:
    def __init__(self, *classes: SchoolClass, students: Optional["InMemoryStudents"] = None):
        self.items: dict[str, SchoolClass] = {c.id: c for c in classes}
        self.students = students

    def get_by_id(self, class_id: str) -> Optional[SchoolClass]:
        return self.items.get(class_id)

    def list_by_school(self, school_id: str) -> Sequence[SchoolClass]:
        items = [c for c in self.items.values() if c.school_id == school_id]
        return sorted(items, key=lambda c: (c.grade_level, c.name))

    def list_all(self) -> Sequence[SchoolClass]:
        return list(self.items.values())

    def create(self, school_class: SchoolClass) -> None:
        self.items[school_class.id] = school_class

    def update(self, class_id: str, changes: dict) -> bool:
        if class_id not in self.items:
            return False
        self.items[class_id] = _apply(self.items[class_id], changes)
        return True

    def delete(self, class_id: str) -> bool:
        return self.items.pop(class_id, None) is not None

    def count_active_students(self, school_id: str) -> dict[str, int]:
        out: dict[str, int] = {}
        if self.students is None:
            return out
        for s in self.students.list_active(school_id):
            if s.class_id:
                out[s.class_id] = out.get(s.class_id, 0) + 1
        return out


class InMemoryDevices:
    def __init__(self, *devices: Device, attendance: Optional["InMemoryAttendance"] = None):
        self.items: dict[str, Device] = {d.id: d for d in devices}
        self.attendance = attendance

    def get_by_id(self, device_id: str) -> Optional[Device]:
        return self.items.get(device_id)

    def get_by_external_id(self, external_id: str) -> Optional[Device]:
        return next((d for d in self.items.values() if d.device_id == external_id), None)

    def list_by_school(self, school_id: str, *, active_only: bool = False) -> Sequence[Device]:
        return [
            d for d in self.items.values() if d.school_id == school_id and (d.is_active or not active_only)
        ]

    def list_all(self) -> Sequence[Device]:
        return list(self.items.values())

    def create(self, device: Device) -> None:
        if self.get_by_external_id(device.device_id):
            raise DuplicateKeyError("devices.device_id")
        self.items[device.id] = device

    def update(self, device_id: str, changes: dict) -> bool:
        if device_id not in self.items:
            return False
        self.items[device_id] = _apply(self.items[device_id], changes)
        return True

    def delete(self, device_id: str) -> bool:
        return self.items.pop(device_id, None) is not None

    def mark_seen(self, device_id: str, seen_at: datetime) -> None:
        self.update(device_id, {"last_seen_at": seen_at, "is_active": True})

    def set_active(self, device_ids: Sequence[str], *, is_active: bool) -> int:
        for device_id in device_ids:
            self.update(device_id, {"is_active": is_active})
        return len(device_ids)

    def last_event_at(self, device_id: str) -> Optional[datetime]:
        if self.attendance is None:
            return None
        times = [e.timestamp for e in self.attendance.events.values() if e.device_id == device_id]
        return max(times) if times else None


class InMemoryStudents(_Transactional):
    _state = ("items", "provisionings", "links")

    def __init__(self, *students: Student):
        self.items: dict[str, Student] = {s.id: s for s in students}
        self.provisionings: dict[str, StudentProvisioning] = {}
        self.links: dict[tuple[str, str], StudentDeviceLink] = {}

    def get_by_id(self, student_id: str) -> Optional[Student]:
        return self.items.get(student_id)

    def get_by_device_student_id(self, school_id: str, device_student_id: str) -> Optional[Student]:
        return next(
            (
                s
                for s in self.items.values()
                if s.school_id == school_id and s.device_student_id == device_student_id
            ),
            None,
        )

    def list_by_device_student_ids(self, school_id: str, device_student_ids: Sequence[str]) -> Sequence[Student]:
        wanted = set(device_student_ids)
        return [s for s in self.items.values() if s.school_id == school_id and s.device_student_id in wanted]

    def list_active(self, school_id: str, *, class_ids: Optional[Sequence[str]] = None) -> Sequence[Student]:
        items = [
            s
            for s in self.items.values()
            if s.school_id == school_id and s.is_active and (class_ids is None or s.class_id in class_ids)
        ]
        return sorted(items, key=lambda s: (s.last_name, s.first_name))

    def search(self, school_id, *, class_ids=None, search=None, offset=0, limit=50):
        items = list(self.list_active(school_id, class_ids=class_ids))
        if search:
            needle = search.lower()
            items = [s for s in items if needle in s.name.lower() or needle in (s.device_student_id or "")]
        return items[offset : offset + limit], len(items)

    def find_duplicate_in_class(self, *, school_id, class_id, first_name, last_name, full_name, exclude_id=None):
        for s in self.items.values():
            if s.school_id != school_id or s.class_id != class_id or not s.is_active or s.id == exclude_id:
                continue
            same_parts = s.first_name.lower() == first_name.lower() and s.last_name.lower() == last_name.lower()
            if s.name.lower() == full_name.lower() or same_parts:
                return s
        return None

    def _check_unique(self, student: Student) -> None:
        if not student.device_student_id:
            return
        other = self.get_by_device_student_id(student.school_id, student.device_student_id)
        if other and other.id != student.id:
            raise DuplicateKeyError("students.device_student_id")

    def create(self, student: Student) -> None:
        self._check_unique(student)
        self.items[student.id] = student

    def update(self, student_id: str, changes: dict) -> Optional[Student]:
        student = self.items.get(student_id)
        if student is None:
            return None
        updated = _apply(student, changes)
        self._check_unique(updated)
        self.items[student_id] = updated
        return updated

    def upsert_by_device_student_id(self, student: Student):
        previous = self.get_by_device_student_id(student.school_id, student.device_student_id)
        if previous is None:
            self.create(student)
            return student, None
        saved = self.update(
            previous.id,
            {
                "name": student.name,
                "first_name": student.first_name,
                "last_name": student.last_name,
                "father_name": student.father_name,
                "class_id": student.class_id,
                "parent_phone": student.parent_phone,
                "gender": student.gender,
                "is_active": True,
            },
        )
        return saved, previous

    def set_sync_status(self, student_id: str, status: str, at: datetime) -> None:
        self.update(student_id, {"device_sync_status": status, "device_sync_updated_at": at})

    def get_provisioning(self, provisioning_id: str) -> Optional[StudentProvisioning]:
        return self.provisionings.get(provisioning_id)

    def get_provisioning_by_request(self, school_id: str, request_id: str) -> Optional[StudentProvisioning]:
        return next(
            (p for p in self.provisionings.values() if p.school_id == school_id and p.request_id == request_id),
            None,
        )

    def create_provisioning(self, provisioning: StudentProvisioning) -> None:
        if provisioning.request_id and self.get_provisioning_by_request(provisioning.school_id, provisioning.request_id):
            raise DuplicateKeyError("student_provisioning.request_id")
        self.provisionings[provisioning.id] = provisioning

    def update_provisioning(self, provisioning_id: str, *, status: str, last_error: Optional[str]) -> None:
        current = self.provisionings[provisioning_id]
        self.provisionings[provisioning_id] = replace(
            current, status=type(current.status)(status), last_error=last_error
        )

    def list_links(self, provisioning_id: str) -> Sequence[StudentDeviceLink]:
        return [l for (pid, _), l in self.links.items() if pid == provisioning_id]

    def get_link(self, provisioning_id: str, device_id: str) -> Optional[StudentDeviceLink]:
        return self.links.get((provisioning_id, device_id))

    def save_link(self, link: StudentDeviceLink) -> None:
        self.links[(link.provisioning_id, link.device_id)] = link


class InMemoryAttendance(_Transactional):
    _state = ("events", "daily")

    def __init__(self):
        self.events: dict[str, AttendanceEvent] = {}
        self.daily: dict[str, DailyAttendance] = {}

    def create_event(self, event: AttendanceEvent) -> None:
        if any(e.event_key == event.event_key for e in self.events.values()):
            raise DuplicateKeyError("attendance_events.event_key")
        self.events[event.id] = event

    def list_recent_events(self, school_id: str, *, limit: int = 10) -> Sequence[AttendanceEvent]:
        items = [e for e in self.events.values() if e.school_id == school_id]
        return sorted(items, key=lambda e: e.timestamp, reverse=True)[:limit]

    def purge_events(self, before: datetime) -> int:
        old = [k for k, e in self.events.items() if e.timestamp < before]
        for key in old:
            del self.events[key]
        return len(old)

    def get_daily(self, daily_id: str) -> Optional[DailyAttendance]:
        return self.daily.get(daily_id)

    def get_daily_for_student(self, student_id: str, day: date) -> Optional[DailyAttendance]:
        return next((r for r in self.daily.values() if r.student_id == student_id and r.date == day), None)

    def create_daily(self, record: DailyAttendance) -> None:
        if self.get_daily_for_student(record.student_id, record.date):
            raise DuplicateKeyError("daily_attendance.student_date")
        self.daily[record.id] = record

    def update_daily(self, daily_id: str, changes: dict) -> Optional[DailyAttendance]:
        if daily_id not in self.daily:
            return None
        self.daily[daily_id] = _apply(self.daily[daily_id], changes)
        return self.daily[daily_id]

    def list_daily(self, school_id, start, end, *, student_ids=None) -> Sequence[DailyAttendance]:
        return [
            r
            for r in self.daily.values()
            if r.school_id == school_id
            and start <= r.date <= end
            and (student_ids is None or r.student_id in student_ids)
        ]

    def create_absent_rows(self, school_id: str, student_ids: Sequence[str], day: date) -> int:
        created = 0
        for student_id in student_ids:
            if self.get_daily_for_student(student_id, day):
                continue
            self.create_daily(
                DailyAttendance(
                    id=new_id(),
                    school_id=school_id,
                    student_id=student_id,
                    date=day,
                    status=AttendanceStatus.ABSENT,
                )
            )
            created += 1
        return created

    def close_open_days(self, school_id: str, before: date, note: str) -> int:
        closed = 0
        for record in list(self.daily.values()):
            if record.school_id == school_id and record.date < before and record.currently_in_school:
                self.daily[record.id] = replace(record, currently_in_school=False, notes=note)
                closed += 1
        return closed


class InMemoryProvisioningLogs:
    def __init__(self):
        self.items: list[ProvisioningLog] = []

    def create(self, log: ProvisioningLog) -> None:
        self.items.append(log)

    def list_by_provisioning(self, provisioning_id: str, *, limit: int = 200) -> Sequence[ProvisioningLog]:
        return [l for l in reversed(self.items) if l.provisioning_id == provisioning_id][:limit]

    def list_by_school(self, school_id, *, level=None, stage=None, student_id=None, limit=200):
        out = [
            l
            for l in reversed(self.items)
            if l.school_id == school_id
            and (level is None or l.level.value == level)
            and (stage is None or l.stage == stage)
            and (student_id is None or l.student_id == student_id)
        ]
        return out[:limit]

    def stages(self) -> list[str]:
        return [l.stage for l in self.items]
