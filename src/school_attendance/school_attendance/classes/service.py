from __future__ import annotations

import logging
from collections import Counter
from dataclasses import replace
from datetime import date
from typing import Any, Optional, Sequence

from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import now_utc
from ..common.validators import optional_str, require_hhmm, require_non_empty, require_non_negative_int
from ..core.constants import DEFAULT_CLASS_START_TIME, DEFAULT_GRADE_LEVEL
from ..core.enums import AttendanceStatus
from ..core.exceptions import ConflictError
from ..database.mysql_base import new_id
from ..students.repository import StudentRepository
from .model import SchoolClass
from .repository import ClassRepository

logger = logging.getLogger(__name__)


class ClassService:
    """Use case: class CRUD and today's per-class counters."""

    def __init__(self, classes: ClassRepository, students: StudentRepository, attendance: AttendanceRepository):
        self._classes = classes
        self._students = students
        self._attendance = attendance

    def list_with_counts(self, school_id: str, classes: Sequence[SchoolClass], *, today: date) -> list[dict]:
        totals = self._classes.count_active_students(school_id)
        students = self._students.list_active(school_id, class_ids=[c.id for c in classes])
        class_of = {s.id: s.class_id for s in students}

        per_class: dict[str, Counter] = {c.id: Counter() for c in classes}
        for row in self._attendance.list_daily(school_id, today, today, student_ids=list(class_of)):
            class_id = class_of.get(row.student_id)
            if class_id in per_class:
                per_class[class_id][row.status] += 1

        out: list[dict] = []
        for school_class in classes:
            counts = per_class[school_class.id]
            item = school_class.to_dict()
            item.update(
                {
                    "totalStudents": totals.get(school_class.id, 0),
                    "presentCount": counts[AttendanceStatus.PRESENT],
                    "lateCount": counts[AttendanceStatus.LATE],
                    "absentCount": counts[AttendanceStatus.ABSENT],
                    "excusedCount": counts[AttendanceStatus.EXCUSED],
                }
            )
            out.append(item)
        return out

    def create(self, school_id: str, data: dict[str, Any]) -> SchoolClass:
        school_class = SchoolClass(
            id=new_id(),
            school_id=school_id,
            name=require_non_empty(data.get("name"), "name"),
            grade_level=require_non_negative_int(data.get("gradeLevel", DEFAULT_GRADE_LEVEL), "gradeLevel"),
            start_time=require_hhmm(data.get("startTime") or DEFAULT_CLASS_START_TIME, "startTime"),
            end_time=require_hhmm(data["endTime"], "endTime") if data.get("endTime") else None,
            created_at=now_utc(),
        )
        self._classes.create(school_class)
        logger.info("Class created: %s school=%s", school_class.name, school_id)
        return school_class

    def create_missing(self, school_id: str, name: str) -> SchoolClass:
        return self.create(school_id, {"name": name})

    def update(self, school_class: SchoolClass, data: dict[str, Any]) -> SchoolClass:
        changes: dict[str, Optional[Any]] = {}
        if "name" in data:
            changes["name"] = require_non_empty(data.get("name"), "name")
        if "gradeLevel" in data:
            changes["grade_level"] = require_non_negative_int(data.get("gradeLevel"), "gradeLevel")
        if "startTime" in data:
            changes["start_time"] = require_hhmm(data.get("startTime"), "startTime")
        if "endTime" in data:
            end_time = optional_str(data.get("endTime"))
            changes["end_time"] = require_hhmm(end_time, "endTime") if end_time else None
        if changes:
            self._classes.update(school_class.id, changes)
        return replace(school_class, **changes)

    def delete(self, school_class: SchoolClass) -> None:
        totals = self._classes.count_active_students(school_class.school_id)
        if totals.get(school_class.id, 0) > 0:
            raise ConflictError("Class has active students")
        self._classes.delete(school_class.id)
        logger.info("Class deleted: %s school=%s", school_class.id, school_class.school_id)
