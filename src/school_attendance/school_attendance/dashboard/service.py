from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Optional, Sequence

from ..attendance.repository import AttendanceRepository
from ..attendance.status import calculate_attendance_percent, count_statuses, split_no_scan_counts_by_class
from ..classes.repository import ClassRepository
from ..common.datetime_utils import local_date, minutes_of_day, now_utc, to_local
from ..core.constants import RECENT_EVENTS_LIMIT
from ..schools.model import School
from ..schools.repository import SchoolRepository
from ..students.repository import StudentRepository

logger = logging.getLogger(__name__)


class DashboardService:
    """Use case: today's counters for one school and the super admin overview."""

    def __init__(
        self,
        schools: SchoolRepository,
        classes: ClassRepository,
        students: StudentRepository,
        attendance: AttendanceRepository,
    ):
        self._schools = schools
        self._classes = classes
        self._students = students
        self._attendance = attendance

    def school_summary(
        self,
        school: School,
        *,
        class_ids: Optional[Sequence[str]] = None,
        now: Optional[datetime] = None,
        include_details: bool = True,
    ) -> dict:
        now = now or now_utc()
        today = local_date(now, school.timezone)
        now_minutes = minutes_of_day(to_local(now, school.timezone))

        classes = [c for c in self._classes.list_by_school(school.id) if class_ids is None or c.id in class_ids]
        students = self._students.list_active(school.id, class_ids=class_ids)
        rows = {
            r.student_id: r
            for r in self._attendance.list_daily(school.id, today, today, student_ids=[s.id for s in students])
        } if students else {}

        counts = count_statuses(r.status for r in rows.values())
        no_scan = Counter(s.class_id for s in students if s.id not in rows)
        pending = split_no_scan_counts_by_class(
            no_scan,
            {c.id: c.start_time for c in classes},
            absence_cutoff_minutes=school.absence_cutoff_minutes,
            now_minutes=now_minutes,
        )
        total = len(students)
        summary = {
            "schoolId": school.id,
            "date": today.isoformat(),
            "totalStudents": total,
            "present": counts["present"],
            "late": counts["late"],
            "absent": counts["absent"] + pending["absent"],
            "excused": counts["excused"],
            "pendingEarly": pending["pendingEarly"],
            "pendingLate": pending["pendingLate"],
            "currentlyInSchool": sum(1 for r in rows.values() if r.currently_in_school),
            "attendancePercent": calculate_attendance_percent(counts["present"], counts["late"], total),
        }
        if not include_details:
            return summary

        by_class = {c.id: Counter() for c in classes}
        totals = Counter()
        for student in students:
            if student.class_id not in by_class:
                continue
            totals[student.class_id] += 1
            record = rows.get(student.id)
            if record:
                by_class[student.class_id][record.status.value] += 1
        summary["classBreakdown"] = [
            {
                "classId": c.id,
                "className": c.name,
                "totalStudents": totals[c.id],
                "present": by_class[c.id]["PRESENT"],
                "late": by_class[c.id]["LATE"],
                "absent": by_class[c.id]["ABSENT"],
                "excused": by_class[c.id]["EXCUSED"],
            }
            for c in classes
        ]
        summary["recentEvents"] = self._recent_events(school.id, class_ids)
        return summary

    def _recent_events(self, school_id: str, class_ids: Optional[Sequence[str]]) -> list[dict]:
        events = self._attendance.list_recent_events(school_id, limit=RECENT_EVENTS_LIMIT)
        out: list[dict] = []
        for event in events:
            student = self._students.get_by_id(event.student_id) if event.student_id else None
            if class_ids is not None and (student is None or student.class_id not in class_ids):
                continue
            item = event.to_dict()
            item["student"] = {"id": student.id, "name": student.name, "classId": student.class_id} if student else None
            out.append(item)
        return out

    def admin_summary(self, *, now: Optional[datetime] = None) -> dict:
        now = now or now_utc()
        schools = []
        totals = Counter()
        for school in self._schools.list_all():
            summary = self.school_summary(school, now=now, include_details=False)
            summary["name"] = school.name
            schools.append(summary)
            for key in ("totalStudents", "present", "late", "absent", "excused", "currentlyInSchool"):
                totals[key] += summary[key]
        return {
            "totals": {
                "schools": len(schools),
                "totalStudents": totals["totalStudents"],
                "present": totals["present"],
                "late": totals["late"],
                "absent": totals["absent"],
                "excused": totals["excused"],
                "currentlyInSchool": totals["currentlyInSchool"],
                "attendancePercent": calculate_attendance_percent(
                    totals["present"], totals["late"], totals["totalStudents"]
                ),
            },
            "schools": schools,
        }
