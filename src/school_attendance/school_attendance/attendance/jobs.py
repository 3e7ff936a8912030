"""Periodic maintenance jobs (run by ``scripts/run_jobs.py``)."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from ..classes.repository import ClassRepository
from ..common.datetime_utils import hhmm_to_minutes, local_date, minutes_of_day, now_utc, to_local
from ..core.constants import EVENT_RETENTION_DAYS
from ..devices.service import DeviceService
from ..schools.repository import SchoolRepository
from ..students.repository import StudentRepository
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)

AUTO_CLOSE_NOTE = "Auto-closed at end of day"


class AttendanceJobs:
    def __init__(
        self,
        schools: SchoolRepository,
        classes: ClassRepository,
        students: StudentRepository,
        attendance: AttendanceRepository,
        devices: DeviceService,
    ):
        self._schools = schools
        self._classes = classes
        self._students = students
        self._attendance = attendance
        self._devices = devices

    def mark_absent(self, now: Optional[datetime] = None) -> int:
        """Write ABSENT rows for students of classes whose absence cutoff has passed."""

        now = now or now_utc()
        total = 0
        for school in self._schools.list_all():
            today = local_date(now, school.timezone)
            now_minutes = minutes_of_day(to_local(now, school.timezone))

            closed = []
            for school_class in self._classes.list_by_school(school.id):
                start = hhmm_to_minutes(school_class.start_time)
                if start is not None and now_minutes >= start + school.absence_cutoff_minutes:
                    closed.append(school_class.id)
            if not closed:
                continue

            students = self._students.list_active(school.id, class_ids=closed)
            if not students:
                continue
            created = self._attendance.create_absent_rows(school.id, [s.id for s in students], today)
            if created:
                logger.info("Marked %s students absent school=%s date=%s", created, school.id, today)
            total += created
        return total

    def close_open_days(self, now: Optional[datetime] = None) -> int:
        """Close earlier days whose students never scanned out."""

        now = now or now_utc()
        total = 0
        for school in self._schools.list_all():
            today = local_date(now, school.timezone)
            closed = self._attendance.close_open_days(school.id, today, AUTO_CLOSE_NOTE)
            if closed:
                logger.info("Auto-closed %s open days school=%s", closed, school.id)
            total += closed
        return total

    def refresh_device_health(self, now: Optional[datetime] = None) -> dict:
        return self._devices.refresh_health(now or now_utc())

    def purge_old_events(self, now: Optional[datetime] = None, days: int = EVENT_RETENTION_DAYS) -> int:
        before = (now or now_utc()) - timedelta(days=days)
        removed = self._attendance.purge_events(before)
        logger.info("Purged %s attendance events older than %s", removed, before.isoformat())
        return removed

    def run_all(self, now: Optional[datetime] = None) -> dict:
        now = now or now_utc()
        return {
            "absent": self.mark_absent(now),
            "closed": self.close_open_days(now),
            "devices": self.refresh_device_health(now),
            "purged": self.purge_old_events(now),
        }
