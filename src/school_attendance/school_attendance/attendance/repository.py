from __future__ import annotations

from datetime import date, datetime
from typing import ContextManager, Optional, Protocol, Sequence

from .model import AttendanceEvent, DailyAttendance


class AttendanceRepository(Protocol):
    """Scan events and per-day attendance rows.

    ``transaction()`` yields a repository whose calls commit or roll back together.
    """

    def transaction(self) -> ContextManager["AttendanceRepository"]:
        raise NotImplementedError

    def create_event(self, event: AttendanceEvent) -> None:
        """Raise ``DuplicateKeyError`` when ``event_key`` was already stored."""

        raise NotImplementedError

    def list_recent_events(self, school_id: str, *, limit: int = 10) -> Sequence[AttendanceEvent]:
        raise NotImplementedError

    def purge_events(self, before: datetime) -> int:
        raise NotImplementedError

    def get_daily(self, daily_id: str) -> Optional[DailyAttendance]:
        raise NotImplementedError

    def get_daily_for_student(self, student_id: str, day: date) -> Optional[DailyAttendance]:
        """Within a transaction the row is locked until commit."""

        raise NotImplementedError

    def create_daily(self, record: DailyAttendance) -> None:
        raise NotImplementedError

    def update_daily(self, daily_id: str, changes: dict) -> Optional[DailyAttendance]:
        raise NotImplementedError

    def list_daily(
        self,
        school_id: str,
        start: date,
        end: date,
        *,
        student_ids: Optional[Sequence[str]] = None,
    ) -> Sequence[DailyAttendance]:
        raise NotImplementedError

    def create_absent_rows(self, school_id: str, student_ids: Sequence[str], day: date) -> int:
        """Insert ABSENT rows, skipping students that already have one for ``day``."""

        raise NotImplementedError

    def close_open_days(self, school_id: str, before: date, note: str) -> int:
        raise NotImplementedError
