from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Sequence

from ..core.enums import AttendanceStatus, EventType
from ..core.exceptions import DuplicateKeyError
from ..database.mysql_base import MySQLRepository, fetchall, fetchone, from_json, in_clause, is_duplicate_key, new_id, to_json
from .model import AttendanceEvent, DailyAttendance
from .repository import AttendanceRepository

_DAILY_COLUMNS = (
    "id, school_id, student_id, date, status, first_scan_time, last_scan_time, late_minutes, "
    "last_in_time, last_out_time, currently_in_school, scan_count, total_time_on_premises, notes"
)
_DAILY_UPDATABLE = {
    "status",
    "first_scan_time",
    "last_scan_time",
    "late_minutes",
    "last_in_time",
    "last_out_time",
    "currently_in_school",
    "scan_count",
    "total_time_on_premises",
    "notes",
}
_EVENT_COLUMNS = "id, event_key, school_id, student_id, device_id, event_type, timestamp, raw_payload"


def _row_to_daily(row: dict) -> DailyAttendance:
    return DailyAttendance(
        id=row["id"],
        school_id=row["school_id"],
        student_id=row["student_id"],
        date=row["date"],
        status=AttendanceStatus(row["status"]),
        first_scan_time=row.get("first_scan_time"),
        last_scan_time=row.get("last_scan_time"),
        late_minutes=row.get("late_minutes"),
        last_in_time=row.get("last_in_time"),
        last_out_time=row.get("last_out_time"),
        currently_in_school=bool(row.get("currently_in_school")),
        scan_count=int(row.get("scan_count") or 0),
        total_time_on_premises=int(row.get("total_time_on_premises") or 0),
        notes=row.get("notes"),
    )


def _row_to_event(row: dict) -> AttendanceEvent:
    return AttendanceEvent(
        id=row["id"],
        event_key=row["event_key"],
        school_id=row["school_id"],
        student_id=row.get("student_id"),
        device_id=row.get("device_id"),
        event_type=EventType(row["event_type"]),
        timestamp=row["timestamp"],
        raw_payload=from_json(row.get("raw_payload")),
    )


def _db_value(value):
    if isinstance(value, AttendanceStatus):
        return value.value
    if isinstance(value, bool):
        return int(value)
    return value


class MySQLAttendanceRepository(MySQLRepository, AttendanceRepository):
    def create_event(self, event: AttendanceEvent) -> None:
        try:
            with self._cursor() as cur:
                cur.execute(
                    f"INSERT INTO attendance_events({_EVENT_COLUMNS}) VALUES(%s,%s,%s,%s,%s,%s,%s,%s)",
                    (
                        event.id,
                        event.event_key,
                        event.school_id,
                        event.student_id,
                        event.device_id,
                        event.event_type.value,
                        event.timestamp,
                        to_json(event.raw_payload),
                    ),
                )
        except Exception as e:
            if is_duplicate_key(e):
                raise DuplicateKeyError("attendance_events.event_key") from e
            raise

    def list_recent_events(self, school_id: str, *, limit: int = 10) -> Sequence[AttendanceEvent]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_EVENT_COLUMNS} FROM attendance_events
                WHERE school_id=%s
                ORDER BY timestamp DESC
                LIMIT %s
                """,
                (school_id, int(limit)),
            )
            return [_row_to_event(r) for r in fetchall(cur)]

    def purge_events(self, before: datetime) -> int:
        with self._cursor() as cur:
            cur.execute("DELETE FROM attendance_events WHERE timestamp < %s", (before,))
            return cur.rowcount

    def get_daily(self, daily_id: str) -> Optional[DailyAttendance]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_DAILY_COLUMNS} FROM daily_attendance WHERE id=%s", (daily_id,))
            row = fetchone(cur)
            return _row_to_daily(row) if row else None

    def get_daily_for_student(self, student_id: str, day: date) -> Optional[DailyAttendance]:
        sql = f"SELECT {_DAILY_COLUMNS} FROM daily_attendance WHERE student_id=%s AND date=%s"
        if self._cur is not None:
            sql += " FOR UPDATE"
        with self._cursor() as cur:
            cur.execute(sql, (student_id, day))
            row = fetchone(cur)
            return _row_to_daily(row) if row else None

    def create_daily(self, record: DailyAttendance) -> None:
        with self._cursor() as cur:
            cur.execute(
                f"INSERT INTO daily_attendance({_DAILY_COLUMNS}) VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)",
                (
                    record.id,
                    record.school_id,
                    record.student_id,
                    record.date,
                    record.status.value,
                    record.first_scan_time,
                    record.last_scan_time,
                    record.late_minutes,
                    record.last_in_time,
                    record.last_out_time,
                    int(record.currently_in_school),
                    record.scan_count,
                    record.total_time_on_premises,
                    record.notes,
                ),
            )

    def update_daily(self, daily_id: str, changes: dict) -> Optional[DailyAttendance]:
        fields = {k: _db_value(v) for k, v in changes.items() if k in _DAILY_UPDATABLE}
        if fields:
            assignments = ", ".join(f"{k}=%s" for k in fields)
            with self._cursor() as cur:
                cur.execute(f"UPDATE daily_attendance SET {assignments} WHERE id=%s", (*fields.values(), daily_id))
        return self.get_daily(daily_id)

    def list_daily(
        self,
        school_id: str,
        start: date,
        end: date,
        *,
        student_ids: Optional[Sequence[str]] = None,
    ) -> Sequence[DailyAttendance]:
        sql = f"SELECT {_DAILY_COLUMNS} FROM daily_attendance WHERE school_id=%s AND date BETWEEN %s AND %s"
        params: list = [school_id, start, end]
        if student_ids is not None:
            if not student_ids:
                return []
            sql += f" AND student_id IN ({in_clause(student_ids)})"
            params.extend(student_ids)
        with self._cursor() as cur:
            cur.execute(sql + " ORDER BY date, student_id", tuple(params))
            return [_row_to_daily(r) for r in fetchall(cur)]

    def create_absent_rows(self, school_id: str, student_ids: Sequence[str], day: date) -> int:
        created = 0
        with self._cursor() as cur:
            for student_id in student_ids:
                cur.execute(
                    """
                    INSERT IGNORE INTO daily_attendance(id, school_id, student_id, date, status, scan_count)
                    VALUES(%s,%s,%s,%s,'ABSENT',0)
                    """,
                    (new_id(), school_id, student_id, day),
                )
                created += cur.rowcount
        return created

    def close_open_days(self, school_id: str, before: date, note: str) -> int:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE daily_attendance
                SET currently_in_school=0, notes=%s
                WHERE school_id=%s AND date < %s AND currently_in_school=1
                """,
                (note, school_id, before),
            )
            return cur.rowcount
