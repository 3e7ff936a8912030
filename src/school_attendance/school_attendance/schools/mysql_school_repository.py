from __future__ import annotations

from typing import Optional, Sequence

from ..database.mysql_base import MySQLRepository, fetchall, fetchone
from .model import School
from .repository import SchoolRepository

_COLUMNS = (
    "id, name, address, phone, email, timezone, late_threshold_minutes, absence_cutoff_minutes, "
    "webhook_secret_in, webhook_secret_out, created_at"
)

_UPDATABLE = {
    "name",
    "address",
    "phone",
    "email",
    "timezone",
    "late_threshold_minutes",
    "absence_cutoff_minutes",
    "webhook_secret_in",
    "webhook_secret_out",
}


def _row_to_school(row: dict) -> School:
    return School(
        id=row["id"],
        name=row["name"],
        address=row.get("address"),
        phone=row.get("phone"),
        email=row.get("email"),
        timezone=row.get("timezone") or "Asia/Tashkent",
        late_threshold_minutes=int(row.get("late_threshold_minutes") or 0),
        absence_cutoff_minutes=int(row.get("absence_cutoff_minutes") or 0),
        webhook_secret_in=row.get("webhook_secret_in"),
        webhook_secret_out=row.get("webhook_secret_out"),
        created_at=row.get("created_at"),
    )


class MySQLSchoolRepository(MySQLRepository, SchoolRepository):
    def get_by_id(self, school_id: str) -> Optional[School]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM schools WHERE id=%s", (school_id,))
            row = fetchone(cur)
            return _row_to_school(row) if row else None

    def list_all(self) -> Sequence[School]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM schools ORDER BY name")
            return [_row_to_school(r) for r in fetchall(cur)]

    def create(self, school: School) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO schools(id, name, address, phone, email, timezone,
                                    late_threshold_minutes, absence_cutoff_minutes,
                                    webhook_secret_in, webhook_secret_out)
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    school.id,
                    school.name,
                    school.address,
                    school.phone,
                    school.email,
                    school.timezone,
                    school.late_threshold_minutes,
                    school.absence_cutoff_minutes,
                    school.webhook_secret_in,
                    school.webhook_secret_out,
                ),
            )

    def update(self, school_id: str, changes: dict) -> bool:
        fields = {k: v for k, v in changes.items() if k in _UPDATABLE}
        if not fields:
            return False
        assignments = ", ".join(f"{k}=%s" for k in fields)
        with self._cursor() as cur:
            cur.execute(f"UPDATE schools SET {assignments} WHERE id=%s", (*fields.values(), school_id))
            return cur.rowcount > 0
