from __future__ import annotations

from typing import Optional, Sequence

from ..database.mysql_base import MySQLRepository, fetchall, fetchone
from .model import SchoolClass
from .repository import ClassRepository

_COLUMNS = "id, school_id, name, grade_level, start_time, end_time, created_at"
_UPDATABLE = {"name", "grade_level", "start_time", "end_time"}


def _row_to_class(row: dict) -> SchoolClass:
    return SchoolClass(
        id=row["id"],
        school_id=row["school_id"],
        name=row["name"],
        grade_level=int(row.get("grade_level") or 0),
        start_time=str(row.get("start_time") or "")[:5],
        end_time=str(row["end_time"])[:5] if row.get("end_time") else None,
        created_at=row.get("created_at"),
    )


class MySQLClassRepository(MySQLRepository, ClassRepository):
    def get_by_id(self, class_id: str) -> Optional[SchoolClass]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM classes WHERE id=%s", (class_id,))
            row = fetchone(cur)
            return _row_to_class(row) if row else None

    def list_by_school(self, school_id: str) -> Sequence[SchoolClass]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM classes WHERE school_id=%s ORDER BY grade_level, name",
                (school_id,),
            )
            return [_row_to_class(r) for r in fetchall(cur)]

    def list_all(self) -> Sequence[SchoolClass]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM classes")
            return [_row_to_class(r) for r in fetchall(cur)]

    def create(self, school_class: SchoolClass) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO classes(id, school_id, name, grade_level, start_time, end_time)
                VALUES(%s,%s,%s,%s,%s,%s)
                """,
                (
                    school_class.id,
                    school_class.school_id,
                    school_class.name,
                    school_class.grade_level,
                    school_class.start_time,
                    school_class.end_time,
                ),
            )

    def update(self, class_id: str, changes: dict) -> bool:
        fields = {k: v for k, v in changes.items() if k in _UPDATABLE}
        if not fields:
            return False
        assignments = ", ".join(f"{k}=%s" for k in fields)
        with self._cursor() as cur:
            cur.execute(f"UPDATE classes SET {assignments} WHERE id=%s", (*fields.values(), class_id))
            return cur.rowcount > 0

    def delete(self, class_id: str) -> bool:
        with self._cursor() as cur:
            cur.execute("DELETE FROM classes WHERE id=%s", (class_id,))
            return cur.rowcount > 0

    def count_active_students(self, school_id: str) -> dict[str, int]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT class_id, COUNT(*) AS total
                FROM students
                WHERE school_id=%s AND is_active=1 AND class_id IS NOT NULL
                GROUP BY class_id
                """,
                (school_id,),
            )
            return {r["class_id"]: int(r["total"]) for r in fetchall(cur)}
