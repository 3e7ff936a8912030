from __future__ import annotations

from typing import Optional, Sequence

from ..core.enums import Role
from ..core.exceptions import DuplicateKeyError
from ..database.mysql_base import MySQLRepository, fetchall, fetchone, is_duplicate_key
from .model import User
from .repository import UserRepository

_COLUMNS = "id, name, email, password_hash, role, school_id, is_active"


def _row_to_user(row: dict) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        password_hash=row["password_hash"],
        role=Role(row["role"]),
        school_id=row.get("school_id"),
        is_active=bool(row.get("is_active", True)),
    )


class MySQLUserRepository(MySQLRepository, UserRepository):
    def get_by_id(self, user_id: str) -> Optional[User]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM users WHERE id=%s", (user_id,))
            row = fetchone(cur)
            return _row_to_user(row) if row else None

    def get_by_email(self, email: str) -> Optional[User]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM users WHERE email=%s", (email,))
            row = fetchone(cur)
            return _row_to_user(row) if row else None

    def list_by_school(self, school_id: str) -> Sequence[User]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM users WHERE school_id=%s ORDER BY role, name", (school_id,))
            return [_row_to_user(r) for r in fetchall(cur)]

    def create(self, user: User) -> None:
        try:
            with self._cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO users(id, name, email, password_hash, role, school_id, is_active)
                    VALUES(%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (user.id, user.name, user.email, user.password_hash, user.role.value, user.school_id, int(user.is_active)),
                )
        except Exception as e:
            if is_duplicate_key(e):
                raise DuplicateKeyError("users.email") from e
            raise

    def list_teacher_class_ids(self, teacher_id: str) -> list[str]:
        with self._cursor() as cur:
            cur.execute("SELECT class_id FROM teacher_classes WHERE teacher_id=%s", (teacher_id,))
            return [r["class_id"] for r in fetchall(cur)]

    def set_teacher_classes(self, teacher_id: str, class_ids: Sequence[str]) -> None:
        with self._cursor() as cur:
            cur.execute("DELETE FROM teacher_classes WHERE teacher_id=%s", (teacher_id,))
            for class_id in class_ids:
                cur.execute(
                    "INSERT INTO teacher_classes(teacher_id, class_id) VALUES(%s,%s)",
                    (teacher_id, class_id),
                )
