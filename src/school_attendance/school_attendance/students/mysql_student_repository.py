from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Optional, Sequence, Tuple

from ..core.enums import Gender, LinkStatus, ProvisioningStatus
from ..database.mysql_base import MySQLRepository, fetchall, fetchone, in_clause
from .model import Student, StudentDeviceLink, StudentProvisioning
from .repository import StudentRepository

_COLUMNS = (
    "s.id, s.school_id, s.class_id, s.device_student_id, s.name, s.first_name, s.last_name, "
    "s.father_name, s.gender, s.parent_phone, s.photo_url, s.is_active, s.device_sync_status, "
    "s.device_sync_updated_at, s.created_at"
)
_UPDATABLE = {
    "class_id",
    "device_student_id",
    "name",
    "first_name",
    "last_name",
    "father_name",
    "gender",
    "parent_phone",
    "photo_url",
    "is_active",
    "device_sync_status",
    "device_sync_updated_at",
}
_PROV_COLUMNS = "id, school_id, student_id, status, request_id, last_error, created_at, updated_at"
_LINK_COLUMNS = (
    "id, student_id, device_id, provisioning_id, status, last_error, employee_no_on_device, "
    "attempt_count, last_attempt_at"
)


def _row_to_student(row: dict) -> Student:
    return Student(
        id=row["id"],
        school_id=row["school_id"],
        class_id=row.get("class_id"),
        device_student_id=row.get("device_student_id"),
        name=row["name"],
        first_name=row.get("first_name") or "",
        last_name=row.get("last_name") or "",
        father_name=row.get("father_name"),
        gender=Gender(row.get("gender") or Gender.MALE.value),
        parent_phone=row.get("parent_phone"),
        photo_url=row.get("photo_url"),
        is_active=bool(row.get("is_active", True)),
        device_sync_status=row.get("device_sync_status"),
        device_sync_updated_at=row.get("device_sync_updated_at"),
        created_at=row.get("created_at"),
    )


def _row_to_provisioning(row: dict) -> StudentProvisioning:
    return StudentProvisioning(
        id=row["id"],
        school_id=row["school_id"],
        student_id=row["student_id"],
        status=ProvisioningStatus(row["status"]),
        request_id=row.get("request_id"),
        last_error=row.get("last_error"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _row_to_link(row: dict) -> StudentDeviceLink:
    return StudentDeviceLink(
        id=row["id"],
        student_id=row["student_id"],
        device_id=row["device_id"],
        provisioning_id=row["provisioning_id"],
        status=LinkStatus(row["status"]),
        last_error=row.get("last_error"),
        employee_no_on_device=row.get("employee_no_on_device"),
        attempt_count=int(row.get("attempt_count") or 0),
        last_attempt_at=row.get("last_attempt_at"),
    )


def _db_value(value):
    if isinstance(value, Gender):
        return value.value
    if isinstance(value, bool):
        return int(value)
    return value


class MySQLStudentRepository(MySQLRepository, StudentRepository):
    def get_by_id(self, student_id: str) -> Optional[Student]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM students s WHERE s.id=%s", (student_id,))
            row = fetchone(cur)
            return _row_to_student(row) if row else None

    def get_by_device_student_id(self, school_id: str, device_student_id: str) -> Optional[Student]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM students s WHERE s.school_id=%s AND s.device_student_id=%s",
                (school_id, device_student_id),
            )
            row = fetchone(cur)
            return _row_to_student(row) if row else None

    def list_by_device_student_ids(self, school_id: str, device_student_ids: Sequence[str]) -> Sequence[Student]:
        if not device_student_ids:
            return []
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM students s
                WHERE s.school_id=%s AND s.device_student_id IN ({in_clause(device_student_ids)})
                """,
                (school_id, *device_student_ids),
            )
            return [_row_to_student(r) for r in fetchall(cur)]

    def list_active(self, school_id: str, *, class_ids: Optional[Sequence[str]] = None) -> Sequence[Student]:
        sql = f"SELECT {_COLUMNS} FROM students s WHERE s.school_id=%s AND s.is_active=1"
        params: list = [school_id]
        if class_ids is not None:
            if not class_ids:
                return []
            sql += f" AND s.class_id IN ({in_clause(class_ids)})"
            params.extend(class_ids)
        with self._cursor() as cur:
            cur.execute(sql + " ORDER BY s.last_name, s.first_name", tuple(params))
            return [_row_to_student(r) for r in fetchall(cur)]

    def search(
        self,
        school_id: str,
        *,
        class_ids: Optional[Sequence[str]] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[Sequence[Student], int]:
        where = ["s.school_id=%s", "s.is_active=1"]
        params: list = [school_id]
        if class_ids is not None:
            if not class_ids:
                return [], 0
            where.append(f"s.class_id IN ({in_clause(class_ids)})")
            params.extend(class_ids)
        if search:
            where.append("(s.name LIKE %s OR s.device_student_id LIKE %s)")
            params.extend([f"%{search}%", f"%{search}%"])
        clause = " AND ".join(where)

        with self._cursor() as cur:
            cur.execute(f"SELECT COUNT(*) AS total FROM students s WHERE {clause}", tuple(params))
            total = int((fetchone(cur) or {}).get("total") or 0)
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM students s
                LEFT JOIN classes c ON c.id = s.class_id
                WHERE {clause}
                ORDER BY c.grade_level, c.name, s.last_name, s.first_name
                LIMIT %s OFFSET %s
                """,
                (*params, int(limit), int(offset)),
            )
            return [_row_to_student(r) for r in fetchall(cur)], total

    def find_duplicate_in_class(
        self,
        *,
        school_id: str,
        class_id: str,
        first_name: str,
        last_name: str,
        full_name: str,
        exclude_id: Optional[str] = None,
    ) -> Optional[Student]:
        # Default utf8mb4 collation compares case-insensitively.
        sql = f"""
            SELECT {_COLUMNS} FROM students s
            WHERE s.school_id=%s AND s.class_id=%s AND s.is_active=1
              AND (s.name=%s OR (s.first_name=%s AND s.last_name=%s))
        """
        params: list = [school_id, class_id, full_name, first_name, last_name]
        if exclude_id:
            sql += " AND s.id<>%s"
            params.append(exclude_id)
        with self._cursor() as cur:
            cur.execute(sql + " LIMIT 1", tuple(params))
            row = fetchone(cur)
            return _row_to_student(row) if row else None

    def create(self, student: Student) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO students(id, school_id, class_id, device_student_id, name, first_name, last_name,
                                     father_name, gender, parent_phone, photo_url, is_active,
                                     device_sync_status, device_sync_updated_at)
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    student.id,
                    student.school_id,
                    student.class_id,
                    student.device_student_id,
                    student.name,
                    student.first_name,
                    student.last_name,
                    student.father_name,
                    student.gender.value,
                    student.parent_phone,
                    student.photo_url,
                    int(student.is_active),
                    student.device_sync_status,
                    student.device_sync_updated_at,
                ),
            )

    def update(self, student_id: str, changes: dict) -> Optional[Student]:
        fields = {k: _db_value(v) for k, v in changes.items() if k in _UPDATABLE}
        if fields:
            assignments = ", ".join(f"{k}=%s" for k in fields)
            with self._cursor() as cur:
                cur.execute(f"UPDATE students SET {assignments} WHERE id=%s", (*fields.values(), student_id))
        return self.get_by_id(student_id)

    def upsert_by_device_student_id(self, student: Student) -> Tuple[Student, Optional[Student]]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM students s
                WHERE s.school_id=%s AND s.device_student_id=%s
                FOR UPDATE
                """,
                (student.school_id, student.device_student_id),
            )
            row = fetchone(cur)

        if not row:
            self.create(student)
            return student, None

        previous = _row_to_student(row)
        updated = self.update(
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
        return updated or replace(previous, is_active=True), previous

    def set_sync_status(self, student_id: str, status: str, at: datetime) -> None:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE students SET device_sync_status=%s, device_sync_updated_at=%s WHERE id=%s",
                (status, at, student_id),
            )

    def get_provisioning(self, provisioning_id: str) -> Optional[StudentProvisioning]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_PROV_COLUMNS} FROM student_provisioning WHERE id=%s", (provisioning_id,))
            row = fetchone(cur)
            return _row_to_provisioning(row) if row else None

    def get_provisioning_by_request(self, school_id: str, request_id: str) -> Optional[StudentProvisioning]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_PROV_COLUMNS} FROM student_provisioning WHERE school_id=%s AND request_id=%s",
                (school_id, request_id),
            )
            row = fetchone(cur)
            return _row_to_provisioning(row) if row else None

    def create_provisioning(self, provisioning: StudentProvisioning) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO student_provisioning(id, school_id, student_id, status, request_id, last_error)
                VALUES(%s,%s,%s,%s,%s,%s)
                """,
                (
                    provisioning.id,
                    provisioning.school_id,
                    provisioning.student_id,
                    provisioning.status.value,
                    provisioning.request_id,
                    provisioning.last_error,
                ),
            )

    def update_provisioning(self, provisioning_id: str, *, status: str, last_error: Optional[str]) -> None:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE student_provisioning SET status=%s, last_error=%s WHERE id=%s",
                (status, last_error, provisioning_id),
            )

    def list_links(self, provisioning_id: str) -> Sequence[StudentDeviceLink]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_LINK_COLUMNS} FROM student_device_links WHERE provisioning_id=%s",
                (provisioning_id,),
            )
            return [_row_to_link(r) for r in fetchall(cur)]

    def get_link(self, provisioning_id: str, device_id: str) -> Optional[StudentDeviceLink]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_LINK_COLUMNS} FROM student_device_links WHERE provisioning_id=%s AND device_id=%s",
                (provisioning_id, device_id),
            )
            row = fetchone(cur)
            return _row_to_link(row) if row else None

    def save_link(self, link: StudentDeviceLink) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO student_device_links(id, student_id, device_id, provisioning_id, status, last_error,
                                                 employee_no_on_device, attempt_count, last_attempt_at)
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
                ON DUPLICATE KEY UPDATE
                    status=VALUES(status),
                    last_error=VALUES(last_error),
                    employee_no_on_device=VALUES(employee_no_on_device),
                    attempt_count=VALUES(attempt_count),
                    last_attempt_at=VALUES(last_attempt_at)
                """,
                (
                    link.id,
                    link.student_id,
                    link.device_id,
                    link.provisioning_id,
                    link.status.value,
                    link.last_error,
                    link.employee_no_on_device,
                    link.attempt_count,
                    link.last_attempt_at,
                ),
            )
