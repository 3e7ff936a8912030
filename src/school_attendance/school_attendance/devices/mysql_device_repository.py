from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from ..core.enums import DeviceType
from ..core.exceptions import DuplicateKeyError
from ..database.mysql_base import MySQLRepository, fetchall, fetchone, in_clause, is_duplicate_key
from .model import Device
from .repository import DeviceRepository

_COLUMNS = "id, school_id, name, device_id, type, location, is_active, last_seen_at, created_at"
_UPDATABLE = {"name", "device_id", "type", "location", "is_active"}


def _row_to_device(row: dict) -> Device:
    return Device(
        id=row["id"],
        school_id=row["school_id"],
        name=row["name"],
        device_id=row["device_id"],
        type=DeviceType(row.get("type") or DeviceType.ENTRANCE.value),
        location=row.get("location"),
        is_active=bool(row.get("is_active", True)),
        last_seen_at=row.get("last_seen_at"),
        created_at=row.get("created_at"),
    )


class MySQLDeviceRepository(MySQLRepository, DeviceRepository):
    def get_by_id(self, device_id: str) -> Optional[Device]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM devices WHERE id=%s", (device_id,))
            row = fetchone(cur)
            return _row_to_device(row) if row else None

    def get_by_external_id(self, external_id: str) -> Optional[Device]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM devices WHERE device_id=%s", (external_id,))
            row = fetchone(cur)
            return _row_to_device(row) if row else None

    def list_by_school(self, school_id: str, *, active_only: bool = False) -> Sequence[Device]:
        sql = f"SELECT {_COLUMNS} FROM devices WHERE school_id=%s"
        if active_only:
            sql += " AND is_active=1"
        with self._cursor() as cur:
            cur.execute(sql + " ORDER BY name", (school_id,))
            return [_row_to_device(r) for r in fetchall(cur)]

    def list_all(self) -> Sequence[Device]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM devices")
            return [_row_to_device(r) for r in fetchall(cur)]

    def create(self, device: Device) -> None:
        try:
            with self._cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO devices(id, school_id, name, device_id, type, location, is_active, last_seen_at)
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        device.id,
                        device.school_id,
                        device.name,
                        device.device_id,
                        device.type.value,
                        device.location,
                        int(device.is_active),
                        device.last_seen_at,
                    ),
                )
        except Exception as e:
            if is_duplicate_key(e):
                raise DuplicateKeyError("devices.device_id") from e
            raise

    def update(self, device_id: str, changes: dict) -> bool:
        fields = {k: v for k, v in changes.items() if k in _UPDATABLE}
        if not fields:
            return False
        if isinstance(fields.get("type"), DeviceType):
            fields["type"] = fields["type"].value
        assignments = ", ".join(f"{k}=%s" for k in fields)
        try:
            with self._cursor() as cur:
                cur.execute(f"UPDATE devices SET {assignments} WHERE id=%s", (*fields.values(), device_id))
                return cur.rowcount > 0
        except Exception as e:
            if is_duplicate_key(e):
                raise DuplicateKeyError("devices.device_id") from e
            raise

    def delete(self, device_id: str) -> bool:
        with self._cursor() as cur:
            cur.execute("DELETE FROM devices WHERE id=%s", (device_id,))
            return cur.rowcount > 0

    def mark_seen(self, device_id: str, seen_at: datetime) -> None:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE devices SET last_seen_at=GREATEST(COALESCE(last_seen_at, %s), %s), is_active=1 WHERE id=%s",
                (seen_at, seen_at, device_id),
            )

    def set_active(self, device_ids: Sequence[str], *, is_active: bool) -> int:
        if not device_ids:
            return 0
        with self._cursor() as cur:
            cur.execute(
                f"UPDATE devices SET is_active=%s WHERE id IN ({in_clause(device_ids)})",
                (int(is_active), *device_ids),
            )
            return cur.rowcount

    def last_event_at(self, device_id: str) -> Optional[datetime]:
        with self._cursor() as cur:
            cur.execute("SELECT MAX(timestamp) AS ts FROM attendance_events WHERE device_id=%s", (device_id,))
            row = fetchone(cur)
            return row.get("ts") if row else None
