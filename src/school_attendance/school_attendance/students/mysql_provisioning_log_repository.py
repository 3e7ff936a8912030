from __future__ import annotations

from typing import Optional, Sequence

from ..core.enums import LogLevel, LogSource
from ..database.mysql_base import MySQLRepository, fetchall, from_json, to_json
from .model import ProvisioningLog
from .provisioning_log_repository import ProvisioningLogRepository

_COLUMNS = (
    "id, school_id, student_id, provisioning_id, device_id, level, event_type, stage, status, message, "
    "actor_id, actor_role, actor_name, actor_ip, user_agent, source, payload, created_at"
)


def _row_to_log(row: dict) -> ProvisioningLog:
    return ProvisioningLog(
        id=row["id"],
        school_id=row["school_id"],
        stage=row["stage"],
        level=LogLevel(row.get("level") or LogLevel.INFO.value),
        event_type=row.get("event_type"),
        status=row.get("status"),
        message=row.get("message"),
        student_id=row.get("student_id"),
        provisioning_id=row.get("provisioning_id"),
        device_id=row.get("device_id"),
        actor_id=row.get("actor_id"),
        actor_role=row.get("actor_role"),
        actor_name=row.get("actor_name"),
        actor_ip=row.get("actor_ip"),
        user_agent=row.get("user_agent"),
        source=LogSource(row.get("source") or LogSource.BACKEND_API.value),
        payload=from_json(row.get("payload")),
        created_at=row.get("created_at"),
    )


class MySQLProvisioningLogRepository(MySQLRepository, ProvisioningLogRepository):
    def create(self, log: ProvisioningLog) -> None:
        with self._cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO provisioning_logs({_COLUMNS.replace(", created_at", "")})
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    log.id,
                    log.school_id,
                    log.student_id,
                    log.provisioning_id,
                    log.device_id,
                    log.level.value,
                    log.event_type,
                    log.stage,
                    log.status,
                    log.message,
                    log.actor_id,
                    log.actor_role,
                    log.actor_name,
                    log.actor_ip,
                    log.user_agent,
                    log.source.value,
                    to_json(log.payload),
                ),
            )

    def list_by_provisioning(self, provisioning_id: str, *, limit: int = 200) -> Sequence[ProvisioningLog]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM provisioning_logs
                WHERE provisioning_id=%s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (provisioning_id, int(limit)),
            )
            return [_row_to_log(r) for r in fetchall(cur)]

    def list_by_school(
        self,
        school_id: str,
        *,
        level: Optional[str] = None,
        stage: Optional[str] = None,
        student_id: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[ProvisioningLog]:
        where = ["school_id=%s"]
        params: list = [school_id]
        if level:
            where.append("level=%s")
            params.append(level)
        if stage:
            where.append("stage=%s")
            params.append(stage)
        if student_id:
            where.append("student_id=%s")
            params.append(student_id)
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM provisioning_logs
                WHERE {" AND ".join(where)}
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (*params, int(limit)),
            )
            return [_row_to_log(r) for r in fetchall(cur)]
