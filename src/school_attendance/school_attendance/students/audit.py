from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from ..common.datetime_utils import now_utc
from ..core.constants import PROVISIONING_LOG_LIMIT
from ..core.enums import LogLevel, LogSource
from ..database.mysql_base import new_id
from ..users.model import AuthUser
from .model import ProvisioningLog
from .provisioning_log_repository import ProvisioningLogRepository

logger = logging.getLogger("provisioning")


class ProvisioningAudit:
    """Writes the provisioning/import audit trail.

    A failed write is logged and never breaks the request that triggered it.
    """

    def __init__(self, logs: ProvisioningLogRepository):
        self._logs = logs

    def log(
        self,
        *,
        school_id: str,
        stage: str,
        level: LogLevel = LogLevel.INFO,
        status: Optional[str] = None,
        message: Optional[str] = None,
        event_type: Optional[str] = None,
        student_id: Optional[str] = None,
        provisioning_id: Optional[str] = None,
        device_id: Optional[str] = None,
        actor: Optional[AuthUser] = None,
        source: LogSource = LogSource.BACKEND_API,
        payload: Any = None,
    ) -> None:
        entry = ProvisioningLog(
            id=new_id(),
            school_id=school_id,
            stage=stage,
            level=level,
            event_type=event_type or stage,
            status=status,
            message=message,
            student_id=student_id,
            provisioning_id=provisioning_id,
            device_id=device_id,
            actor_id=actor.id if actor else None,
            actor_role=actor.role.value if actor else None,
            actor_name=actor.name if actor else None,
            actor_ip=actor.ip if actor else None,
            user_agent=actor.user_agent if actor else None,
            source=source,
            payload=payload,
            created_at=now_utc(),
        )
        try:
            self._logs.create(entry)
        except Exception:
            logger.exception("Failed to write provisioning log stage=%s school=%s", stage, school_id)

    def list_for_provisioning(self, provisioning_id: str) -> Sequence[ProvisioningLog]:
        return self._logs.list_by_provisioning(provisioning_id, limit=PROVISIONING_LOG_LIMIT)

    def list_for_school(
        self,
        school_id: str,
        *,
        level: Optional[str] = None,
        stage: Optional[str] = None,
        student_id: Optional[str] = None,
        limit: int = PROVISIONING_LOG_LIMIT,
    ) -> Sequence[ProvisioningLog]:
        limit = max(1, min(int(limit), 1000))
        return self._logs.list_by_school(school_id, level=level, stage=stage, student_id=student_id, limit=limit)
