from __future__ import annotations

import logging
import secrets
from dataclasses import replace
from typing import Optional, Sequence

from ..common.datetime_utils import is_valid_timezone, now_utc
from ..common.validators import optional_str, require_non_empty, require_non_negative_int
from ..core.constants import DEFAULT_ABSENCE_CUTOFF_MINUTES, DEFAULT_LATE_THRESHOLD_MINUTES, DEFAULT_TIMEZONE
from ..core.enums import Role
from ..core.exceptions import NotFoundError, ValidationError
from ..database.mysql_base import new_id
from ..users.service import UserService
from .model import School
from .repository import SchoolRepository

logger = logging.getLogger(__name__)


def generate_webhook_secret() -> str:
    return secrets.token_hex(24)


class SchoolService:
    """Use case: tenant (school) management."""

    def __init__(self, schools: SchoolRepository, user_service: UserService):
        self._schools = schools
        self._user_service = user_service

    def get(self, school_id: str) -> School:
        school = self._schools.get_by_id(school_id)
        if not school:
            raise NotFoundError("School not found")
        return school

    def list_all(self) -> Sequence[School]:
        return self._schools.list_all()

    def _settings(self, data: dict) -> dict:
        out: dict = {}
        if "timezone" in data:
            tz = str(data.get("timezone") or "").strip()
            if not is_valid_timezone(tz):
                raise ValidationError("Invalid timezone")
            out["timezone"] = tz
        if "lateThresholdMinutes" in data:
            out["late_threshold_minutes"] = require_non_negative_int(data["lateThresholdMinutes"], "lateThresholdMinutes")
        if "absenceCutoffMinutes" in data:
            out["absence_cutoff_minutes"] = require_non_negative_int(data["absenceCutoffMinutes"], "absenceCutoffMinutes")
        for key, column in (("address", "address"), ("phone", "phone"), ("email", "email")):
            if key in data:
                out[column] = optional_str(data.get(key))
        return out

    def create(self, data: dict) -> tuple[School, Optional[dict]]:
        """Create a school; ``data["admin"]`` optionally creates its SCHOOL_ADMIN."""
        name = require_non_empty(data.get("name"), "name")
        settings = self._settings(data)
        school = School(
            id=new_id(),
            name=name,
            address=settings.get("address"),
            phone=settings.get("phone"),
            email=settings.get("email"),
            timezone=settings.get("timezone", DEFAULT_TIMEZONE),
            late_threshold_minutes=settings.get("late_threshold_minutes", DEFAULT_LATE_THRESHOLD_MINUTES),
            absence_cutoff_minutes=settings.get("absence_cutoff_minutes", DEFAULT_ABSENCE_CUTOFF_MINUTES),
            webhook_secret_in=generate_webhook_secret(),
            webhook_secret_out=generate_webhook_secret(),
            created_at=now_utc(),
        )

        admin_data = data.get("admin")
        if admin_data is not None and not isinstance(admin_data, dict):
            raise ValidationError("admin must be an object")

        self._schools.create(school)
        admin = None
        if admin_data:
            user = self._user_service.create_account(
                school_id=school.id,
                name=admin_data.get("name", ""),
                email=admin_data.get("email", ""),
                password=admin_data.get("password", ""),
                role=Role.SCHOOL_ADMIN,
            )
            admin = user.to_dict()
        logger.info("School created: %s (%s)", school.name, school.id)
        return school, admin

    def update(self, school_id: str, data: dict) -> School:
        school = self.get(school_id)
        changes = self._settings(data)
        if "name" in data:
            changes["name"] = require_non_empty(data.get("name"), "name")
        if data.get("regenerateWebhookSecrets"):
            changes["webhook_secret_in"] = generate_webhook_secret()
            changes["webhook_secret_out"] = generate_webhook_secret()
        if changes:
            self._schools.update(school_id, changes)
        return replace(school, **changes)

    def webhook_info(self, school: School) -> dict:
        return {
            "schoolId": school.id,
            "inUrl": f"/webhook/{school.id}/in",
            "outUrl": f"/webhook/{school.id}/out",
            "inSecret": school.webhook_secret_in,
            "outSecret": school.webhook_secret_out,
        }
