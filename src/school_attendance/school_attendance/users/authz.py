from __future__ import annotations

from typing import Optional, Sequence

from ..classes.model import SchoolClass
from ..classes.repository import ClassRepository
from ..core.enums import LogLevel, Role
from ..core.exceptions import AuthorizationError, NotFoundError
from ..devices.model import Device
from ..devices.repository import DeviceRepository
from ..logging_config import security_logger
from ..students.audit import ProvisioningAudit
from ..students.model import Student
from ..students.repository import StudentRepository
from .model import AuthUser
from .repository import UserRepository


class Authorizer:
    """Role, school and teacher-class scope checks.

    SUPER_ADMIN passes every check. Each denial is written to the security log and,
    when the school is known, to the provisioning audit trail as ACCESS_DENIED.
    """

    def __init__(
        self,
        users: UserRepository,
        classes: ClassRepository,
        students: StudentRepository,
        devices: DeviceRepository,
        audit: ProvisioningAudit,
    ):
        self._users = users
        self._classes = classes
        self._students = students
        self._devices = devices
        self._audit = audit

    def _deny(self, user: AuthUser, reason: str, *, school_id: Optional[str] = None) -> AuthorizationError:
        security_logger.log_access_denied(
            user_id=user.id,
            role=user.role.value,
            reason=reason,
            school_id=school_id,
        )
        target_school = school_id or user.school_id
        if target_school:
            self._audit.log(
                school_id=target_school,
                stage="AUTHZ",
                event_type="ACCESS_DENIED",
                level=LogLevel.WARN,
                status="DENIED",
                message=reason,
                actor=user,
            )
        return AuthorizationError("forbidden")

    def require_roles(self, user: AuthUser, *roles: Role) -> None:
        if user.is_super_admin or user.role in roles:
            return
        raise self._deny(user, f"role {user.role.value} not in {[r.value for r in roles]}")

    def require_school_scope(self, user: AuthUser, school_id: str) -> None:
        if user.is_super_admin:
            return
        if not user.school_id or user.school_id != school_id:
            raise self._deny(user, f"school scope {school_id}", school_id=school_id)

    def allowed_class_ids(self, user: AuthUser) -> Optional[list[str]]:
        """None means every class of the school; teachers get their assignments."""
        if user.role != Role.TEACHER:
            return None
        return list(self._users.list_teacher_class_ids(user.id))

    def require_class_scope(self, user: AuthUser, class_id: Optional[str]) -> None:
        if user.role != Role.TEACHER:
            return
        allowed = self.allowed_class_ids(user) or []
        if not class_id or class_id not in allowed:
            raise self._deny(user, f"class scope {class_id}")

    def teacher_class_filter(self, user: AuthUser, requested_class_id: Optional[str]) -> Optional[list[str]]:
        """Resolve which classes a listing may include.

        Returns None for "no restriction"; a teacher asking for a class outside the
        assignment list is denied.
        """
        allowed = self.allowed_class_ids(user)
        if allowed is None:
            return [requested_class_id] if requested_class_id else None
        if requested_class_id:
            if requested_class_id not in allowed:
                raise self._deny(user, f"class scope {requested_class_id}")
            return [requested_class_id]
        return allowed

    def class_for_user(self, user: AuthUser, class_id: str) -> SchoolClass:
        school_class = self._classes.get_by_id(class_id)
        if not school_class:
            raise NotFoundError("Class not found")
        self.require_school_scope(user, school_class.school_id)
        return school_class

    def student_for_user(self, user: AuthUser, student_id: str) -> Student:
        student = self._students.get_by_id(student_id)
        if not student:
            raise NotFoundError("Student not found")
        self.require_school_scope(user, student.school_id)
        return student

    def device_for_user(self, user: AuthUser, device_id: str) -> Device:
        device = self._devices.get_by_id(device_id)
        if not device:
            raise NotFoundError("Device not found")
        self.require_school_scope(user, device.school_id)
        return device

    def filter_classes(self, user: AuthUser, classes: Sequence[SchoolClass]) -> list[SchoolClass]:
        allowed = self.allowed_class_ids(user)
        if allowed is None:
            return list(classes)
        return [c for c in classes if c.id in allowed]
