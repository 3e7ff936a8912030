from __future__ import annotations

import logging
from typing import Optional, Sequence

from werkzeug.security import check_password_hash, generate_password_hash

from ..classes.repository import ClassRepository
from ..common.validators import require_min_length, require_non_empty
from ..core.enums import Role
from ..core.exceptions import (
    AuthenticationError,
    ConflictError,
    DuplicateKeyError,
    NotFoundError,
    ValidationError,
)
from ..database.mysql_base import new_id
from .model import User
from .repository import UserRepository

logger = logging.getLogger(__name__)


class AuthService:
    """Use case: authenticate user (login)."""

    def __init__(self, users: UserRepository):
        self._users = users

    def authenticate(self, email: str, password: str) -> User:
        user = self._users.get_by_email((email or "").strip().lower())
        if not user or not user.is_active:
            raise AuthenticationError("Invalid email or password")

        try:
            ok = check_password_hash(user.password_hash, password or "")
        except ValueError:
            # e.g. placeholder hashes like 'CHANGE_ME' or corrupted values
            ok = False

        if not ok:
            raise AuthenticationError("Invalid email or password")
        return user

    def get_user(self, user_id: str) -> User:
        user = self._users.get_by_id(user_id)
        if not user or not user.is_active:
            raise AuthenticationError("unauthorized")
        return user


class UserService:
    """Use case: manage school staff accounts."""

    def __init__(self, users: UserRepository, classes: ClassRepository):
        self._users = users
        self._classes = classes

    def list_users(self, school_id: str) -> Sequence[User]:
        return self._users.list_by_school(school_id)

    def create_account(
        self,
        *,
        school_id: Optional[str],
        name: str,
        email: str,
        password: str,
        role: Role,
    ) -> User:
        name = require_non_empty(name, "name")
        email = require_non_empty(email, "email").lower()
        require_min_length(password, "password", 6)

        if self._users.get_by_email(email):
            raise ConflictError("Email already exists")

        user = User(
            id=new_id(),
            name=name,
            email=email,
            password_hash=generate_password_hash(password),
            role=role,
            school_id=school_id,
        )
        try:
            self._users.create(user)
        except DuplicateKeyError:
            raise ConflictError("Email already exists")
        logger.info("User created: %s (%s) school=%s", email, role.value, school_id)
        return user

    def create_staff(self, *, school_id: str, name: str, email: str, password: str, role: str) -> User:
        try:
            parsed = Role(str(role or "").upper())
        except ValueError:
            raise ValidationError("Invalid role")
        if parsed not in {Role.TEACHER, Role.GUARD, Role.SCHOOL_ADMIN}:
            raise ValidationError("Invalid role")
        return self.create_account(school_id=school_id, name=name, email=email, password=password, role=parsed)

    def assign_classes(self, *, school_id: Optional[str], teacher_id: str, class_ids: Sequence[str]) -> list[str]:
        teacher = self._users.get_by_id(teacher_id)
        if not teacher:
            raise NotFoundError("User not found")
        if school_id and teacher.school_id != school_id:
            raise NotFoundError("User not found")
        if teacher.role != Role.TEACHER:
            raise ValidationError("Only teachers can be assigned to classes")

        unique_ids = list(dict.fromkeys(str(c) for c in class_ids or []))
        for class_id in unique_ids:
            school_class = self._classes.get_by_id(class_id)
            if not school_class or school_class.school_id != teacher.school_id:
                raise ValidationError(f"Class not found: {class_id}")

        self._users.set_teacher_classes(teacher_id, unique_ids)
        return unique_ids

    def teacher_class_ids(self, teacher_id: str) -> list[str]:
        return list(self._users.list_teacher_class_ids(teacher_id))
