from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.enums import Role


@dataclass(frozen=True)
class User:
    """Thực thể miền (domain): User.

    Lưu ý: Đây là đối tượng dữ liệu thuần (không chứa code truy cập DB).
    """

    id: str
    name: str
    email: str
    password_hash: str
    role: Role
    school_id: Optional[str]
    is_active: bool = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "schoolId": self.school_id,
            "isActive": self.is_active,
        }


@dataclass(frozen=True)
class AuthUser:
    """What we store into the Flask session after login."""

    id: str
    name: str
    role: Role
    school_id: Optional[str]
    email: str = ""
    ip: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN
