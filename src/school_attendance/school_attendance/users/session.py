"""Flask session <-> AuthUser helpers shared by every controller."""
from __future__ import annotations

from typing import Optional

from flask import request, session

from ..common.http import get_client_ip
from ..core.enums import Role
from ..core.exceptions import AuthenticationError
from .model import AuthUser, User


def login_user(user: User) -> None:
    session.clear()
    session["user_id"] = user.id
    session["name"] = user.name
    session["email"] = user.email
    session["role"] = user.role.value
    session["school_id"] = user.school_id


def logout_user() -> None:
    session.clear()


def optional_user() -> Optional[AuthUser]:
    if "user_id" not in session:
        return None
    return AuthUser(
        id=session["user_id"],
        name=session.get("name") or "",
        role=Role(session["role"]),
        school_id=session.get("school_id"),
        email=session.get("email") or "",
        ip=get_client_ip(),
        user_agent=request.headers.get("User-Agent"),
    )


def current_user() -> AuthUser:
    user = optional_user()
    if user is None:
        raise AuthenticationError("unauthorized")
    return user
