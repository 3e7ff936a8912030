from __future__ import annotations

from flask import Flask, jsonify, session

from ..common.http import get_client_ip, json_body
from ..container import Container
from ..core.enums import Role
from ..core.exceptions import AuthenticationError
from ..logging_config import security_logger
from .session import current_user, login_user, logout_user


def register(app: Flask, container: Container) -> None:
    authz = container.authz

    @app.route("/auth/login", methods=["POST"], endpoint="auth_login")
    def login():
        data = json_body()
        email = str(data.get("email") or "")
        try:
            user = container.auth_service.authenticate(email, str(data.get("password") or ""))
        except AuthenticationError:
            security_logger.log_login(email, get_client_ip(), success=False)
            raise
        login_user(user)
        security_logger.log_login(user.email, get_client_ip(), success=True)
        return jsonify({"user": user.to_dict()})

    @app.route("/auth/logout", methods=["POST"], endpoint="auth_logout")
    def logout():
        security_logger.log_logout(session.get("email"), get_client_ip())
        logout_user()
        return jsonify({"ok": True})

    @app.route("/auth/me", methods=["GET"], endpoint="auth_me")
    def me():
        auth = current_user()
        user = container.auth_service.get_user(auth.id)
        out = user.to_dict()
        if user.role == Role.TEACHER:
            out["classIds"] = container.user_service.teacher_class_ids(user.id)
        return jsonify({"user": out})

    @app.route("/schools/<school_id>/users", methods=["GET"], endpoint="list_school_users")
    def list_users(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        authz.require_school_scope(user, school_id)
        users = container.user_service.list_users(school_id)
        return jsonify([u.to_dict() for u in users])

    @app.route("/schools/<school_id>/users", methods=["POST"], endpoint="create_school_user")
    def create_user(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        authz.require_school_scope(user, school_id)
        data = json_body()
        created = container.user_service.create_staff(
            school_id=school_id,
            name=data.get("name", ""),
            email=data.get("email", ""),
            password=data.get("password", ""),
            role=data.get("role", Role.TEACHER.value),
        )
        return jsonify(created.to_dict()), 201

    @app.route("/users/<user_id>/classes", methods=["PUT"], endpoint="assign_teacher_classes")
    def assign_classes(user_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        data = json_body()
        class_ids = data.get("classIds") or []
        if not isinstance(class_ids, list):
            class_ids = []
        assigned = container.user_service.assign_classes(
            school_id=None if user.is_super_admin else user.school_id,
            teacher_id=user_id,
            class_ids=class_ids,
        )
        return jsonify({"ok": True, "classIds": assigned})
