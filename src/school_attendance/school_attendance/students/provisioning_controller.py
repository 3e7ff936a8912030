from __future__ import annotations

from typing import Optional

from flask import Flask, jsonify, request

from ..common.http import json_body
from ..common.validators import secret_matches
from ..container import Container
from ..core.enums import Role
from ..users.model import AuthUser
from ..users.session import current_user
from .model import StudentProvisioning

PROVISIONING_ROLES = (Role.SCHOOL_ADMIN, Role.TEACHER)


def provided_token() -> str:
    token = request.headers.get("X-Provisioning-Token") or request.args.get("provisioningToken") or ""
    if not token:
        auth = request.headers.get("Authorization") or ""
        if auth.lower().startswith("bearer "):
            token = auth[7:]
    return token.strip()


def register(app: Flask, container: Container) -> None:
    authz = container.authz
    service = container.provisioning_service

    def has_token() -> bool:
        return secret_matches(provided_token(), container.provisioning_token)

    def school_caller(school_id: str) -> Optional[AuthUser]:
        """None means the request is authenticated by the provisioning token."""
        if has_token():
            return None
        user = current_user()
        authz.require_roles(user, *PROVISIONING_ROLES)
        authz.require_school_scope(user, school_id)
        return user

    def provisioning_caller(provisioning_id: str) -> tuple[StudentProvisioning, Optional[AuthUser]]:
        provisioning = service.get(provisioning_id)
        user = school_caller(provisioning.school_id)
        if user is not None and user.role == Role.TEACHER:
            student = container.students_repo.get_by_id(provisioning.student_id)
            authz.require_class_scope(user, student.class_id if student else None)
        return provisioning, user

    @app.route("/schools/<school_id>/students/provision", methods=["POST"], endpoint="provision_student")
    def start(school_id: str):
        user = school_caller(school_id)
        check_scope = None
        if user is not None and user.role == Role.TEACHER:
            def check_scope(class_id: str) -> None:
                authz.require_class_scope(user, class_id)

        result = service.start(school_id, json_body(), actor=user, check_class_scope=check_scope)
        return jsonify(result), 201

    @app.route("/provisioning/<provisioning_id>", methods=["GET"], endpoint="get_provisioning")
    def get_provisioning(provisioning_id: str):
        provisioning, _ = provisioning_caller(provisioning_id)
        return jsonify(service.detail(provisioning))

    @app.route("/provisioning/<provisioning_id>/device-result", methods=["POST"], endpoint="provisioning_device_result")
    def device_result(provisioning_id: str):
        provisioning, _ = provisioning_caller(provisioning_id)
        return jsonify(service.device_result(provisioning, json_body()))

    @app.route("/provisioning/<provisioning_id>/retry", methods=["POST"], endpoint="provisioning_retry")
    def retry(provisioning_id: str):
        provisioning, user = provisioning_caller(provisioning_id)
        return jsonify(service.retry(provisioning, json_body(), actor=user))

    @app.route(
        "/provisioning/<provisioning_id>/finalize-failure",
        methods=["POST"],
        endpoint="provisioning_finalize_failure",
    )
    def finalize_failure(provisioning_id: str):
        provisioning, user = provisioning_caller(provisioning_id)
        return jsonify(service.finalize_failure(provisioning, json_body(), actor=user, token_auth=user is None))

    @app.route("/provisioning/<provisioning_id>/logs", methods=["GET"], endpoint="provisioning_logs")
    def logs(provisioning_id: str):
        provisioning, _ = provisioning_caller(provisioning_id)
        return jsonify(service.logs(provisioning))

    @app.route("/schools/<school_id>/provisioning-logs", methods=["GET"], endpoint="school_provisioning_logs")
    def school_logs(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        authz.require_school_scope(user, school_id)
        entries = container.audit.list_for_school(
            school_id,
            level=request.args.get("level") or None,
            stage=request.args.get("stage") or None,
            student_id=request.args.get("studentId") or None,
            limit=request.args.get("limit", 200, type=int),
        )
        return jsonify([e.to_dict() for e in entries])
