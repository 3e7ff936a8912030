from __future__ import annotations

from flask import Flask, jsonify

from ..common.http import json_body
from ..container import Container
from ..core.enums import Role
from ..users.session import current_user


def register(app: Flask, container: Container) -> None:
    authz = container.authz

    @app.route("/schools", methods=["GET"], endpoint="list_schools")
    def list_schools():
        user = current_user()
        authz.require_roles(user, Role.SUPER_ADMIN)
        out = []
        for school in container.school_service.list_all():
            item = school.to_dict()
            item["stats"] = container.dashboard_service.school_summary(school, include_details=False)
            out.append(item)
        return jsonify(out)

    @app.route("/schools", methods=["POST"], endpoint="create_school")
    def create_school():
        user = current_user()
        authz.require_roles(user, Role.SUPER_ADMIN)
        school, admin = container.school_service.create(json_body())
        out = school.to_dict(include_secrets=True)
        out["admin"] = admin
        return jsonify(out), 201

    @app.route("/schools/<school_id>", methods=["GET"], endpoint="get_school")
    def get_school(school_id: str):
        user = current_user()
        authz.require_school_scope(user, school_id)
        school = container.school_service.get(school_id)
        return jsonify(school.to_dict())

    @app.route("/schools/<school_id>", methods=["PUT"], endpoint="update_school")
    def update_school(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        authz.require_school_scope(user, school_id)
        school = container.school_service.update(school_id, json_body())
        return jsonify(school.to_dict())

    @app.route("/schools/<school_id>/webhook-info", methods=["GET"], endpoint="school_webhook_info")
    def webhook_info(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        authz.require_school_scope(user, school_id)
        school = container.school_service.get(school_id)
        return jsonify(container.school_service.webhook_info(school))
