from __future__ import annotations

from flask import Flask, jsonify

from ..common.datetime_utils import local_date, now_utc
from ..common.http import json_body
from ..container import Container
from ..core.enums import Role
from ..users.session import current_user


def register(app: Flask, container: Container) -> None:
    authz = container.authz

    @app.route("/schools/<school_id>/classes", methods=["GET"], endpoint="list_classes")
    def list_classes(school_id: str):
        user = current_user()
        authz.require_school_scope(user, school_id)
        school = container.school_service.get(school_id)
        classes = authz.filter_classes(user, container.classes_repo.list_by_school(school_id))
        today = local_date(now_utc(), school.timezone)
        return jsonify(container.class_service.list_with_counts(school_id, classes, today=today))

    @app.route("/schools/<school_id>/classes", methods=["POST"], endpoint="create_class")
    def create_class(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        authz.require_school_scope(user, school_id)
        school_class = container.class_service.create(school_id, json_body())
        return jsonify(school_class.to_dict()), 201

    @app.route("/classes/<class_id>", methods=["PUT"], endpoint="update_class")
    def update_class(class_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        school_class = authz.class_for_user(user, class_id)
        updated = container.class_service.update(school_class, json_body())
        return jsonify(updated.to_dict())

    @app.route("/classes/<class_id>", methods=["DELETE"], endpoint="delete_class")
    def delete_class(class_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        school_class = authz.class_for_user(user, class_id)
        container.class_service.delete(school_class)
        return jsonify({"ok": True})
