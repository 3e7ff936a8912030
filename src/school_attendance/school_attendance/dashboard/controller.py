from __future__ import annotations

from flask import Flask, jsonify, request

from ..container import Container
from ..core.enums import Role
from ..users.session import current_user


def register(app: Flask, container: Container) -> None:
    authz = container.authz

    @app.route("/schools/<school_id>/dashboard", methods=["GET"], endpoint="school_dashboard")
    def school_dashboard(school_id: str):
        user = current_user()
        authz.require_school_scope(user, school_id)
        school = container.school_service.get(school_id)
        class_ids = authz.teacher_class_filter(user, request.args.get("classId") or None)
        return jsonify(container.dashboard_service.school_summary(school, class_ids=class_ids))

    @app.route("/admin/dashboard", methods=["GET"], endpoint="admin_dashboard")
    def admin_dashboard():
        user = current_user()
        authz.require_roles(user, Role.SUPER_ADMIN)
        return jsonify(container.dashboard_service.admin_summary())
