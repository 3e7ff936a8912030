from __future__ import annotations

from flask import Flask, jsonify

from ..common.http import json_body
from ..container import Container
from ..core.enums import Role
from ..users.session import current_user


def register(app: Flask, container: Container) -> None:
    authz = container.authz
    service = container.device_import_service

    def school_admin(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        authz.require_school_scope(user, school_id)
        return user

    @app.route("/schools/<school_id>/device-import/preview", methods=["POST"], endpoint="device_import_preview")
    def preview(school_id: str):
        school_admin(school_id)
        return jsonify(service.preview(school_id, json_body()))

    @app.route("/schools/<school_id>/device-import/commit", methods=["POST"], endpoint="device_import_commit")
    def commit(school_id: str):
        user = school_admin(school_id)
        return jsonify(service.commit(school_id, json_body(), actor=user))

    @app.route("/schools/<school_id>/import-jobs/<job_id>", methods=["GET"], endpoint="import_job")
    def get_job(school_id: str, job_id: str):
        school_admin(school_id)
        return jsonify(service.get_job(school_id, job_id).to_dict())

    @app.route("/schools/<school_id>/import-jobs/<job_id>/retry", methods=["POST"], endpoint="import_job_retry")
    def retry_job(school_id: str, job_id: str):
        school_admin(school_id)
        job = service.retry_job(school_id, job_id)
        return jsonify({"ok": True, "job": job.to_dict()})

    @app.route("/schools/<school_id>/import-metrics", methods=["GET"], endpoint="import_metrics")
    def metrics(school_id: str):
        school_admin(school_id)
        return jsonify(service.metrics(school_id))

    @app.route("/schools/<school_id>/import-audit", methods=["POST"], endpoint="import_audit")
    def audit(school_id: str):
        user = school_admin(school_id)
        service.audit_from_ui(school_id, json_body(), actor=user)
        return jsonify({"ok": True})
