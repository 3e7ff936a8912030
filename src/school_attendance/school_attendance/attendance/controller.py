from __future__ import annotations

from flask import Flask, jsonify, request, send_file

from ..common.datetime_utils import date_range_for_period, local_date, now_utc
from ..common.http import json_body
from ..container import Container
from ..core.enums import Role
from ..core.exceptions import NotFoundError, ValidationError
from ..students.excel import XLSX_MIMETYPE
from ..users.session import current_user
from .webhook import PICTURE_FIELDS, extract_access_event


def register(app: Flask, container: Container) -> None:
    authz = container.authz
    service = container.attendance_service

    @app.route("/webhook/<school_id>/<direction>", methods=["POST"], endpoint="attendance_webhook")
    def webhook(school_id: str, direction: str):
        secret = request.args.get("secret") or request.headers.get(container.webhook_secret_header)
        school = container.webhook_service.resolve_school(school_id, direction, secret)

        access_event = extract_access_event(
            content_type=request.content_type or "",
            form=request.form,
            json_body=request.get_json(silent=True),
        )
        picture_path = None
        for name in PICTURE_FIELDS:
            picture = request.files.get(name)
            if picture is not None:
                picture_path = container.webhook_service.save_picture(picture.read())
                break

        return jsonify(container.webhook_service.ingest(school, direction, access_event, picture_path=picture_path))

    def report_scope(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN, Role.TEACHER, Role.GUARD)
        authz.require_school_scope(user, school_id)
        school = container.school_service.get(school_id)
        class_ids = authz.teacher_class_filter(user, request.args.get("classId") or None)
        return school, class_ids

    def report_range(school):
        today = local_date(now_utc(), school.timezone)
        start_raw, end_raw = request.args.get("startDate"), request.args.get("endDate")
        period = request.args.get("period") or ("custom" if start_raw or end_raw else "today")
        if period == "custom":
            start_raw = start_raw or end_raw
            end_raw = end_raw or start_raw
        return date_range_for_period(period, today=today, start=start_raw, end=end_raw)

    @app.route("/schools/<school_id>/attendance/today", methods=["GET"], endpoint="attendance_today")
    def today(school_id: str):
        school, class_ids = report_scope(school_id)
        return jsonify(service.today(school, class_ids=class_ids))

    @app.route("/schools/<school_id>/attendance/report", methods=["GET"], endpoint="attendance_report")
    def report(school_id: str):
        school, class_ids = report_scope(school_id)
        start, end = report_range(school)
        rows = service.report(school, start, end, class_ids=class_ids)
        return jsonify(
            {
                "startDate": start.isoformat(),
                "endDate": end.isoformat(),
                "items": [r.to_dict() for r in rows],
            }
        )

    @app.route("/schools/<school_id>/attendance/export", methods=["GET"], endpoint="attendance_export")
    def export(school_id: str):
        school, class_ids = report_scope(school_id)
        start, end = report_range(school)
        rows = service.report(school, start, end, class_ids=class_ids)
        output = service.export_xlsx(school, rows)
        return send_file(
            output,
            mimetype=XLSX_MIMETYPE,
            as_attachment=True,
            download_name=f"attendance_{start.strftime('%Y%m%d')}_{end.strftime('%Y%m%d')}.xlsx",
        )

    @app.route("/attendance/<attendance_id>", methods=["PUT"], endpoint="update_attendance")
    def update_record(attendance_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN, Role.TEACHER)
        record = service.get_record(attendance_id)
        authz.require_school_scope(user, record.school_id)
        student = authz.student_for_user(user, record.student_id)
        authz.require_class_scope(user, student.class_id)
        updated = service.update_record(record, json_body(), role=user.role)
        return jsonify(updated.to_dict())

    @app.route("/schools/<school_id>/attendance/upsert", methods=["POST"], endpoint="upsert_attendance")
    def upsert_record(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN, Role.TEACHER)
        authz.require_school_scope(user, school_id)
        data = json_body()
        student = authz.student_for_user(user, str(data.get("studentId") or ""))
        if student.school_id != school_id:
            raise NotFoundError("Student not found")
        if user.role == Role.TEACHER and not student.class_id:
            raise ValidationError("Student has no assigned class")
        authz.require_class_scope(user, student.class_id)
        record = service.upsert_record(student, data, role=user.role)
        return jsonify(record.to_dict())

    @app.route("/attendance/bulk", methods=["PUT"], endpoint="bulk_update_attendance")
    def bulk_update():
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        school_id = None if user.is_super_admin else user.school_id
        return jsonify({"updated": service.bulk_update(school_id, json_body())})
