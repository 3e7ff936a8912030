from __future__ import annotations

from datetime import timedelta

from flask import Flask, jsonify, request, send_file

from ..common.datetime_utils import local_date, now_utc, parse_iso_date
from ..common.http import json_body, query_flag
from ..container import Container
from ..core.enums import Role
from ..core.exceptions import ValidationError
from ..users.session import current_user
from .excel import XLSX_MIMETYPE


def register(app: Flask, container: Container) -> None:
    authz = container.authz
    service = container.student_service

    def student_in_scope(student_id: str, *roles: Role):
        user = current_user()
        authz.require_roles(user, *roles)
        student = authz.student_for_user(user, student_id)
        authz.require_class_scope(user, student.class_id)
        return user, student

    @app.route("/schools/<school_id>/students", methods=["GET"], endpoint="list_students")
    def list_students(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN, Role.TEACHER, Role.GUARD)
        authz.require_school_scope(user, school_id)
        school = container.school_service.get(school_id)
        class_ids = authz.teacher_class_filter(user, request.args.get("classId") or None)
        result = service.list_students(
            school,
            page=request.args.get("page", 1, type=int),
            search=request.args.get("search"),
            class_ids=class_ids,
            period=request.args.get("period"),
            start_date=request.args.get("startDate"),
            end_date=request.args.get("endDate"),
        )
        return jsonify(result)

    @app.route("/students/<student_id>", methods=["GET"], endpoint="get_student")
    def get_student(student_id: str):
        _, student = student_in_scope(student_id, Role.SCHOOL_ADMIN, Role.TEACHER, Role.GUARD)
        out = student.to_dict()
        school_class = container.classes_repo.get_by_id(student.class_id) if student.class_id else None
        out["class"] = school_class.to_dict() if school_class else None
        return jsonify(out)

    @app.route("/students/<student_id>", methods=["PUT"], endpoint="update_student")
    def update_student(student_id: str):
        _, student = student_in_scope(student_id, Role.SCHOOL_ADMIN)
        updated = service.update(student, json_body())
        return jsonify(updated.to_dict())

    @app.route("/students/<student_id>", methods=["DELETE"], endpoint="delete_student")
    def delete_student(student_id: str):
        _, student = student_in_scope(student_id, Role.SCHOOL_ADMIN)
        service.delete(student)
        return jsonify({"ok": True})

    @app.route("/students/<student_id>/attendance", methods=["GET"], endpoint="student_attendance")
    def student_attendance(student_id: str):
        _, student = student_in_scope(student_id, Role.SCHOOL_ADMIN, Role.TEACHER, Role.GUARD)
        school = container.school_service.get(student.school_id)
        today = local_date(now_utc(), school.timezone)
        start_raw, end_raw = request.args.get("startDate"), request.args.get("endDate")
        end = parse_iso_date(end_raw) if end_raw else today
        start = parse_iso_date(start_raw) if start_raw else end - timedelta(days=29)
        rows = container.attendance_service.student_history(student, start, end)
        return jsonify([r.to_dict() for r in rows])

    @app.route("/schools/<school_id>/students/template", methods=["GET"], endpoint="students_template")
    def template(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        authz.require_school_scope(user, school_id)
        output = service.template(school_id)
        return send_file(output, mimetype=XLSX_MIMETYPE, as_attachment=True, download_name="students_template.xlsx")

    @app.route("/schools/<school_id>/students/export", methods=["GET"], endpoint="students_export")
    def export(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN, Role.TEACHER)
        authz.require_school_scope(user, school_id)
        class_ids = authz.teacher_class_filter(user, request.args.get("classId") or None)
        output = service.export(school_id, class_ids=class_ids)
        return send_file(
            output,
            mimetype=XLSX_MIMETYPE,
            as_attachment=True,
            download_name=service.export_filename("students"),
        )

    @app.route("/schools/<school_id>/students/import", methods=["POST"], endpoint="students_import")
    def import_students(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        authz.require_school_scope(user, school_id)
        upload = request.files.get("file")
        if upload is None:
            raise ValidationError("No file uploaded")
        result = service.import_excel(
            school_id,
            content=upload.read(),
            filename=upload.filename or "",
            mimetype=upload.mimetype,
            create_missing_class=query_flag("createMissingClass"),
        )
        return jsonify(result)
