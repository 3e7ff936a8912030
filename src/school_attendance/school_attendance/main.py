from __future__ import annotations

import importlib
import time
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, g, request, session

from config import get_settings_module

from .attendance.controller import register as register_attendance
from .classes.controller import register as register_classes
from .common.http import get_client_ip, register_error_handlers
from .container import Container, build_container
from .dashboard.controller import register as register_dashboard
from .database.bootstrap import apply_schema, ensure_super_admin, list_tables
from .devices.controller import register as register_devices
from .logging_config import api_logger, setup_logging
from .realtime.controller import register as register_realtime
from .schools.controller import register as register_schools
from .students.controller import register as register_students
from .students.import_controller import register as register_student_import
from .students.provisioning_controller import register as register_provisioning
from .users.controller import register as register_users


def create_app(container: Optional[Container] = None) -> Flask:
    """Build the Flask app; tests pass a container assembled from in-memory repositories."""

    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    db_config = getattr(settings, "DB_CONFIG")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))
    app.config["UPLOADS_DIR"] = getattr(settings, "UPLOADS_DIR", "uploads")
    app.config["MAX_CONTENT_LENGTH"] = int(getattr(settings, "IMPORT_MAX_FILE_BYTES", 50 * 1024 * 1024)) + 1024 * 1024
    app.config["JSON_SORT_KEYS"] = False

    setup_logging(
        app,
        log_level=getattr(settings, "LOG_LEVEL", "INFO"),
        log_dir=getattr(settings, "LOG_DIR", "logs"),
    )
    app.logger.info(
        "settings=%s db=%s@%s:%s/%s",
        settings_module,
        db_config.get("user"),
        db_config.get("host"),
        db_config.get("port", 3306),
        db_config.get("database"),
    )

    if container is None:
        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            schema_path = Path(__file__).resolve().parents[3] / "database" / "schema.sql"
            apply_schema(db_config, schema_path=schema_path)
            app.logger.info("Schema ready (tables=%s)", len(list_tables(db_config)))
        if bool(getattr(settings, "AUTO_SEED_DB", False)):
            ensure_super_admin(
                db_config,
                email=getattr(settings, "SUPERADMIN_EMAIL"),
                password=getattr(settings, "SUPERADMIN_PASSWORD"),
            )
        container = build_container(db_config=db_config, settings=settings)

    app.extensions["school_attendance"] = container
    register_error_handlers(app)

    @app.before_request
    def log_request():
        g.request_started = time.monotonic()
        if request.path.startswith("/webhook/") or request.path.endswith("/stream"):
            return
        api_logger.log_request(request.method, request.path, session.get("user_id"), get_client_ip())

    @app.after_request
    def log_response(response):
        started = g.get("request_started")
        if started is not None and not request.path.endswith("/stream"):
            api_logger.log_response(request.path, response.status_code, time.monotonic() - started)
        return response

    register_users(app, container)
    register_schools(app, container)
    register_classes(app, container)
    register_devices(app, container)
    register_students(app, container)
    register_student_import(app, container)
    register_provisioning(app, container)
    register_attendance(app, container)
    register_dashboard(app, container)
    register_realtime(app, container)

    return app
