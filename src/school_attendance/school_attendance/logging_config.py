"""Logging setup for the school attendance service."""
from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from pathlib import Path
from typing import Optional

NAMED_LOGGERS = ("security", "api", "database", "provisioning", "webhook")


def setup_logging(app, log_level: str = "INFO", log_dir: str = "logs", max_log_size: int = 10 * 1024 * 1024, backup_count: int = 5) -> None:
    """Configure root, Flask and named loggers.

    Args:
        app: Flask app instance
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_dir: directory for rotating log files
        max_log_size: max bytes per log file before rotation
        backup_count: rotated files to keep
    """

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, str(log_level).upper(), logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    def rotating(filename: str, handler_level: int) -> logging.Handler:
        handler = logging.handlers.RotatingFileHandler(
            directory / filename,
            maxBytes=max_log_size,
            backupCount=backup_count,
            encoding="utf-8",
        )
        handler.setLevel(handler_level)
        handler.setFormatter(formatter)
        return handler

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.addHandler(rotating("attendance.log", level))
    root_logger.addHandler(rotating("errors.log", logging.ERROR))
    root_logger.addHandler(console_handler)

    security = logging.getLogger("security")
    for handler in security.handlers[:]:
        security.removeHandler(handler)
    security.addHandler(rotating("security.log", logging.INFO))

    for name in NAMED_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if level < logging.WARNING else level)

    app.logger.setLevel(level)

    app.logger.info("=" * 50)
    app.logger.info("SCHOOL ATTENDANCE STARTUP")
    app.logger.info("Timestamp: %s", datetime.now().isoformat())
    app.logger.info("Log Level: %s", logging.getLevelName(level))
    app.logger.info("Log Directory: %s", directory.absolute())
    app.logger.info("=" * 50)


class SecurityLogger:
    """Security events: logins and denied access."""

    def __init__(self):
        self.logger = logging.getLogger("security")

    def log_login(self, email: str, ip_address: Optional[str], success: bool = True) -> None:
        status = "SUCCESS" if success else "FAILED"
        self.logger.info("LOGIN %s - User: %s, IP: %s", status, email, ip_address)

    def log_logout(self, email: Optional[str], ip_address: Optional[str]) -> None:
        self.logger.info("LOGOUT - User: %s, IP: %s", email, ip_address)

    def log_access_denied(self, *, user_id: Optional[str], role: Optional[str], reason: str, school_id: Optional[str] = None) -> None:
        self.logger.warning(
            "ACCESS DENIED - User: %s, Role: %s, School: %s, Reason: %s",
            user_id,
            role,
            school_id,
            reason,
        )


class APILogger:
    """Request / response lines for the JSON API."""

    def __init__(self):
        self.logger = logging.getLogger("api")

    def log_request(self, method: str, endpoint: Optional[str], user_id: Optional[str] = None, ip_address: Optional[str] = None) -> None:
        user_info = f", User: {user_id}" if user_id else ""
        ip_info = f", IP: {ip_address}" if ip_address else ""
        self.logger.info("API Request - %s %s%s%s", method, endpoint, user_info, ip_info)

    def log_response(self, endpoint: Optional[str], status_code: int, duration: Optional[float] = None) -> None:
        duration_info = f", Duration: {duration:.3f}s" if duration else ""
        self.logger.info("API Response - %s, Status: %s%s", endpoint, status_code, duration_info)


security_logger = SecurityLogger()
api_logger = APILogger()
