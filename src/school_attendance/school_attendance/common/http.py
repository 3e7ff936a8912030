from __future__ import annotations

import logging
from typing import Any, Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from ..core.exceptions import DomainError, ValidationError

logger = logging.getLogger("api")


def send_http_error(err: Exception):
    """Map any exception to a JSON ``{"error": ...}`` response."""

    if isinstance(err, DomainError):
        body: dict[str, Any] = {"error": err.message}
        body.update(err.details)
        if err.status_code >= 500:
            logger.error("API Error - %s %s: %s", request.method, request.path, err.message)
        return jsonify(body), err.status_code

    if isinstance(err, HTTPException):
        return jsonify({"error": err.description or err.name}), err.code or 500

    logger.exception("API Error - %s %s", request.method, request.path)
    return jsonify({"error": "Internal server error"}), 500


def register_error_handlers(app: Flask) -> None:
    app.register_error_handler(DomainError, send_http_error)
    app.register_error_handler(HTTPException, send_http_error)
    app.register_error_handler(Exception, send_http_error)


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON object body expected")
    return data


def query_flag(name: str, default: bool = False) -> bool:
    raw: Optional[str] = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def get_client_ip() -> Optional[str]:
    if request.headers.get("X-Forwarded-For"):
        return request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if request.headers.get("X-Real-IP"):
        return request.headers.get("X-Real-IP")
    return request.remote_addr
