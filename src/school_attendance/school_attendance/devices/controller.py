from __future__ import annotations

from flask import Flask, jsonify

from ..common.http import json_body
from ..container import Container
from ..core.enums import Role
from ..users.session import current_user


def register(app: Flask, container: Container) -> None:
    authz = container.authz

    @app.route("/schools/<school_id>/devices", methods=["GET"], endpoint="list_devices")
    def list_devices(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        authz.require_school_scope(user, school_id)
        devices = container.device_service.list_for_school(school_id)
        return jsonify([d.to_dict() for d in devices])

    @app.route("/schools/<school_id>/devices", methods=["POST"], endpoint="create_device")
    def create_device(school_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        authz.require_school_scope(user, school_id)
        device = container.device_service.create(school_id, json_body())
        return jsonify(device.to_dict()), 201

    @app.route("/devices/<device_id>", methods=["PUT"], endpoint="update_device")
    def update_device(device_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        device = authz.device_for_user(user, device_id)
        updated = container.device_service.update(device, json_body())
        return jsonify(updated.to_dict())

    @app.route("/devices/<device_id>", methods=["DELETE"], endpoint="delete_device")
    def delete_device(device_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        device = authz.device_for_user(user, device_id)
        container.device_service.delete(device)
        return jsonify({"ok": True})

    @app.route("/devices/<device_id>/webhook-health", methods=["GET"], endpoint="device_webhook_health")
    def webhook_health(device_id: str):
        user = current_user()
        authz.require_roles(user, Role.SCHOOL_ADMIN)
        device = authz.device_for_user(user, device_id)
        return jsonify(container.device_service.webhook_health(device))
