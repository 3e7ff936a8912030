from __future__ import annotations

from datetime import datetime

from flask import Flask, Response, jsonify, stream_with_context

from ..container import Container
from ..core.enums import Role
from ..users.session import current_user

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def register(app: Flask, container: Container) -> None:
    authz = container.authz
    broadcaster = container.broadcaster

    def sse_response(stream) -> Response:
        return Response(stream_with_context(stream), mimetype="text/event-stream", headers=SSE_HEADERS)

    @app.route("/schools/<school_id>/events/stream", methods=["GET"], endpoint="school_events_stream")
    def school_stream(school_id: str):
        user = current_user()
        authz.require_school_scope(user, school_id)
        class_ids = authz.allowed_class_ids(user)
        sub = broadcaster.subscribe(school_id, class_ids)
        initial = {"type": "connected", "schoolId": school_id, "serverTime": datetime.now().isoformat()}
        return sse_response(
            broadcaster.stream(sub, initial=initial, heartbeat_seconds=container.sse_heartbeat_seconds)
        )

    @app.route("/admin/events/stream", methods=["GET"], endpoint="admin_events_stream")
    def admin_stream():
        user = current_user()
        authz.require_roles(user, Role.SUPER_ADMIN)
        sub = broadcaster.subscribe(None)
        initial = {"type": "connected", "schoolId": None, "serverTime": datetime.now().isoformat()}
        return sse_response(
            broadcaster.stream(sub, initial=initial, heartbeat_seconds=container.sse_heartbeat_seconds)
        )

    @app.route("/admin/events/stats", methods=["GET"], endpoint="admin_events_stats")
    def stats():
        user = current_user()
        authz.require_roles(user, Role.SUPER_ADMIN)
        return jsonify(broadcaster.stats())
