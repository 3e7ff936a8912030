from __future__ import annotations

import json

import pytest

from src.school_attendance.school_attendance.core.constants import SSE_CLIENT_QUEUE_SIZE
from src.school_attendance.school_attendance.realtime.broadcaster import EventBroadcaster, format_sse


def _event(class_id="class-a") -> dict:
    return {"id": "ev-1", "student": {"id": "st-1", "classId": class_id}}


def test_publish_respects_school_and_class_filters():
    broadcaster = EventBroadcaster()
    whole_school = broadcaster.subscribe("school-1")
    own_class = broadcaster.subscribe("school-1", ["class-a"])
    other_class = broadcaster.subscribe("school-1", ["class-b"])
    other_school = broadcaster.subscribe("school-2")
    everything = broadcaster.subscribe(None)

    delivered = broadcaster.publish_attendance("school-1", _event())

    assert delivered == 3
    message = whole_school.queue.get_nowait()
    assert message["type"] == "attendance"
    assert message["schoolId"] == "school-1"
    assert message["event"]["id"] == "ev-1"
    assert own_class.queue.qsize() == 1
    assert other_class.queue.empty()
    assert other_school.queue.empty()
    assert everything.queue.get_nowait()["type"] == "attendance_event"


def test_event_without_student_skips_class_filtered_clients():
    broadcaster = EventBroadcaster()
    teacher = broadcaster.subscribe("school-1", ["class-a"])

    assert broadcaster.publish_attendance("school-1", {"id": "ev-1", "student": None}) == 0
    assert teacher.queue.empty()


def test_full_queue_drops_the_client():
    broadcaster = EventBroadcaster()
    slow = broadcaster.subscribe("school-1")
    for _ in range(SSE_CLIENT_QUEUE_SIZE):
        broadcaster.publish_attendance("school-1", _event())

    assert broadcaster.publish_attendance("school-1", _event()) == 0
    assert broadcaster.stats()["total"] == 0
    assert slow.queue.full()
    assert slow.closed.is_set()


def test_stream_ends_once_client_is_dropped():
    broadcaster = EventBroadcaster()
    sub = broadcaster.subscribe("school-1")
    stream = broadcaster.stream(sub, initial={"type": "connected"}, heartbeat_seconds=0.01)
    assert next(stream) == format_sse({"type": "connected"})

    for _ in range(SSE_CLIENT_QUEUE_SIZE + 1):
        broadcaster.publish_attendance("school-1", _event())

    with pytest.raises(StopIteration):
        next(stream)
    assert broadcaster.stats()["total"] == 0


def test_stats_and_unsubscribe():
    broadcaster = EventBroadcaster()
    first = broadcaster.subscribe("school-1")
    broadcaster.subscribe("school-1")
    broadcaster.subscribe(None)

    assert broadcaster.stats() == {"total": 3, "bySchool": {"school-1": 2, "*": 1}}

    broadcaster.unsubscribe(first)
    broadcaster.unsubscribe(first)

    assert broadcaster.stats()["bySchool"] == {"school-1": 1, "*": 1}


def test_stream_sends_initial_message_then_heartbeat():
    broadcaster = EventBroadcaster()
    sub = broadcaster.subscribe("school-1")
    stream = broadcaster.stream(sub, initial={"type": "connected"}, heartbeat_seconds=0.01)

    assert next(stream) == format_sse({"type": "connected"})
    assert next(stream).startswith(": heartbeat")
    broadcaster.publish_attendance("school-1", _event())
    assert json.loads(next(stream)[len("data: "):])["type"] == "attendance"

    stream.close()
    assert broadcaster.stats()["total"] == 0


def test_format_sse():
    assert format_sse({"a": "ş"}) == 'data: {"a": "ş"}\n\n'


def test_school_stream_route(world, login):
    client = login(world.teacher)

    resp = client.get(f"/schools/{world.school.id}/events/stream")

    assert resp.status_code == 200
    assert resp.mimetype == "text/event-stream"
    first = next(iter(resp.response))
    payload = json.loads(first.decode()[len("data: "):])
    assert payload["type"] == "connected"
    assert payload["schoolId"] == world.school.id
    assert world.container.broadcaster.stats()["bySchool"] == {world.school.id: 1}
    resp.close()


def test_stream_routes_check_scope(world, login):
    assert login(world.other_admin).get(f"/schools/{world.school.id}/events/stream").status_code == 403
    assert login(world.admin).get("/admin/events/stream").status_code == 403
    assert login(world.super_admin).get("/admin/events/stats").get_json() == {"total": 0, "bySchool": {}}
