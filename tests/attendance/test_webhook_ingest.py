from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime

import pytest

from src.school_attendance.school_attendance.attendance.ingest import WebhookIngestService
from src.school_attendance.school_attendance.attendance.webhook import build_event_key, normalize_event
from src.school_attendance.school_attendance.core.enums import AttendanceStatus
from src.school_attendance.school_attendance.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from src.school_attendance.school_attendance.students.model import Student

# 11:00 in Asia/Tashkent
NOW = datetime(2026, 3, 2, 6, 0)


def _event(employee_no="1001", at="2026-03-02T08:05:00+05:00", device="SN-IN", sub_event=75) -> dict:
    return {
        "deviceID": device,
        "dateTime": at,
        "AccessControllerEvent": {"subEventType": sub_event, "employeeNoString": employee_no, "name": "Ali"},
    }


@pytest.fixture
def student(world):
    student = Student(
        id="st-1",
        school_id=world.school.id,
        class_id=world.class_a.id,
        device_student_id="1001",
        name="Karimov Ali",
        first_name="Ali",
        last_name="Karimov",
    )
    world.students.create(student)
    return student


def _service(world, **kwargs) -> WebhookIngestService:
    return WebhookIngestService(
        world.schools,
        world.students,
        world.classes,
        world.attendance,
        world.container.device_service,
        world.container.broadcaster,
        clock=lambda: NOW,
        **kwargs,
    )


@pytest.fixture
def ingest(world):
    return _service(world)


def _daily(world, student):
    return next(r for r in world.attendance.daily.values() if r.student_id == student.id)


def test_normalize_keeps_only_successful_auth_events():
    assert normalize_event(_event(sub_event=76)) is None
    assert normalize_event({"AccessControllerEvent": {"subEventType": 75}}) is None

    normalized = normalize_event(_event())

    assert normalized.employee_no == "1001"
    assert normalized.device_id == "SN-IN"


def test_event_key_depends_on_direction():
    assert build_event_key("SN", "1", "t", "in") != build_event_key("SN", "1", "t", "out")


def test_ignored_payload(world, ingest):
    result = ingest.ingest(world.school, "in", _event(sub_event=76))

    assert result == {"ok": True, "ignored": True}
    assert world.attendance.events == {}


@pytest.mark.parametrize(
    "scan, status, late_minutes",
    [
        ("2026-03-02T08:05:00+05:00", AttendanceStatus.PRESENT, None),
        ("2026-03-02T08:30:00+05:00", AttendanceStatus.LATE, 15),
        ("2026-03-02T11:30:00+05:00", AttendanceStatus.ABSENT, None),
    ],
)
def test_first_in_scan_is_classified(world, ingest, student, scan, status, late_minutes):
    result = ingest.ingest(world.school, "in", _event(at=scan))

    record = _daily(world, student)
    assert result["event"]["student"]["classId"] == world.class_a.id
    assert record.status == status
    assert record.late_minutes == late_minutes
    assert record.currently_in_school is True
    assert record.scan_count == 1


def test_repeat_scan_inside_interval_is_ignored(world, ingest, student):
    ingest.ingest(world.school, "in", _event(at="2026-03-02T08:05:00+05:00"))

    result = ingest.ingest(world.school, "in", _event(at="2026-03-02T08:05:30+05:00"))

    assert result == {"ok": True, "ignored": True, "reason": "duplicate_scan"}
    assert len(world.attendance.events) == 1
    assert _daily(world, student).scan_count == 1


def test_same_event_twice_is_duplicate_event(world, student):
    ingest = _service(world, min_scan_interval_seconds=0)
    ingest.ingest(world.school, "in", _event())

    result = ingest.ingest(world.school, "in", _event())

    assert result["reason"] == "duplicate_event"
    assert len(world.attendance.events) == 1
    assert _daily(world, student).scan_count == 1


def test_out_before_in_creates_present_row(world, ingest, student):
    ingest.ingest(world.school, "out", _event(at="2026-03-02T09:00:00+05:00", device="SN-OUT"))

    record = _daily(world, student)
    assert record.status == AttendanceStatus.PRESENT
    assert record.first_scan_time is None
    assert record.currently_in_school is False
    assert record.notes == "OUT before first IN"


def test_in_then_out_accumulates_time_on_premises(world, ingest, student):
    ingest.ingest(world.school, "in", _event(at="2026-03-02T08:00:00+05:00"))
    ingest.ingest(world.school, "out", _event(at="2026-03-02T10:30:00+05:00", device="SN-OUT"))

    record = _daily(world, student)
    assert record.total_time_on_premises == 150
    assert record.currently_in_school is False
    assert record.scan_count == 2
    assert record.status == AttendanceStatus.PRESENT


def test_unknown_employee_stores_event_only(world, ingest):
    result = ingest.ingest(world.school, "in", _event(employee_no="9999"))

    assert result["event"]["student"] is None
    assert result["event"]["studentId"] is None
    assert len(world.attendance.events) == 1
    assert world.attendance.daily == {}


def test_unknown_terminal_is_auto_registered(world, ingest, student):
    result = ingest.ingest(world.school, "in", _event(device="SN-NEW"))

    device = world.devices.get_by_external_id("SN-NEW")
    assert device is not None
    assert result["event"]["deviceId"] == device.id


def test_backlogged_event_does_not_move_last_seen_backwards(world, ingest, student):
    world.devices.items[world.entrance.id] = replace(world.entrance, last_seen_at=NOW)

    ingest.ingest(world.school, "in", _event(at="2026-03-02T08:05:00+05:00"))

    assert world.devices.get_by_id(world.entrance.id).last_seen_at == NOW


def test_new_event_advances_last_seen(world, ingest, student):
    ingest.ingest(world.school, "in", _event(at="2026-03-02T08:05:00+05:00"))

    assert world.devices.get_by_id(world.entrance.id).last_seen_at == datetime(2026, 3, 2, 3, 5)


def test_todays_event_is_broadcast_to_matching_clients(world, ingest, student):
    broadcaster = world.container.broadcaster
    same_class = broadcaster.subscribe(world.school.id, [world.class_a.id])
    other_class = broadcaster.subscribe(world.school.id, [world.class_b.id])
    admin_feed = broadcaster.subscribe(None)

    ingest.ingest(world.school, "in", _event())

    assert same_class.queue.get_nowait()["type"] == "attendance"
    assert other_class.queue.empty()
    assert admin_feed.queue.get_nowait()["type"] == "attendance_event"


def test_past_day_event_is_not_broadcast(world, ingest, student):
    sub = world.container.broadcaster.subscribe(world.school.id)

    ingest.ingest(world.school, "in", _event(at="2026-03-01T08:05:00+05:00"))

    assert sub.queue.empty()
    assert _daily(world, student).date.isoformat() == "2026-03-01"


def test_resolve_school_checks_direction_and_secret(world):
    ingest = _service(world, enforce_secret=True)

    with pytest.raises(ValidationError):
        ingest.resolve_school(world.school.id, "sideways", "in-secret")
    with pytest.raises(NotFoundError):
        ingest.resolve_school("missing", "in", "in-secret")
    with pytest.raises(AuthorizationError):
        ingest.resolve_school(world.school.id, "in", "out-secret")

    with pytest.raises(AuthorizationError):
        ingest.resolve_school(world.school.id, "in", "s\u00e9cret")

    assert ingest.resolve_school(world.school.id, "out", "out-secret") is world.school


def test_webhook_route_accepts_json(world, client, student):
    resp = client.post(f"/webhook/{world.school.id}/in", json=_event())

    assert resp.status_code == 200
    assert resp.get_json()["ok"] is True
    assert len(world.attendance.events) == 1


def test_webhook_route_accepts_multipart(world, client, student):
    resp = client.post(
        f"/webhook/{world.school.id}/in",
        data={"AccessControllerEvent": json.dumps(_event())},
        content_type="multipart/form-data",
    )

    assert resp.status_code == 200
    assert resp.get_json()["event"]["student"]["id"] == student.id


def test_webhook_route_rejects_bad_input(world, client):
    assert client.post(f"/webhook/{world.school.id}/sideways", json=_event()).status_code == 400
    bad_json = client.post(
        f"/webhook/{world.school.id}/in",
        data={"AccessControllerEvent": "{not json"},
        content_type="multipart/form-data",
    )
    assert bad_json.status_code == 400
