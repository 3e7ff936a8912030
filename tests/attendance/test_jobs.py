from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime

from src.school_attendance.school_attendance.attendance.jobs import AUTO_CLOSE_NOTE
from src.school_attendance.school_attendance.attendance.model import AttendanceEvent, DailyAttendance
from src.school_attendance.school_attendance.core.enums import AttendanceStatus, EventType
from src.school_attendance.school_attendance.students.model import Student

# 11:30 in Asia/Tashkent: class 5A (08:00) is past its cutoff, 6B (09:00) is not
NOW = datetime(2026, 3, 2, 6, 30)
TODAY = date(2026, 3, 2)


def _student(world, student_id, class_id):
    world.students.create(
        Student(
            id=student_id,
            school_id=world.school.id,
            class_id=class_id,
            device_student_id=student_id.split("-")[-1],
            name=f"Student {student_id}",
            first_name="Student",
            last_name=student_id,
        )
    )


def test_mark_absent_only_for_classes_past_cutoff(world):
    _student(world, "st-1", world.class_a.id)
    _student(world, "st-2", world.class_a.id)
    _student(world, "st-3", world.class_b.id)
    world.attendance.create_daily(
        DailyAttendance(id="d-1", school_id=world.school.id, student_id="st-2", date=TODAY, status=AttendanceStatus.LATE)
    )

    created = world.container.jobs.mark_absent(NOW)

    assert created == 1
    assert world.attendance.get_daily_for_student("st-1", TODAY).status == AttendanceStatus.ABSENT
    assert world.attendance.get_daily_for_student("st-2", TODAY).status == AttendanceStatus.LATE
    assert world.attendance.get_daily_for_student("st-3", TODAY) is None
    assert world.container.jobs.mark_absent(NOW) == 0


def test_close_open_days_leaves_today_alone(world):
    for day_id, day in (("old", date(2026, 3, 1)), ("today", TODAY)):
        world.attendance.create_daily(
            DailyAttendance(
                id=day_id,
                school_id=world.school.id,
                student_id=f"st-{day_id}",
                date=day,
                status=AttendanceStatus.PRESENT,
                currently_in_school=True,
            )
        )

    assert world.container.jobs.close_open_days(NOW) == 1
    assert world.attendance.daily["old"].currently_in_school is False
    assert world.attendance.daily["old"].notes == AUTO_CLOSE_NOTE
    assert world.attendance.daily["today"].currently_in_school is True


def test_device_health_flips_active_flags(world):
    world.devices.items[world.entrance.id] = replace(world.entrance, last_seen_at=datetime(2026, 3, 2, 6, 0))
    world.devices.items[world.exit.id] = replace(world.exit, is_active=True, last_seen_at=datetime(2026, 3, 1, 6, 0))

    result = world.container.jobs.refresh_device_health(NOW)

    assert result == {"deactivated": 1, "reactivated": 0}
    assert world.devices.get_by_id(world.exit.id).is_active is False

    world.devices.mark_seen(world.exit.id, NOW)
    world.devices.items[world.exit.id] = replace(world.devices.items[world.exit.id], is_active=False)

    assert world.container.jobs.refresh_device_health(NOW) == {"deactivated": 0, "reactivated": 1}


def test_purge_old_events(world):
    for event_id, at in (("old", datetime(2025, 1, 1)), ("new", NOW)):
        world.attendance.create_event(
            AttendanceEvent(
                id=event_id,
                event_key=event_id,
                school_id=world.school.id,
                student_id=None,
                device_id=None,
                event_type=EventType.IN,
                timestamp=at,
            )
        )

    assert world.container.jobs.purge_old_events(NOW, days=90) == 1
    assert list(world.attendance.events) == ["new"]
