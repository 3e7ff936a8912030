from __future__ import annotations

import os
from dataclasses import dataclass
from types import SimpleNamespace

import pytest
from werkzeug.security import generate_password_hash

os.environ.setdefault("APP_ENV", "testing")

from src.school_attendance.school_attendance.classes.model import SchoolClass
from src.school_attendance.school_attendance.container import Container, assemble_container
from src.school_attendance.school_attendance.core.enums import DeviceType, Role
from src.school_attendance.school_attendance.devices.model import Device
from src.school_attendance.school_attendance.main import create_app
from src.school_attendance.school_attendance.schools.model import School
from src.school_attendance.school_attendance.users.model import AuthUser, User

from tests.fakes import (
    InMemoryAttendance,
    InMemoryClasses,
    InMemoryDevices,
    InMemoryProvisioningLogs,
    InMemorySchools,
    InMemoryStudents,
    InMemoryUsers,
)

PASSWORD = "secret123"
PROVISIONING_TOKEN = "test-provisioning-token"


@dataclass
class World:
    container: Container
    schools: InMemorySchools
    users: InMemoryUsers
    classes: InMemoryClasses
    devices: InMemoryDevices
    students: InMemoryStudents
    attendance: InMemoryAttendance
    logs: InMemoryProvisioningLogs
    school: School
    other_school: School
    class_a: SchoolClass
    class_b: SchoolClass
    entrance: Device
    exit: Device
    super_admin: User
    admin: User
    teacher: User
    guard: User
    other_admin: User

    def auth(self, user: User) -> AuthUser:
        return AuthUser(id=user.id, name=user.name, role=user.role, school_id=user.school_id, email=user.email)


def _user(user_id: str, role: Role, school_id):
    return User(
        id=user_id,
        name=user_id.replace("-", " ").title(),
        email=f"{user_id}@school.test",
        password_hash=generate_password_hash(PASSWORD),
        role=role,
        school_id=school_id,
    )


@pytest.fixture
def settings(tmp_path):
    return SimpleNamespace(
        UPLOADS_DIR=str(tmp_path / "uploads"),
        PROVISIONING_TOKEN=PROVISIONING_TOKEN,
        DEVICE_AUTO_REGISTER_ENABLED=True,
        DEVICE_STUDENT_ID_STRATEGY="numeric",
        DEVICE_STUDENT_ID_LENGTH=10,
        MIN_SCAN_INTERVAL_SECONDS=60,
        WEBHOOK_ENFORCE_SECRET=False,
        WEBHOOK_SECRET_HEADER="x-webhook-secret",
        IMPORT_MAX_FILE_BYTES=5 * 1024 * 1024,
        SSE_HEARTBEAT_SECONDS=1,
    )


@pytest.fixture
def world(settings) -> World:
    school = School(
        id="school-1",
        name="School No. 1",
        timezone="Asia/Tashkent",
        webhook_secret_in="in-secret",
        webhook_secret_out="out-secret",
    )
    other_school = School(id="school-2", name="School No. 2", timezone="Asia/Tashkent")
    class_a = SchoolClass(id="class-a", school_id=school.id, name="5A", grade_level=5, start_time="08:00")
    class_b = SchoolClass(id="class-b", school_id=school.id, name="6B", grade_level=6, start_time="09:00")
    entrance = Device(id="dev-in", school_id=school.id, name="Gate IN", device_id="SN-IN", type=DeviceType.ENTRANCE)
    exit_ = Device(id="dev-out", school_id=school.id, name="Gate OUT", device_id="SN-OUT", type=DeviceType.EXIT)

    super_admin = _user("super-admin", Role.SUPER_ADMIN, None)
    admin = _user("school-admin", Role.SCHOOL_ADMIN, school.id)
    teacher = _user("teacher-a", Role.TEACHER, school.id)
    guard = _user("guard", Role.GUARD, school.id)
    other_admin = _user("other-admin", Role.SCHOOL_ADMIN, other_school.id)

    schools = InMemorySchools(school, other_school)
    users = InMemoryUsers(super_admin, admin, teacher, guard, other_admin)
    users.set_teacher_classes(teacher.id, [class_a.id])
    students = InMemoryStudents()
    classes = InMemoryClasses(class_a, class_b, students=students)
    attendance = InMemoryAttendance()
    devices = InMemoryDevices(entrance, exit_, attendance=attendance)
    logs = InMemoryProvisioningLogs()

    container = assemble_container(
        schools_repo=schools,
        users_repo=users,
        classes_repo=classes,
        devices_repo=devices,
        students_repo=students,
        attendance_repo=attendance,
        logs_repo=logs,
        settings=settings,
    )
    return World(
        container=container,
        schools=schools,
        users=users,
        classes=classes,
        devices=devices,
        students=students,
        attendance=attendance,
        logs=logs,
        school=school,
        other_school=other_school,
        class_a=class_a,
        class_b=class_b,
        entrance=entrance,
        exit=exit_,
        super_admin=super_admin,
        admin=admin,
        teacher=teacher,
        guard=guard,
        other_admin=other_admin,
    )


@pytest.fixture
def app(world, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    app = create_app(container=world.container)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    def _login(user: User):
        with client.session_transaction() as sess:
            sess["user_id"] = user.id
            sess["name"] = user.name
            sess["email"] = user.email
            sess["role"] = user.role.value
            sess["school_id"] = user.school_id
        return client

    return _login
