from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .attendance.ingest import WebhookIngestService
from .attendance.jobs import AttendanceJobs
from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.repository import AttendanceRepository
from .attendance.service import AttendanceService
from .classes.mysql_class_repository import MySQLClassRepository
from .classes.repository import ClassRepository
from .classes.service import ClassService
from .core.constants import (
    DEVICE_STUDENT_ID_DEFAULT_LENGTH,
    IMPORT_MAX_FILE_BYTES,
    MIN_SCAN_INTERVAL_SECONDS,
    SSE_HEARTBEAT_SECONDS,
)
from .dashboard.service import DashboardService
from .database.connection import DatabaseConnection
from .devices.mysql_device_repository import MySQLDeviceRepository
from .devices.repository import DeviceRepository
from .devices.service import DeviceService
from .realtime.broadcaster import EventBroadcaster
from .schools.mysql_school_repository import MySQLSchoolRepository
from .schools.repository import SchoolRepository
from .schools.service import SchoolService
from .students.audit import ProvisioningAudit
from .students.device_import import DeviceImportService
from .students.import_runtime import ImportRuntime
from .students.mysql_provisioning_log_repository import MySQLProvisioningLogRepository
from .students.mysql_student_repository import MySQLStudentRepository
from .students.provisioning import ProvisioningService
from .students.provisioning_log_repository import ProvisioningLogRepository
from .students.repository import StudentRepository
from .students.service import StudentService
from .users.authz import Authorizer
from .users.mysql_user_repository import MySQLUserRepository
from .users.repository import UserRepository
from .users.service import AuthService, UserService


@dataclass(frozen=True)
class Container:
    schools_repo: SchoolRepository
    users_repo: UserRepository
    classes_repo: ClassRepository
    devices_repo: DeviceRepository
    students_repo: StudentRepository
    attendance_repo: AttendanceRepository
    logs_repo: ProvisioningLogRepository

    broadcaster: EventBroadcaster
    import_runtime: ImportRuntime
    audit: ProvisioningAudit
    authz: Authorizer

    auth_service: AuthService
    user_service: UserService
    school_service: SchoolService
    class_service: ClassService
    device_service: DeviceService
    student_service: StudentService
    device_import_service: DeviceImportService
    provisioning_service: ProvisioningService
    attendance_service: AttendanceService
    webhook_service: WebhookIngestService
    dashboard_service: DashboardService
    jobs: AttendanceJobs

    provisioning_token: str = ""
    webhook_secret_header: str = "x-webhook-secret"
    sse_heartbeat_seconds: int = SSE_HEARTBEAT_SECONDS


def assemble_container(
    *,
    schools_repo: SchoolRepository,
    users_repo: UserRepository,
    classes_repo: ClassRepository,
    devices_repo: DeviceRepository,
    students_repo: StudentRepository,
    attendance_repo: AttendanceRepository,
    logs_repo: ProvisioningLogRepository,
    settings: Any = None,
) -> Container:
    """Wire services around the given repositories (MySQL or in-memory)."""

    def setting(name: str, default: Any) -> Any:
        return getattr(settings, name, default) if settings is not None else default

    uploads_dir = str(setting("UPLOADS_DIR", "uploads"))

    broadcaster = EventBroadcaster()
    import_runtime = ImportRuntime()
    audit = ProvisioningAudit(logs_repo)
    authz = Authorizer(users_repo, classes_repo, students_repo, devices_repo, audit)

    auth_service = AuthService(users_repo)
    user_service = UserService(users_repo, classes_repo)
    school_service = SchoolService(schools_repo, user_service)
    class_service = ClassService(classes_repo, students_repo, attendance_repo)
    device_service = DeviceService(
        devices_repo,
        auto_register=bool(setting("DEVICE_AUTO_REGISTER_ENABLED", False)),
    )
    student_service = StudentService(
        students_repo,
        classes_repo,
        attendance_repo,
        class_service,
        uploads_dir=uploads_dir,
        max_import_bytes=int(setting("IMPORT_MAX_FILE_BYTES", IMPORT_MAX_FILE_BYTES)),
    )
    device_import_service = DeviceImportService(students_repo, classes_repo, import_runtime, audit)
    provisioning_service = ProvisioningService(
        students_repo,
        classes_repo,
        devices_repo,
        device_service,
        audit,
        id_strategy=str(setting("DEVICE_STUDENT_ID_STRATEGY", "numeric")),
        id_length=int(setting("DEVICE_STUDENT_ID_LENGTH", DEVICE_STUDENT_ID_DEFAULT_LENGTH)),
        uploads_dir=uploads_dir,
    )
    attendance_service = AttendanceService(attendance_repo, students_repo, classes_repo)
    webhook_service = WebhookIngestService(
        schools_repo,
        students_repo,
        classes_repo,
        attendance_repo,
        device_service,
        broadcaster,
        min_scan_interval_seconds=int(setting("MIN_SCAN_INTERVAL_SECONDS", MIN_SCAN_INTERVAL_SECONDS)),
        enforce_secret=bool(setting("WEBHOOK_ENFORCE_SECRET", False)),
        uploads_dir=uploads_dir,
    )
    dashboard_service = DashboardService(schools_repo, classes_repo, students_repo, attendance_repo)
    jobs = AttendanceJobs(schools_repo, classes_repo, students_repo, attendance_repo, device_service)

    return Container(
        schools_repo=schools_repo,
        users_repo=users_repo,
        classes_repo=classes_repo,
        devices_repo=devices_repo,
        students_repo=students_repo,
        attendance_repo=attendance_repo,
        logs_repo=logs_repo,
        broadcaster=broadcaster,
        import_runtime=import_runtime,
        audit=audit,
        authz=authz,
        auth_service=auth_service,
        user_service=user_service,
        school_service=school_service,
        class_service=class_service,
        device_service=device_service,
        student_service=student_service,
        device_import_service=device_import_service,
        provisioning_service=provisioning_service,
        attendance_service=attendance_service,
        webhook_service=webhook_service,
        dashboard_service=dashboard_service,
        jobs=jobs,
        provisioning_token=str(setting("PROVISIONING_TOKEN", "") or ""),
        webhook_secret_header=str(setting("WEBHOOK_SECRET_HEADER", "x-webhook-secret")),
        sse_heartbeat_seconds=int(setting("SSE_HEARTBEAT_SECONDS", SSE_HEARTBEAT_SECONDS)),
    )


def build_container(*, db_config: dict, settings: Any = None) -> Container:
    conn = DatabaseConnection.from_dict(db_config)
    return assemble_container(
        schools_repo=MySQLSchoolRepository(conn),
        users_repo=MySQLUserRepository(conn),
        classes_repo=MySQLClassRepository(conn),
        devices_repo=MySQLDeviceRepository(conn),
        students_repo=MySQLStudentRepository(conn),
        attendance_repo=MySQLAttendanceRepository(conn),
        logs_repo=MySQLProvisioningLogRepository(conn),
        settings=settings,
    )
