from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Vai trò người dùng dùng cho phân quyền."""

    SUPER_ADMIN = "SUPER_ADMIN"
    SCHOOL_ADMIN = "SCHOOL_ADMIN"
    TEACHER = "TEACHER"
    GUARD = "GUARD"


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"


class DeviceType(str, Enum):
    ENTRANCE = "ENTRANCE"
    EXIT = "EXIT"


class EventType(str, Enum):
    """Hướng quét thẻ/khuôn mặt tại cổng."""

    IN = "IN"
    OUT = "OUT"


class AttendanceStatus(str, Enum):
    """Trạng thái điểm danh lưu trong CSDL."""

    PRESENT = "PRESENT"
    LATE = "LATE"
    ABSENT = "ABSENT"
    EXCUSED = "EXCUSED"


class EffectiveStatus(str, Enum):
    """Trạng thái hiển thị: gồm cả các trạng thái tạm khi học sinh chưa quét."""

    PRESENT = "PRESENT"
    LATE = "LATE"
    ABSENT = "ABSENT"
    EXCUSED = "EXCUSED"
    PENDING_EARLY = "PENDING_EARLY"
    PENDING_LATE = "PENDING_LATE"


class ProvisioningStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PARTIAL = "PARTIAL"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


class LinkStatus(str, Enum):
    """Trạng thái đồng bộ học sinh lên từng thiết bị."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class ImportJobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class LogLevel(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class LogSource(str, Enum):
    BACKEND_API = "BACKEND_API"
    FRONTEND_UI = "FRONTEND_UI"
