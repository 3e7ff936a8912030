from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..common.datetime_utils import now_utc
from ..common.serialization import iso
from ..core.enums import Gender, ImportJobStatus, LinkStatus, LogLevel, LogSource, ProvisioningStatus


@dataclass(frozen=True)
class Student:
    """Học sinh.

    ``device_student_id`` là employeeNo trên thiết bị; duy nhất trong phạm vi một trường.
    """

    id: str
    school_id: str
    class_id: Optional[str]
    device_student_id: Optional[str]
    name: str
    first_name: str
    last_name: str
    father_name: Optional[str] = None
    gender: Gender = Gender.MALE
    parent_phone: Optional[str] = None
    photo_url: Optional[str] = None
    is_active: bool = True
    device_sync_status: Optional[str] = None
    device_sync_updated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "schoolId": self.school_id,
            "classId": self.class_id,
            "deviceStudentId": self.device_student_id,
            "name": self.name,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "fatherName": self.father_name,
            "gender": self.gender.value,
            "parentPhone": self.parent_phone,
            "photoUrl": self.photo_url,
            "isActive": self.is_active,
            "deviceSyncStatus": self.device_sync_status,
            "deviceSyncUpdatedAt": iso(self.device_sync_updated_at),
        }

    def snapshot(self) -> dict:
        """Fields compared in import before/after audit entries."""
        return {
            "name": self.name,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "fatherName": self.father_name,
            "classId": self.class_id,
            "parentPhone": self.parent_phone,
            "gender": self.gender.value,
        }


@dataclass(frozen=True)
class StudentProvisioning:
    id: str
    school_id: str
    student_id: str
    status: ProvisioningStatus
    request_id: Optional[str] = None
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "schoolId": self.school_id,
            "studentId": self.student_id,
            "status": self.status.value,
            "requestId": self.request_id,
            "lastError": self.last_error,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


@dataclass(frozen=True)
class StudentDeviceLink:
    id: str
    student_id: str
    device_id: str
    provisioning_id: str
    status: LinkStatus = LinkStatus.PENDING
    last_error: Optional[str] = None
    employee_no_on_device: Optional[str] = None
    attempt_count: int = 0
    last_attempt_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "studentId": self.student_id,
            "deviceId": self.device_id,
            "provisioningId": self.provisioning_id,
            "status": self.status.value,
            "lastError": self.last_error,
            "employeeNoOnDevice": self.employee_no_on_device,
            "attemptCount": self.attempt_count,
            "lastAttemptAt": iso(self.last_attempt_at),
        }


@dataclass(frozen=True)
class ProvisioningLog:
    """Nhật ký audit cho luồng provisioning / import (ghi cả sự kiện từ UI)."""

    id: str
    school_id: str
    stage: str
    level: LogLevel = LogLevel.INFO
    event_type: Optional[str] = None
    status: Optional[str] = None
    message: Optional[str] = None
    student_id: Optional[str] = None
    provisioning_id: Optional[str] = None
    device_id: Optional[str] = None
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    actor_name: Optional[str] = None
    actor_ip: Optional[str] = None
    user_agent: Optional[str] = None
    source: LogSource = LogSource.BACKEND_API
    payload: Optional[Any] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "schoolId": self.school_id,
            "studentId": self.student_id,
            "provisioningId": self.provisioning_id,
            "deviceId": self.device_id,
            "level": self.level.value,
            "eventType": self.event_type,
            "stage": self.stage,
            "status": self.status,
            "message": self.message,
            "actorId": self.actor_id,
            "actorRole": self.actor_role,
            "actorName": self.actor_name,
            "actorIp": self.actor_ip,
            "userAgent": self.user_agent,
            "source": self.source.value,
            "payload": self.payload,
            "createdAt": iso(self.created_at),
        }


@dataclass
class ImportJob:
    """Mutable in-process job record for one device-import commit."""

    id: str
    school_id: str
    status: ImportJobStatus = ImportJobStatus.PENDING
    retry_count: int = 0
    last_error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    total_rows: int = 0
    processed: int = 0
    success: int = 0
    failed: int = 0
    synced: int = 0
    created_at: datetime = field(default_factory=now_utc)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "schoolId": self.school_id,
            "status": self.status.value,
            "retryCount": self.retry_count,
            "lastError": self.last_error,
            "startedAt": iso(self.started_at),
            "finishedAt": iso(self.finished_at),
            "totalRows": self.total_rows,
            "processed": self.processed,
            "success": self.success,
            "failed": self.failed,
            "synced": self.synced,
            "createdAt": iso(self.created_at),
        }
