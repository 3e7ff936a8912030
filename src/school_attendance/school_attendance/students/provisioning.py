"""Student provisioning: registering a student's identity on school terminals.

A provisioning owns one link per target device. Clients report per-device
results and the provisioning status is recomputed from the links.
"""
from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Sequence

from ..classes.repository import ClassRepository
from ..common.datetime_utils import now_utc
from ..common.names import build_full_name, normalize_gender, normalize_name_part, split_full_name
from ..common.validators import optional_str
from ..core.constants import (
    DEVICE_STUDENT_ID_ATTEMPTS,
    DEVICE_STUDENT_ID_DEFAULT_LENGTH,
    DEVICE_STUDENT_ID_MAX_LENGTH,
    DEVICE_STUDENT_ID_MIN_LENGTH,
)
from ..core.enums import DeviceType, LinkStatus, LogLevel, ProvisioningStatus
from ..core.exceptions import (
    AuthorizationError,
    ConflictError,
    DomainError,
    NotFoundError,
    ValidationError,
)
from ..database.mysql_base import new_id
from ..devices.model import Device
from ..devices.repository import DeviceRepository
from ..devices.service import DeviceService
from ..users.model import AuthUser
from .audit import ProvisioningAudit
from .face_image import save_face_image
from .model import Student, StudentDeviceLink, StudentProvisioning
from .repository import StudentRepository

logger = logging.getLogger("provisioning")


class DeviceIdGenerationError(DomainError):
    status_code = 500


def compute_provisioning_status(statuses: Iterable[LinkStatus]) -> ProvisioningStatus:
    statuses = [LinkStatus(s) for s in statuses]
    if not statuses:
        return ProvisioningStatus.PROCESSING
    success = statuses.count(LinkStatus.SUCCESS)
    failed = statuses.count(LinkStatus.FAILED)
    if success == len(statuses):
        return ProvisioningStatus.CONFIRMED
    if failed == len(statuses):
        return ProvisioningStatus.FAILED
    if failed > 0:
        return ProvisioningStatus.PARTIAL
    return ProvisioningStatus.PROCESSING


@dataclass(frozen=True)
class StartRequest:
    first_name: str
    last_name: str
    father_name: str
    gender: Any
    class_id: Optional[str]
    parent_phone: Optional[str]
    device_student_id: str
    face_image: str
    student_id: Optional[str]
    request_id: Optional[str]
    target_device_ids: List[str]
    target_all_active: bool

    @property
    def full_name(self) -> str:
        return build_full_name(self.last_name, self.first_name)

    def audit_payload(self) -> dict:
        return {
            "requestId": self.request_id,
            "targetDeviceIds": self.target_device_ids,
            "targetAllActive": self.target_all_active,
            "classId": self.class_id,
        }


def parse_start_request(body: dict) -> StartRequest:
    payload = body.get("student") if isinstance(body.get("student"), dict) else body
    first = normalize_name_part(payload.get("firstName"))
    last = normalize_name_part(payload.get("lastName"))
    if not first and not last:
        last, first = split_full_name(payload.get("name"))
    targets = body.get("targetDeviceIds")
    request_id = body.get("requestId")
    return StartRequest(
        first_name=normalize_name_part(first),
        last_name=normalize_name_part(last),
        father_name=normalize_name_part(payload.get("fatherName")),
        gender=normalize_gender(payload.get("gender")),
        class_id=optional_str(payload.get("classId") or body.get("classId")),
        parent_phone=optional_str(payload.get("parentPhone")),
        device_student_id=str(payload.get("deviceStudentId") or "").strip(),
        face_image=payload.get("faceImageBase64") or body.get("faceImageBase64") or "",
        student_id=optional_str(body.get("studentId")),
        request_id=str(request_id) if request_id else None,
        target_device_ids=[str(t) for t in targets] if isinstance(targets, list) else [],
        target_all_active=body.get("targetAllActive") is not False,
    )


class ProvisioningService:
    def __init__(
        self,
        students: StudentRepository,
        classes: ClassRepository,
        devices: DeviceRepository,
        device_service: DeviceService,
        audit: ProvisioningAudit,
        *,
        id_strategy: str = "numeric",
        id_length: int = DEVICE_STUDENT_ID_DEFAULT_LENGTH,
        uploads_dir: str = "uploads",
        clock: Callable[[], datetime] = now_utc,
    ):
        self._students = students
        self._classes = classes
        self._devices = devices
        self._device_service = device_service
        self._audit = audit
        self._id_strategy = (id_strategy or "numeric").lower()
        self._id_length = max(DEVICE_STUDENT_ID_MIN_LENGTH, min(DEVICE_STUDENT_ID_MAX_LENGTH, int(id_length or 0) or DEVICE_STUDENT_ID_DEFAULT_LENGTH))
        self._uploads_dir = uploads_dir
        self._clock = clock

    # Start
    def start(
        self,
        school_id: str,
        body: dict,
        *,
        actor: Optional[AuthUser] = None,
        check_class_scope: Optional[Callable[[str], None]] = None,
    ) -> dict:
        req = parse_start_request(body)
        logger.info(
            "Provision start school=%s requestId=%s studentId=%s classId=%s targets=%s all=%s",
            school_id,
            req.request_id,
            req.student_id,
            req.class_id,
            len(req.target_device_ids),
            req.target_all_active,
        )

        def reject(message: str) -> ValidationError:
            self._audit.log(
                school_id=school_id,
                stage="PROVISIONING_START",
                level=LogLevel.ERROR,
                status="FAILED",
                message=message,
                actor=actor,
                payload=req.audit_payload(),
            )
            return ValidationError(message)

        if not req.first_name or not req.last_name:
            raise reject("First name and last name are required")
        if req.gender is None:
            raise reject("Invalid or missing gender")
        if req.device_student_id and self._id_strategy == "numeric" and not req.device_student_id.isdigit():
            raise reject("deviceStudentId must be numeric")
        if not req.class_id:
            raise reject("Class is required")
        school_class = self._classes.get_by_id(req.class_id)
        if not school_class or school_class.school_id != school_id:
            raise reject("Class not found")
        if check_class_scope is not None:
            check_class_scope(req.class_id)

        try:
            result = self._start_transaction(school_id, req)
        except Exception as e:
            logger.exception("Provision failed school=%s requestId=%s", school_id, req.request_id)
            payload = req.audit_payload()
            payload.update({"firstName": req.first_name, "lastName": req.last_name})
            self._audit.log(
                school_id=school_id,
                stage="PROVISIONING_START",
                level=LogLevel.ERROR,
                status="FAILED",
                message=getattr(e, "message", None) or str(e) or "Provisioning start failed",
                actor=actor,
                payload=payload,
            )
            raise

        student, provisioning, targets = result
        self._audit.log(
            school_id=school_id,
            stage="PROVISIONING_START",
            level=LogLevel.ERROR if provisioning.status == ProvisioningStatus.FAILED else LogLevel.INFO,
            status=provisioning.status.value,
            message=provisioning.last_error,
            student_id=student.id,
            provisioning_id=provisioning.id,
            actor=actor,
            payload=req.audit_payload(),
        )
        logger.info(
            "Provision ok school=%s student=%s provisioning=%s status=%s targets=%s",
            school_id,
            student.id,
            provisioning.id,
            provisioning.status.value,
            len(targets),
        )
        return {
            "student": student.to_dict(),
            "studentId": student.id,
            "provisioningId": provisioning.id,
            "deviceStudentId": student.device_student_id,
            "provisioningStatus": provisioning.status.value,
            "targetDevices": [{"id": d.id, "deviceId": d.device_id} for d in targets],
        }

    def _resolve_targets(self, school_id: str, req: StartRequest) -> List[Device]:
        if req.target_device_ids:
            wanted = set(req.target_device_ids)
            return [d for d in self._devices.list_by_school(school_id) if d.id in wanted]
        if req.target_all_active:
            return list(self._devices.list_by_school(school_id, active_only=True))
        return []

    def _start_transaction(self, school_id: str, req: StartRequest):
        targets = self._resolve_targets(school_id, req)
        by_id = {d.id: d for d in self._devices.list_by_school(school_id)}
        now = self._clock()

        with self._students.transaction() as tx:
            if req.request_id:
                existing = tx.get_provisioning_by_request(school_id, req.request_id)
                if existing:
                    student = tx.get_by_id(existing.student_id)
                    linked = [by_id[link.device_id] for link in tx.list_links(existing.id) if link.device_id in by_id]
                    return student, existing, linked

            duplicate = tx.find_duplicate_in_class(
                school_id=school_id,
                class_id=req.class_id,
                first_name=req.first_name,
                last_name=req.last_name,
                full_name=req.full_name,
                exclude_id=req.student_id,
            )
            if duplicate and duplicate.id != req.student_id:
                raise ConflictError("Duplicate student in class")

            fields = {
                "name": req.full_name,
                "first_name": req.first_name,
                "last_name": req.last_name,
                "father_name": req.father_name or None,
                "class_id": req.class_id,
                "parent_phone": req.parent_phone,
                "gender": req.gender,
                "is_active": True,
            }
            device_student_id = req.device_student_id or None
            if req.student_id:
                current = tx.get_by_id(req.student_id)
                if not current:
                    raise NotFoundError("Student not found")
                if current.school_id != school_id:
                    raise AuthorizationError("forbidden")
                if device_student_id and current.device_student_id and device_student_id != current.device_student_id:
                    raise ValidationError("DeviceStudentId mismatch")
                fields["device_student_id"] = (
                    current.device_student_id or device_student_id or self._generate_device_student_id(tx, school_id)
                )
                student = tx.update(current.id, fields) or replace(current, **fields)
            else:
                student, _ = tx.upsert_by_device_student_id(
                    Student(
                        id=new_id(),
                        school_id=school_id,
                        device_student_id=device_student_id or self._generate_device_student_id(tx, school_id),
                        **fields,
                    )
                )

            provisioning = StudentProvisioning(
                id=new_id(),
                school_id=school_id,
                student_id=student.id,
                status=ProvisioningStatus.PROCESSING,
                request_id=req.request_id,
                created_at=now,
                updated_at=now,
            )
            tx.create_provisioning(provisioning)
            for device in targets:
                tx.save_link(
                    StudentDeviceLink(
                        id=new_id(),
                        student_id=student.id,
                        device_id=device.id,
                        provisioning_id=provisioning.id,
                    )
                )

            if (req.target_device_ids or req.target_all_active) and not targets:
                provisioning = replace(
                    provisioning,
                    status=ProvisioningStatus.FAILED,
                    last_error="No target devices found",
                )
                tx.update_provisioning(provisioning.id, status=provisioning.status.value, last_error=provisioning.last_error)
            tx.set_sync_status(student.id, provisioning.status.value, now)
            student = replace(student, device_sync_status=provisioning.status.value, device_sync_updated_at=now)

            if req.face_image:
                photo_url = save_face_image(self._uploads_dir, student.id, req.face_image)
                if photo_url:
                    student = tx.update(student.id, {"photo_url": photo_url}) or replace(student, photo_url=photo_url)

        return student, provisioning, targets

    def _generate_device_student_id(self, tx: StudentRepository, school_id: str) -> str:
        if self._id_strategy != "numeric":
            return str(uuid.uuid4())
        for _ in range(DEVICE_STUDENT_ID_ATTEMPTS):
            value = "".join(random.choice("0123456789") for _ in range(self._id_length))
            if not tx.get_by_device_student_id(school_id, value):
                return value
        raise DeviceIdGenerationError("Failed to generate unique deviceStudentId")

    # Status
    def get(self, provisioning_id: str) -> StudentProvisioning:
        provisioning = self._students.get_provisioning(provisioning_id)
        if not provisioning:
            raise NotFoundError("Provisioning not found")
        return provisioning

    def detail(self, provisioning: StudentProvisioning) -> dict:
        student = self._students.get_by_id(provisioning.student_id)
        devices = {d.id: d for d in self._devices.list_by_school(provisioning.school_id)}
        links = []
        for link in self._students.list_links(provisioning.id):
            item = link.to_dict()
            device = devices.get(link.device_id)
            item["device"] = device.to_dict() if device else None
            links.append(item)
        out = provisioning.to_dict()
        out["student"] = student.to_dict() if student else None
        out["devices"] = links
        return out

    def _resolve_result_device(self, provisioning: StudentProvisioning, body: dict) -> Device:
        device_id = optional_str(body.get("deviceId"))
        external_id = optional_str(body.get("deviceExternalId"))
        device_name = optional_str(body.get("deviceName"))

        def fail(message: str, error: DomainError) -> DomainError:
            self._audit.log(
                school_id=provisioning.school_id,
                stage="DEVICE_RESULT",
                level=LogLevel.ERROR,
                status="FAILED",
                message=message,
                student_id=provisioning.student_id,
                provisioning_id=provisioning.id,
                payload={"deviceId": device_id, "deviceExternalId": external_id, "deviceName": device_name},
            )
            return error

        if not device_id and not external_id and not device_name:
            message = "deviceId, deviceExternalId or deviceName is required"
            raise fail(message, ValidationError(message))

        device: Optional[Device] = None
        if device_id:
            device = self._devices.get_by_id(device_id)
        elif external_id:
            device = self._devices.get_by_external_id(external_id)
        if device and device.school_id != provisioning.school_id:
            device = None

        if device is None and external_id:
            try:
                device_type = DeviceType(str(body.get("deviceType") or DeviceType.ENTRANCE.value).upper())
            except ValueError:
                device_type = DeviceType.ENTRANCE
            device = self._device_service.auto_register(
                provisioning.school_id,
                external_id,
                name=device_name,
                device_type=device_type,
                location=optional_str(body.get("deviceLocation")) or "Desktop provisioning",
            )

        if device is None and device_name:
            matches = [d for d in self._devices.list_by_school(provisioning.school_id) if d.name == device_name]
            if len(matches) == 1:
                device = matches[0]
            elif len(matches) > 1:
                raise fail("Multiple devices with same name", ValidationError("Multiple devices with same name"))

        if device is None:
            raise fail("Device not found", NotFoundError("Device not found"))
        return device

    def device_result(self, provisioning: StudentProvisioning, body: dict) -> dict:
        try:
            status = LinkStatus(str(body.get("status") or "").upper())
        except ValueError:
            raise ValidationError("Invalid status")
        if status == LinkStatus.PENDING:
            raise ValidationError("Invalid status")

        device = self._resolve_result_device(provisioning, body)
        error = optional_str(body.get("error"))
        now = self._clock()

        with self._students.transaction() as tx:
            current = tx.get_link(provisioning.id, device.id)
            link = StudentDeviceLink(
                id=current.id if current else new_id(),
                student_id=provisioning.student_id,
                device_id=device.id,
                provisioning_id=provisioning.id,
                status=status,
                last_error=error,
                employee_no_on_device=optional_str(body.get("employeeNoOnDevice")),
                attempt_count=(current.attempt_count if current else 0) + 1,
                last_attempt_at=now,
            )
            tx.save_link(link)
            overall = compute_provisioning_status(l.status for l in tx.list_links(provisioning.id))
            tx.update_provisioning(
                provisioning.id,
                status=overall.value,
                last_error=error if status == LinkStatus.FAILED else None,
            )
            tx.set_sync_status(provisioning.student_id, overall.value, now)

        self._audit.log(
            school_id=provisioning.school_id,
            stage="DEVICE_RESULT",
            level=LogLevel.ERROR if status == LinkStatus.FAILED else LogLevel.INFO,
            status=status.value,
            message=error,
            student_id=provisioning.student_id,
            provisioning_id=provisioning.id,
            device_id=device.id,
            payload={
                "deviceExternalId": body.get("deviceExternalId"),
                "deviceName": body.get("deviceName"),
                "deviceType": body.get("deviceType"),
                "deviceLocation": body.get("deviceLocation"),
                "employeeNoOnDevice": body.get("employeeNoOnDevice"),
            },
        )
        return {"ok": True, "provisioningStatus": overall.value, "deviceStatus": status.value}

    def retry(self, provisioning: StudentProvisioning, body: dict, *, actor: Optional[AuthUser] = None) -> dict:
        device_ids = [str(d) for d in body.get("deviceIds") or [] if d]
        external_ids = [str(d) for d in body.get("deviceExternalIds") or [] if d]
        now = self._clock()

        if not device_ids and external_ids:
            wanted = set(external_ids)
            device_ids = [d.id for d in self._devices.list_by_school(provisioning.school_id) if d.device_id in wanted]

        updated = 0
        with self._students.transaction() as tx:
            links = tx.list_links(provisioning.id)
            if device_ids or external_ids:
                chosen = set(device_ids)
                targets = [l for l in links if l.device_id in chosen]
            else:
                targets = [l for l in links if l.status == LinkStatus.FAILED]
            for link in targets:
                tx.save_link(replace(link, status=LinkStatus.PENDING, last_error=None, last_attempt_at=now))
                updated += 1
            if targets:
                tx.update_provisioning(provisioning.id, status=ProvisioningStatus.PROCESSING.value, last_error=None)
                tx.set_sync_status(provisioning.student_id, ProvisioningStatus.PROCESSING.value, now)

        target_ids = [l.device_id for l in targets]
        self._audit.log(
            school_id=provisioning.school_id,
            stage="RETRY",
            level=LogLevel.INFO,
            status=ProvisioningStatus.PROCESSING.value,
            message="No devices to retry" if updated == 0 else None,
            student_id=provisioning.student_id,
            provisioning_id=provisioning.id,
            actor=actor,
            payload={"targetDeviceIds": target_ids},
        )
        return {"ok": True, "updated": updated, "targetDeviceIds": target_ids}

    def finalize_failure(
        self,
        provisioning: StudentProvisioning,
        body: dict,
        *,
        actor: Optional[AuthUser] = None,
        token_auth: bool = False,
    ) -> dict:
        reason = str(body.get("reason") or "").strip() or "Forced rollback finalize"
        now = self._clock()

        forced = 0
        with self._students.transaction() as tx:
            for link in tx.list_links(provisioning.id):
                if link.status == LinkStatus.FAILED:
                    continue
                tx.save_link(replace(link, status=LinkStatus.FAILED, last_error=reason, last_attempt_at=now))
                forced += 1
            tx.update_provisioning(provisioning.id, status=ProvisioningStatus.FAILED.value, last_error=reason)
            tx.set_sync_status(provisioning.student_id, ProvisioningStatus.FAILED.value, now)

        self._audit.log(
            school_id=provisioning.school_id,
            stage="ROLLBACK_FINALIZE",
            level=LogLevel.ERROR,
            status=ProvisioningStatus.FAILED.value,
            message=reason,
            student_id=provisioning.student_id,
            provisioning_id=provisioning.id,
            actor=actor,
            payload={"forcedLinks": forced, "tokenAuth": token_auth},
        )
        return {"ok": True, "status": ProvisioningStatus.FAILED.value, "forcedLinks": forced}

    def logs(self, provisioning: StudentProvisioning) -> Sequence[dict]:
        return [log.to_dict() for log in self._audit.list_for_provisioning(provisioning.id)]
