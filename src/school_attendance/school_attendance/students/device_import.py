from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from ..classes.repository import ClassRepository
from ..common.names import build_full_name, normalize_gender, normalize_name_part
from ..common.validators import truncate
from ..core.constants import AUDIT_MESSAGE_MAX, AUDIT_STAGE_MAX, AUDIT_STATUS_MAX, BEFORE_AFTER_LOG_LIMIT
from ..core.enums import Gender, ImportJobStatus, LogLevel, LogSource
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..database.mysql_base import new_id
from ..users.model import AuthUser
from .audit import ProvisioningAudit
from .import_runtime import ImportRuntime
from .model import ImportJob, Student
from .repository import StudentRepository

logger = logging.getLogger("provisioning")


@dataclass(frozen=True)
class CommitRow:
    employee_no: str
    first_name: str
    last_name: str
    father_name: str
    class_id: str
    parent_phone: str
    gender: Gender


def normalize_commit_rows(raw_rows: Sequence[Any]) -> list[CommitRow]:
    rows: list[CommitRow] = []
    for item in raw_rows:
        item = item if isinstance(item, dict) else {}
        rows.append(
            CommitRow(
                employee_no=str(item.get("employeeNo") or "").strip(),
                first_name=normalize_name_part(item.get("firstName")),
                last_name=normalize_name_part(item.get("lastName")),
                father_name=normalize_name_part(item.get("fatherName")),
                class_id=str(item.get("classId") or "").strip(),
                parent_phone=str(item.get("parentPhone") or "").strip(),
                gender=normalize_gender(item.get("gender") or "MALE") or Gender.MALE,
            )
        )
    return rows


def count_employee_nos(rows: Sequence[CommitRow]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for row in rows:
        counts[row.employee_no] = counts.get(row.employee_no, 0) + 1
    return counts


def row_problems(row: CommitRow, counts: dict[str, int], class_ids: set[str]) -> list[str]:
    reasons: list[str] = []
    if not row.employee_no or not row.first_name or not row.last_name or not row.class_id:
        reasons.append("Required fields missing")
    if row.employee_no and counts.get(row.employee_no, 0) > 1:
        reasons.append("Duplicate employeeNo")
    if row.class_id and row.class_id not in class_ids:
        reasons.append("Class not found")
    return reasons


def invalid_commit_rows(rows: Sequence[CommitRow], class_ids: set[str]) -> list[CommitRow]:
    """Rows missing a required field, repeating an employeeNo, or pointing at a foreign class."""

    counts = count_employee_nos(rows)
    return [row for row in rows if row_problems(row, counts, class_ids)]


def _short(student: Student) -> dict:
    return {
        "id": student.id,
        "firstName": student.first_name,
        "lastName": student.last_name,
        "classId": student.class_id,
    }


class DeviceImportService:
    """Use case: commit a batch of students read from a terminal into the roster.

    Each commit holds in-process locks on its employee numbers, validates the
    whole batch up front and upserts every row in one transaction.
    """

    def __init__(
        self,
        students: StudentRepository,
        classes: ClassRepository,
        runtime: ImportRuntime,
        audit: ProvisioningAudit,
    ):
        self._students = students
        self._classes = classes
        self._runtime = runtime
        self._audit = audit

    def preview(self, school_id: str, body: dict) -> dict:
        """Dry run of ``commit``: what each row would do, nothing is written."""

        raw_rows = body.get("rows")
        if not isinstance(raw_rows, list) or not raw_rows:
            raise ValidationError("rows is required")

        rows = normalize_commit_rows(raw_rows)
        class_ids = {c.id for c in self._classes.list_by_school(school_id)}
        employee_nos = list(dict.fromkeys(r.employee_no for r in rows if r.employee_no))
        existing = {
            s.device_student_id: s.id
            for s in self._students.list_by_device_student_ids(school_id, employee_nos)
        } if employee_nos else {}
        counts = count_employee_nos(rows)

        totals = {"CREATE": 0, "UPDATE": 0, "INVALID": 0}
        duplicate_count = 0
        class_error_count = 0
        preview_rows: list[dict] = []
        for row in rows:
            reasons = row_problems(row, counts, class_ids)
            duplicate_count += "Duplicate employeeNo" in reasons
            class_error_count += "Class not found" in reasons
            existing_id = existing.get(row.employee_no)
            if reasons:
                action = "INVALID"
            else:
                action = "UPDATE" if existing_id else "CREATE"
            totals[action] += 1
            preview_rows.append(
                {
                    "employeeNo": row.employee_no,
                    "firstName": row.first_name,
                    "lastName": row.last_name,
                    "classId": row.class_id,
                    "action": action,
                    "reasons": reasons,
                    "existingStudentId": existing_id,
                }
            )

        logger.info(
            "Import preview school=%s rows=%s create=%s update=%s invalid=%s",
            school_id,
            len(rows),
            totals["CREATE"],
            totals["UPDATE"],
            totals["INVALID"],
        )
        return {
            "total": len(rows),
            "createCount": totals["CREATE"],
            "updateCount": totals["UPDATE"],
            "skipCount": totals["INVALID"],
            "invalidCount": totals["INVALID"],
            "duplicateCount": duplicate_count,
            "classErrorCount": class_error_count,
            "rows": preview_rows,
        }

    def commit(self, school_id: str, body: dict, *, actor: Optional[AuthUser] = None) -> dict:
        started = time.monotonic()
        idempotency_key = str(body.get("idempotencyKey") or "").strip()
        if idempotency_key:
            cached = self._runtime.get_result(school_id, idempotency_key)
            if cached:
                cached["idempotent"] = True
                return cached

        raw_rows = body.get("rows")
        if not isinstance(raw_rows, list) or not raw_rows:
            raise ValidationError("rows is required")

        rows = normalize_commit_rows(raw_rows)
        employee_nos = list(dict.fromkeys(r.employee_no for r in rows if r.employee_no))
        requested_class_ids = {r.class_id for r in rows if r.class_id}
        retry_mode = bool(body.get("retryMode"))

        ok, conflicts = self._runtime.acquire(school_id, employee_nos)
        if not ok:
            logger.warning("Import lock conflict school=%s conflicts=%s", school_id, conflicts)
            raise ConflictError("Import lock conflict", details={"conflicts": conflicts})

        job_id: Optional[str] = None
        try:
            school_class_ids = {c.id for c in self._classes.list_by_school(school_id)}
            invalid = invalid_commit_rows(rows, school_class_ids & requested_class_ids)
            if invalid:
                raise ValidationError("Validation failed", details={"invalidCount": len(invalid)})

            job_id = new_id()
            self._runtime.create_job(job_id, school_id, len(rows))
            self._runtime.update_job(job_id, status=ImportJobStatus.PROCESSING)

            created: list[dict] = []
            updated: list[dict] = []
            students: list[dict] = []
            before_after: list[dict] = []
            with self._students.transaction() as tx:
                for row in rows:
                    saved, previous = tx.upsert_by_device_student_id(
                        Student(
                            id=new_id(),
                            school_id=school_id,
                            class_id=row.class_id,
                            device_student_id=row.employee_no,
                            name=build_full_name(row.last_name, row.first_name),
                            first_name=row.first_name,
                            last_name=row.last_name,
                            father_name=row.father_name or None,
                            gender=row.gender,
                            parent_phone=row.parent_phone or None,
                            is_active=True,
                        )
                    )
                    ref = {"id": saved.id, "deviceStudentId": saved.device_student_id}
                    (updated if previous else created).append(ref)
                    students.append(
                        {**ref, "firstName": saved.first_name, "lastName": saved.last_name}
                    )
                    before_after.append(
                        {
                            "employeeNo": row.employee_no,
                            "before": _short(previous) if previous else None,
                            "after": _short(saved),
                        }
                    )

            self._runtime.finish_job(
                job_id,
                status=ImportJobStatus.SUCCESS,
                processed=len(rows),
                success=len(rows),
                failed=0,
                synced=0,
            )
            self._runtime.record_run(
                school_id,
                success=len(rows),
                failed=0,
                synced=0,
                latency_ms=(time.monotonic() - started) * 1000,
                is_retry=retry_mode,
            )

            result = {
                "ok": True,
                "idempotent": False,
                "jobId": job_id,
                "createdCount": len(created),
                "updatedCount": len(updated),
                "created": created,
                "updated": updated,
                "students": students,
            }
            target_ids = body.get("targetDeviceIds")
            self._audit.log(
                school_id=school_id,
                stage="DEVICE_IMPORT_COMMIT",
                level=LogLevel.INFO,
                status="SUCCESS",
                message=f"Import commit done ({len(rows)} rows)",
                actor=actor,
                payload={
                    "actorId": actor.id if actor else None,
                    "actorRole": actor.role.value if actor else None,
                    "sourceDeviceId": body.get("sourceDeviceId"),
                    "syncMode": body.get("syncMode") or "none",
                    "targetDeviceIds": target_ids if isinstance(target_ids, list) else [],
                    "jobId": job_id,
                    "createdCount": len(created),
                    "updatedCount": len(updated),
                    "beforeAfter": before_after[:BEFORE_AFTER_LOG_LIMIT],
                },
            )
            self._runtime.set_result(school_id, idempotency_key, result)
            logger.info(
                "Device import committed school=%s job=%s created=%s updated=%s",
                school_id,
                job_id,
                len(created),
                len(updated),
            )
            return result
        except Exception as e:
            if job_id:
                self._runtime.finish_job(
                    job_id,
                    status=ImportJobStatus.FAILED,
                    last_error=str(getattr(e, "message", "") or e) or "Import failed",
                )
                self._runtime.record_run(
                    school_id,
                    success=0,
                    failed=1,
                    synced=0,
                    latency_ms=(time.monotonic() - started) * 1000,
                    is_retry=retry_mode,
                )
                logger.exception("Device import failed school=%s job=%s", school_id, job_id)
            raise
        finally:
            self._runtime.release(school_id, employee_nos)

    def get_job(self, school_id: str, job_id: str) -> ImportJob:
        job = self._runtime.get_job(job_id)
        if not job or job.school_id != school_id:
            raise NotFoundError("Job not found")
        return job

    def retry_job(self, school_id: str, job_id: str) -> ImportJob:
        self.get_job(school_id, job_id)
        job = self._runtime.increment_retry(job_id)
        if job is None:
            raise NotFoundError("Job not found")
        return job

    def metrics(self, school_id: str) -> dict:
        return self._runtime.metrics_view(school_id)

    def audit_from_ui(self, school_id: str, data: dict, *, actor: AuthUser) -> None:
        """Store a client-side workflow event in the provisioning audit trail."""

        stage = truncate(str(data.get("stage") or "").strip(), AUDIT_STAGE_MAX)
        if not stage:
            raise ValidationError("stage is required")
        try:
            level = LogLevel(str(data.get("level") or LogLevel.INFO.value).upper())
        except ValueError:
            level = LogLevel.INFO
        self._audit.log(
            school_id=school_id,
            stage=stage,
            level=level,
            status=truncate(str(data.get("status") or "").strip(), AUDIT_STATUS_MAX) or None,
            message=truncate(str(data.get("message") or "").strip(), AUDIT_MESSAGE_MAX) or None,
            event_type=f"UI_{stage}",
            actor=actor,
            source=LogSource.FRONTEND_UI,
            payload=data.get("payload"),
        )
