from __future__ import annotations

import pytest

from src.school_attendance.school_attendance.core.enums import ImportJobStatus
from src.school_attendance.school_attendance.core.exceptions import ConflictError, ValidationError
from src.school_attendance.school_attendance.students.import_runtime import ImportRuntime


def _row(employee_no: str, first: str = "Ali", last: str = "Karimov", class_id: str = "class-a") -> dict:
    return {
        "employeeNo": employee_no,
        "firstName": first,
        "lastName": last,
        "classId": class_id,
        "gender": "male",
        "parentPhone": "+998900000000",
    }


def test_runtime_acquire_is_all_or_nothing():
    runtime = ImportRuntime()

    assert runtime.acquire("s1", ["1", "2"]) == (True, [])
    ok, conflicts = runtime.acquire("s1", ["2", "3"])

    assert ok is False
    assert conflicts == ["2"]
    assert not runtime.is_locked("s1", "3")
    assert runtime.is_locked("s1", "2")
    assert runtime.acquire("s2", ["2"]) == (True, [])


def test_runtime_metrics_view():
    runtime = ImportRuntime()
    runtime.record_run("s1", success=3, failed=0, synced=0, latency_ms=30, is_retry=False)
    runtime.record_run("s1", success=0, failed=1, synced=0, latency_ms=10, is_retry=True)

    view = runtime.metrics_view("s1")

    assert view["totalRuns"] == 2
    assert view["totalSuccess"] == 3
    assert view["totalFailed"] == 1
    assert view["successRate"] == 0.75
    assert view["retryRate"] == 0.5
    assert view["meanLatencyMs"] == 20
    assert runtime.metrics_view("other")["totalRuns"] == 0


def test_commit_creates_and_updates_students(world):
    service = world.container.device_import_service
    world.container.device_import_service.commit(world.school.id, {"rows": [_row("1001")]})

    result = service.commit(
        world.school.id,
        {"rows": [_row("1001", first="Vali"), _row("1002", first="Said")]},
        actor=world.auth(world.admin),
    )

    assert result["ok"] is True
    assert result["idempotent"] is False
    assert result["createdCount"] == 1
    assert result["updatedCount"] == 1
    assert world.students.get_by_device_student_id(world.school.id, "1001").first_name == "Vali"
    job = service.get_job(world.school.id, result["jobId"])
    assert job.status == ImportJobStatus.SUCCESS
    assert job.success == 2
    assert "DEVICE_IMPORT_COMMIT" in world.logs.stages()
    assert not world.container.import_runtime.is_locked(world.school.id, "1001")


def test_duplicate_employee_no_in_payload_is_rejected(world):
    service = world.container.device_import_service

    with pytest.raises(ValidationError) as exc:
        service.commit(world.school.id, {"rows": [_row("1001"), _row("1001", first="Other")]})

    assert exc.value.details == {"invalidCount": 2}
    assert world.students.items == {}
    assert not world.container.import_runtime.is_locked(world.school.id, "1001")
    assert world.container.import_runtime.metrics_view(world.school.id)["totalRuns"] == 0


def test_foreign_class_is_invalid(world):
    with pytest.raises(ValidationError):
        world.container.device_import_service.commit(
            world.school.id, {"rows": [_row("1001", class_id="class-of-another-school")]}
        )


def test_empty_rows_is_rejected(world):
    with pytest.raises(ValidationError, match="rows is required"):
        world.container.device_import_service.commit(world.school.id, {"rows": []})


def test_lock_conflict_keeps_the_holder_lock(world):
    runtime = world.container.import_runtime
    runtime.acquire(world.school.id, ["1001"])

    with pytest.raises(ConflictError) as exc:
        world.container.device_import_service.commit(world.school.id, {"rows": [_row("1001"), _row("1002")]})

    assert exc.value.details == {"conflicts": ["1001"]}
    assert runtime.is_locked(world.school.id, "1001")
    assert not runtime.is_locked(world.school.id, "1002")
    assert world.students.items == {}


def test_idempotency_key_returns_cached_result(world):
    service = world.container.device_import_service
    body = {"rows": [_row("1001")], "idempotencyKey": "key-1"}

    first = service.commit(world.school.id, body)
    world.students.items.clear()
    second = service.commit(world.school.id, body)

    assert second["idempotent"] is True
    assert second["jobId"] == first["jobId"]
    assert world.students.items == {}


def test_failure_after_job_creation_marks_job_failed(world, monkeypatch):
    service = world.container.device_import_service

    def boom(student):
        raise RuntimeError("db down")

    monkeypatch.setattr(world.students, "upsert_by_device_student_id", boom)

    with pytest.raises(RuntimeError):
        service.commit(world.school.id, {"rows": [_row("1001")]})

    runtime = world.container.import_runtime
    assert not runtime.is_locked(world.school.id, "1001")
    metrics = runtime.metrics_view(world.school.id)
    assert metrics["totalRuns"] == 1
    assert metrics["totalFailed"] == 1
    failed = [j for j in runtime._jobs.values() if j.school_id == world.school.id]
    assert failed[0].status == ImportJobStatus.FAILED
    assert failed[0].last_error == "db down"


def test_commit_route_returns_409_on_conflict(world, login):
    client = login(world.admin)
    world.container.import_runtime.acquire(world.school.id, ["1001"])

    resp = client.post(f"/schools/{world.school.id}/device-import/commit", json={"rows": [_row("1001")]})

    assert resp.status_code == 409
    assert resp.get_json() == {"error": "Import lock conflict", "conflicts": ["1001"]}


def test_commit_route_validation_error_body(world, login):
    client = login(world.admin)

    resp = client.post(
        f"/schools/{world.school.id}/device-import/commit",
        json={"rows": [_row("1001"), _row("1001")]},
    )

    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Validation failed", "invalidCount": 2}


def test_commit_route_requires_school_scope(world, login):
    client = login(world.other_admin)

    resp = client.post(f"/schools/{world.school.id}/device-import/commit", json={"rows": [_row("1001")]})

    assert resp.status_code == 403
    assert world.students.items == {}


def test_job_routes(world, login):
    client = login(world.admin)
    created = client.post(f"/schools/{world.school.id}/device-import/commit", json={"rows": [_row("1001")]})
    job_id = created.get_json()["jobId"]

    job = client.get(f"/schools/{world.school.id}/import-jobs/{job_id}").get_json()
    retried = client.post(f"/schools/{world.school.id}/import-jobs/{job_id}/retry").get_json()
    metrics = client.get(f"/schools/{world.school.id}/import-metrics").get_json()

    assert job["status"] == "SUCCESS"
    assert retried["job"]["retryCount"] == 1
    assert retried["job"]["status"] == "PENDING"
    assert metrics["totalRuns"] == 1
    assert client.get(f"/schools/{world.school.id}/import-jobs/missing").status_code == 404


def test_ui_audit_is_truncated_and_tagged(world, login):
    client = login(world.admin)

    resp = client.post(
        f"/schools/{world.school.id}/import-audit",
        json={"stage": "x" * 120, "status": "y" * 60, "message": "preview opened"},
        headers={"User-Agent": "pytest-agent"},
    )

    assert resp.status_code == 200
    entry = world.logs.items[-1]
    assert len(entry.stage) == 80
    assert len(entry.status) == 40
    assert entry.source.value == "FRONTEND_UI"
    assert entry.actor_id == world.admin.id
    assert entry.user_agent == "pytest-agent"


def test_preview_classifies_rows_without_writing(world):
    service = world.container.device_import_service
    service.commit(world.school.id, {"rows": [_row("1001")]})
    existing_id = world.students.get_by_device_student_id(world.school.id, "1001").id

    result = service.preview(
        world.school.id,
        {
            "rows": [
                _row("1001", first="Vali"),
                _row("1002"),
                _row("1003", first="Said"),
                _row("1003", first="Aziz"),
                _row("1004", class_id="class-x"),
                _row("1005", last=""),
            ]
        },
    )

    assert result["total"] == 6
    assert (result["createCount"], result["updateCount"], result["invalidCount"]) == (1, 1, 4)
    assert result["skipCount"] == 4
    assert result["duplicateCount"] == 2
    assert result["classErrorCount"] == 1
    actions = [(r["employeeNo"], r["action"]) for r in result["rows"]]
    assert actions[:2] == [("1001", "UPDATE"), ("1002", "CREATE")]
    assert result["rows"][0]["existingStudentId"] == existing_id
    assert result["rows"][4]["reasons"] == ["Class not found"]
    assert result["rows"][5]["reasons"] == ["Required fields missing"]
    assert len(world.students.items) == 1
    assert world.students.get_by_id(existing_id).first_name == "Ali"


def test_preview_route(world, login):
    client = login(world.admin)
    url = f"/schools/{world.school.id}/device-import/preview"

    resp = client.post(url, json={"rows": [_row("2001")]})

    assert resp.status_code == 200
    assert resp.get_json()["createCount"] == 1
    assert client.post(url, json={"rows": []}).status_code == 400
    assert login(world.teacher).post(url, json={"rows": [_row("2001")]}).status_code == 403
    assert world.students.items == {}
