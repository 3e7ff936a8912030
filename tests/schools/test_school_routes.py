from __future__ import annotations

from src.school_attendance.school_attendance.students.model import Student


def test_super_admin_creates_school_with_admin(world, login):
    client = login(world.super_admin)

    resp = client.post(
        "/schools",
        json={
            "name": "School No. 3",
            "timezone": "Asia/Samarkand",
            "admin": {"name": "Head", "email": "head@school3.test", "password": "head123"},
        },
    )

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["timezone"] == "Asia/Samarkand"
    assert len(body["webhookSecretIn"]) == 48
    assert body["webhookSecretIn"] != body["webhookSecretOut"]
    assert body["admin"]["role"] == "SCHOOL_ADMIN"
    assert world.users.get_by_email("head@school3.test").school_id == body["id"]


def test_school_create_rejects_bad_timezone(world, login):
    resp = login(world.super_admin).post("/schools", json={"name": "X", "timezone": "Mars/Base"})

    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Invalid timezone"}


def test_school_list_is_super_admin_only(world, login):
    assert login(world.admin).get("/schools").status_code == 403

    schools = login(world.super_admin).get("/schools").get_json()

    assert {s["id"] for s in schools} == {world.school.id, world.other_school.id}
    assert "webhookSecretIn" not in schools[0]
    assert schools[0]["stats"]["totalStudents"] == 0


def test_school_admin_updates_settings_and_rotates_secrets(world, login):
    client = login(world.admin)

    resp = client.put(
        f"/schools/{world.school.id}",
        json={"lateThresholdMinutes": 10, "regenerateWebhookSecrets": True},
    )

    assert resp.status_code == 200
    assert resp.get_json()["lateThresholdMinutes"] == 10
    school = world.schools.get_by_id(world.school.id)
    assert school.webhook_secret_in != "in-secret"
    info = client.get(f"/schools/{world.school.id}/webhook-info").get_json()
    assert info["inUrl"] == f"/webhook/{world.school.id}/in"
    assert info["inSecret"] == school.webhook_secret_in


def test_school_scope_is_enforced(world, login):
    assert login(world.other_admin).get(f"/schools/{world.school.id}").status_code == 403
    assert login(world.teacher).get(f"/schools/{world.school.id}/webhook-info").status_code == 403


def test_class_crud(world, login):
    client = login(world.admin)

    created = client.post(f"/schools/{world.school.id}/classes", json={"name": "7C", "gradeLevel": 7})
    assert created.status_code == 201
    class_id = created.get_json()["id"]
    assert created.get_json()["startTime"] == "08:00"

    bad = client.put(f"/classes/{class_id}", json={"startTime": "25:99"})
    assert bad.status_code == 400

    updated = client.put(f"/classes/{class_id}", json={"startTime": "08:30"}).get_json()
    assert updated["startTime"] == "08:30"

    assert client.delete(f"/classes/{class_id}").get_json() == {"ok": True}
    assert world.classes.get_by_id(class_id) is None


def test_class_with_students_cannot_be_deleted(world, login):
    world.students.create(
        Student(
            id="st-1",
            school_id=world.school.id,
            class_id=world.class_a.id,
            device_student_id="1",
            name="Karimov Ali",
            first_name="Ali",
            last_name="Karimov",
        )
    )

    resp = login(world.admin).delete(f"/classes/{world.class_a.id}")

    assert resp.status_code == 409


def test_teacher_sees_only_assigned_classes(world, login):
    classes = login(world.teacher).get(f"/schools/{world.school.id}/classes").get_json()

    assert [c["id"] for c in classes] == [world.class_a.id]
    assert classes[0]["totalStudents"] == 0


def test_device_crud(world, login):
    client = login(world.admin)

    created = client.post(
        f"/schools/{world.school.id}/devices",
        json={"name": "Side gate", "deviceId": "SN-SIDE", "type": "exit"},
    )
    assert created.status_code == 201
    device_id = created.get_json()["id"]

    duplicate = client.post(f"/schools/{world.school.id}/devices", json={"name": "X", "deviceId": "SN-IN"})
    assert duplicate.status_code == 409

    health = client.get(f"/devices/{device_id}/webhook-health").get_json()
    assert health["externalId"] == "SN-SIDE"
    assert health["lastWebhookEventAt"] is None

    assert client.put(f"/devices/{device_id}", json={"isActive": False}).get_json()["isActive"] is False
    assert client.delete(f"/devices/{device_id}").get_json() == {"ok": True}
    assert world.devices.get_by_external_id("SN-SIDE") is None


def test_devices_are_school_admin_only(world, login):
    assert login(world.teacher).get(f"/schools/{world.school.id}/devices").status_code == 403
    assert login(world.other_admin).put(f"/devices/{world.entrance.id}", json={"name": "x"}).status_code == 403
