from __future__ import annotations

import io

import pandas as pd
import pytest

from src.school_attendance.school_attendance.core.enums import Gender
from src.school_attendance.school_attendance.core.exceptions import ValidationError
from src.school_attendance.school_attendance.students.excel import (
    TEMPLATE_COLUMNS,
    detect_header,
    parse_import_rows,
)
from src.school_attendance.school_attendance.students.model import Student

ROWS = [
    ["1001", "Ali", "Karimov", "Bekzod", "Male", "5A", "+998901112233"],
    ["1002", "Vali", "", "", "Male", "5A", ""],
    ["1001", "Olim", "Saidov", "", "Male", "5A", ""],
    ["1003", "Said", "Aliev", "", "x", "5A", ""],
    ["1004", "Aziza", "Tursunova", "", "Female", "7C", ""],
]


def _xlsx(rows, columns=TEMPLATE_COLUMNS) -> bytes:
    buf = io.BytesIO()
    pd.DataFrame(rows, columns=columns).to_excel(buf, index=False, engine="openpyxl")
    return buf.getvalue()


def _raw_xlsx(rows) -> bytes:
    buf = io.BytesIO()
    pd.DataFrame(rows).to_excel(buf, index=False, header=False, engine="openpyxl")
    return buf.getvalue()


def test_detect_header_skips_title_rows():
    rows = [["Person Information", ""], ["Person ID", "Person Name"], ["1", "Karimov Ali"]]

    index, header = detect_header(rows)

    assert index == 1
    assert header == {"person id": 0, "person name": 1}


def test_parse_reports_skip_reasons():
    rows = [TEMPLATE_COLUMNS] + ROWS

    parsed = parse_import_rows(rows, {"5a"}, allow_create_missing_class=False)

    assert [r.device_student_id for r in parsed.rows] == ["1001"]
    assert parsed.rows[0].name == "Karimov Ali"
    assert parsed.rows[0].father_name == "Bekzod"
    assert parsed.skipped == 4
    assert parsed.errors == [
        {"row": 3, "message": "First name, last name and Person ID are required"},
        {"row": 4, "message": "Duplicate Device ID in file"},
        {"row": 5, "message": "Invalid gender. Use Male/Female (or 1/2)"},
        {"row": 6, "message": "Class not found (enable createMissingClass)"},
    ]


def test_parse_collects_missing_classes_when_allowed():
    parsed = parse_import_rows([TEMPLATE_COLUMNS] + ROWS, {"5a"}, allow_create_missing_class=True)

    assert parsed.missing_class_names == ["7C"]
    assert parsed.rows[-1].gender == Gender.FEMALE


def test_parse_rejects_duplicate_name_in_file():
    rows = [
        TEMPLATE_COLUMNS,
        ["1", "Ali", "Karimov", "", "1", "5A", ""],
        ["2", "ali", "KARIMOV", "", "1", "5A", ""],
    ]

    parsed = parse_import_rows(rows, {"5a"}, allow_create_missing_class=False)

    assert parsed.errors == [{"row": 3, "message": "Duplicate name in class (file)"}]


def test_unknown_header_layout():
    with pytest.raises(ValidationError, match="Header mismatch"):
        parse_import_rows([["Foo", "Bar"], ["1", "2"]], set(), allow_create_missing_class=False)


def test_import_excel_writes_valid_rows(world):
    result = world.container.student_service.import_excel(
        world.school.id, content=_xlsx(ROWS), filename="students.xlsx"
    )

    assert result["imported"] == 1
    assert result["skipped"] == 4
    student = world.students.get_by_device_student_id(world.school.id, "1001")
    assert student.class_id == world.class_a.id
    assert student.parent_phone == "+998901112233"


def test_import_excel_creates_missing_class(world):
    result = world.container.student_service.import_excel(
        world.school.id, content=_xlsx(ROWS), filename="students.xlsx", create_missing_class=True
    )

    assert result["imported"] == 2
    created = [c for c in world.classes.list_by_school(world.school.id) if c.name == "7C"]
    assert len(created) == 1
    assert world.students.get_by_device_student_id(world.school.id, "1004").class_id == created[0].id


def test_import_ivms_export_with_title_row(world):
    content = _raw_xlsx(
        [
            ["Person Information", None, None, None, None],
            ["Person ID", "Organization", "Person Name", "Gender", "Contact"],
            ["2001", "5A", "Karimov Ali", "Male", "+998900000000"],
        ]
    )

    result = world.container.student_service.import_excel(world.school.id, content=content, filename="ivms.xlsx")

    assert result == {"imported": 1, "skipped": 0, "errors": []}
    student = world.students.get_by_device_student_id(world.school.id, "2001")
    assert (student.last_name, student.first_name) == ("Karimov", "Ali")


def test_import_skips_name_clash_with_other_device_id(world):
    world.students.create(
        Student(
            id="st-1",
            school_id=world.school.id,
            class_id=world.class_a.id,
            device_student_id="9999",
            name="Karimov Ali",
            first_name="Ali",
            last_name="Karimov",
        )
    )

    result = world.container.student_service.import_excel(
        world.school.id, content=_xlsx(ROWS[:1]), filename="students.xlsx"
    )

    assert result["imported"] == 0
    assert result["errors"] == [{"row": 2, "message": "Duplicate student in class"}]


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"content": b"", "filename": "a.xlsx"}, "No file uploaded"),
        ({"content": b"data", "filename": "a.csv"}, "Invalid file type"),
        ({"content": b"data", "filename": "a.xlsx", "mimetype": "text/plain"}, "Invalid file type"),
        ({"content": b"not a workbook", "filename": "a.xlsx"}, "Invalid sheet"),
    ],
)
def test_import_excel_rejects_bad_uploads(world, kwargs, message):
    with pytest.raises(ValidationError, match=message):
        world.container.student_service.import_excel(world.school.id, **kwargs)


def test_import_route(world, login):
    client = login(world.admin)

    resp = client.post(
        f"/schools/{world.school.id}/students/import?createMissingClass=true",
        data={"file": (io.BytesIO(_xlsx(ROWS)), "students.xlsx")},
        content_type="multipart/form-data",
    )

    assert resp.status_code == 200
    assert resp.get_json()["imported"] == 2


def test_import_route_without_file(world, login):
    resp = login(world.admin).post(f"/schools/{world.school.id}/students/import", data={})

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "No file uploaded"


def test_template_lists_classes(world, login):
    resp = login(world.admin).get(f"/schools/{world.school.id}/students/template")

    assert resp.status_code == 200
    students = pd.read_excel(io.BytesIO(resp.data), sheet_name="Students", engine="openpyxl")
    classes = pd.read_excel(io.BytesIO(resp.data), sheet_name="Classes", engine="openpyxl")
    assert list(students.columns) == TEMPLATE_COLUMNS
    assert sorted(classes["Class"]) == ["5A", "6B"]


def test_teacher_export_is_limited_to_own_classes(world, login):
    world.container.student_service.import_excel(
        world.school.id,
        content=_xlsx([ROWS[0], ["1005", "Bobur", "Nazarov", "", "Male", "6B", ""]]),
        filename="students.xlsx",
    )

    resp = login(world.teacher).get(f"/schools/{world.school.id}/students/export")

    assert resp.status_code == 200
    assert resp.headers["Content-Disposition"].startswith("attachment; filename=students_")
    exported = pd.read_excel(io.BytesIO(resp.data), sheet_name="Students", dtype=str, engine="openpyxl")
    assert list(exported["Person ID"]) == ["1001"]
    assert list(exported["Class"]) == ["5A"]
