"""Reading and writing the student roster spreadsheet (pandas + openpyxl).

Three header layouts are accepted: the iVMS person export, the legacy internal
template and the current internal template (English or Uzbek headers).
"""
from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import pandas as pd

from ..common.names import build_full_name, normalize_gender, normalize_header, normalize_name_part, split_full_name
from ..core.constants import IMPORT_HEADER_SCAN_ROWS
from ..core.enums import Gender
from ..core.exceptions import ValidationError

TEMPLATE_COLUMNS = ["Person ID", "First Name", "Last Name", "Father Name", "Gender", "Class", "Parent Phone"]
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
HEADER_MISMATCH = "Header mismatch. Please use the exported template."


@dataclass(frozen=True)
class ImportRow:
    row: int
    name: str
    first_name: str
    last_name: str
    father_name: str
    gender: Gender
    device_student_id: str
    class_name: str
    parent_phone: str


@dataclass
class ParsedImport:
    rows: List[ImportRow] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    skipped: int = 0
    missing_class_names: List[str] = field(default_factory=list)

    def skip(self, row: int, message: str) -> None:
        self.skipped += 1
        self.errors.append({"row": row, "message": message})


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if value != value:
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def read_sheet(content: bytes) -> List[List[str]]:
    """First worksheet as a list of rows of cell texts."""

    try:
        df = pd.read_excel(io.BytesIO(content), sheet_name=0, header=None, dtype=object, engine="openpyxl")
    except Exception as e:
        raise ValidationError(f"Invalid sheet: {e}")
    return [[_cell_text(v) for v in row] for row in df.itertuples(index=False, name=None)]


def _has_name_columns(keys: Set[str]) -> bool:
    return (
        "name" in keys
        or "ism" in keys
        or ("first name" in keys and "last name" in keys)
        or ("ism" in keys and "familiya" in keys)
    )


def detect_header(rows: Sequence[Sequence[str]]) -> Tuple[int, Dict[str, int]]:
    """Return ``(header_row_index, {normalized header: column index})``."""

    header_index = 0
    for index, row in enumerate(rows[:IMPORT_HEADER_SCAN_ROWS]):
        keys = {normalize_header(v) for v in row} - {""}
        if "person id" in keys and ("person name" in keys or _has_name_columns(keys)):
            header_index = index
            break
        if "device id" in keys and _has_name_columns(keys):
            header_index = index
            break

    header_map: Dict[str, int] = {}
    if rows:
        for col, raw in enumerate(rows[header_index]):
            key = normalize_header(raw)
            if key and key not in header_map:
                header_map[key] = col
    return header_index, header_map


def _layout(h: Dict[str, int]) -> Optional[str]:
    if all(k in h for k in ("person id", "organization", "person name", "gender")):
        return "ivms"
    if all(k in h for k in ("name", "device id", "gender", "class", "father name", "parent phone")):
        return "legacy"
    if (
        _has_name_columns(set(h))
        and "person id" in h
        and ("class" in h or "sinf" in h)
        and ("gender" in h or "jinsi" in h)
        and ("father name" in h or "otasining ismi" in h)
        and ("parent phone" in h or "ota-ona telefoni" in h)
    ):
        return "internal"
    return None


def _first(h: Dict[str, int], *keys: str) -> Optional[int]:
    for key in keys:
        if key in h:
            return h[key]
    return None


def parse_import_rows(
    rows: Sequence[Sequence[str]],
    existing_class_names: Set[str],
    *,
    allow_create_missing_class: bool,
) -> ParsedImport:
    """Validate spreadsheet rows; ``existing_class_names`` must be lower-cased.

    Row numbers in errors are 1-based spreadsheet rows.
    """

    header_index, h = detect_header(rows)
    layout = _layout(h)
    if layout is None:
        raise ValidationError(HEADER_MISMATCH)

    col_name = _first(h, "person name", "name", "ism")
    col_first = _first(h, "first name", "ism")
    col_last = _first(h, "last name", "familiya")
    col_person_id = _first(h, "person id", "device id")
    col_class = _first(h, "organization", "class", "sinf")
    col_father = _first(h, "father name", "otasining ismi")
    col_gender = _first(h, "gender", "jinsi")
    col_phone = _first(h, "parent phone", "ota-ona telefoni", "contact")

    def cell(row: Sequence[str], col: Optional[int]) -> str:
        if col is None or col >= len(row):
            return ""
        return row[col].strip()

    result = ParsedImport()
    seen_ids: Set[str] = set()
    seen_names: Set[str] = set()
    missing: Dict[str, str] = {}

    for index in range(header_index + 1, len(rows)):
        row = rows[index]
        row_number = index + 1
        if not any(v for v in row):
            continue

        first_raw, last_raw = cell(row, col_first), cell(row, col_last)
        if first_raw or last_raw:
            last_name, first_name = last_raw, first_raw
        else:
            last_name, first_name = split_full_name(cell(row, col_name))
        first_name = normalize_name_part(first_name)
        last_name = normalize_name_part(last_name)
        device_student_id = cell(row, col_person_id)
        class_name = cell(row, col_class)

        if not first_name or not last_name or not device_student_id:
            result.skip(
                row_number,
                "Person Name and Person ID are required"
                if layout == "ivms"
                else "First name, last name and Person ID are required",
            )
            continue
        if device_student_id in seen_ids:
            result.skip(row_number, "Duplicate Device ID in file")
            continue
        seen_ids.add(device_student_id)

        name_key = f"{class_name.lower()}|{last_name.lower()}|{first_name.lower()}"
        if name_key in seen_names:
            result.skip(row_number, "Duplicate name in class (file)")
            continue
        seen_names.add(name_key)

        gender = normalize_gender(cell(row, col_gender))
        if gender is None:
            result.skip(row_number, "Invalid gender. Use Male/Female (or 1/2)")
            continue

        if class_name and class_name.lower() not in existing_class_names:
            if not allow_create_missing_class:
                result.skip(row_number, "Class not found (enable createMissingClass)")
                continue
            missing.setdefault(class_name.lower(), class_name)

        result.rows.append(
            ImportRow(
                row=row_number,
                name=build_full_name(last_name, first_name),
                first_name=first_name,
                last_name=last_name,
                father_name=cell(row, col_father),
                gender=gender,
                device_student_id=device_student_id,
                class_name=class_name,
                parent_phone=cell(row, col_phone),
            )
        )

    result.missing_class_names = list(missing.values())
    return result


def _gender_label(gender: Gender) -> str:
    return "Male" if gender == Gender.MALE else "Female"


def write_roster(records: Sequence[Dict[str, Any]], class_names: Sequence[str]) -> io.BytesIO:
    """Roster workbook: the student sheet plus a "Classes" sheet for reference."""

    df = pd.DataFrame(list(records), columns=TEMPLATE_COLUMNS)
    classes_df = pd.DataFrame({"Class": list(class_names)})

    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Students")
        classes_df.to_excel(writer, index=False, sheet_name="Classes")
    output.seek(0)
    return output


def roster_record(student, class_name: Optional[str]) -> Dict[str, Any]:
    return {
        "Person ID": student.device_student_id or "",
        "First Name": student.first_name,
        "Last Name": student.last_name,
        "Father Name": student.father_name or "",
        "Gender": _gender_label(student.gender),
        "Class": class_name or "",
        "Parent Phone": student.parent_phone or "",
    }
