from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..common.serialization import iso


@dataclass(frozen=True)
class SchoolClass:
    """Lớp học; ``start_time`` là giờ vào lớp dạng HH:MM theo giờ địa phương của trường."""

    id: str
    school_id: str
    name: str
    grade_level: int
    start_time: str
    end_time: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "schoolId": self.school_id,
            "name": self.name,
            "gradeLevel": self.grade_level,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "createdAt": iso(self.created_at),
        }
