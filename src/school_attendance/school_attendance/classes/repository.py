from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import SchoolClass


class ClassRepository(Protocol):
    def get_by_id(self, class_id: str) -> Optional[SchoolClass]:
        raise NotImplementedError

    def list_by_school(self, school_id: str) -> Sequence[SchoolClass]:
        raise NotImplementedError

    def list_all(self) -> Sequence[SchoolClass]:
        raise NotImplementedError

    def create(self, school_class: SchoolClass) -> None:
        raise NotImplementedError

    def update(self, class_id: str, changes: dict) -> bool:
        raise NotImplementedError

    def delete(self, class_id: str) -> bool:
        raise NotImplementedError

    def count_active_students(self, school_id: str) -> dict[str, int]:
        """Return ``{class_id: active_student_count}`` for the school."""

        raise NotImplementedError
