from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import School


class SchoolRepository(Protocol):
    """Giao diện repository cho School.

    Lưu ý (DIP): tầng service phụ thuộc vào interface này, không phụ thuộc trực tiếp DB cụ thể.
    """

    def get_by_id(self, school_id: str) -> Optional[School]:
        raise NotImplementedError

    def list_all(self) -> Sequence[School]:
        raise NotImplementedError

    def create(self, school: School) -> None:
        raise NotImplementedError

    def update(self, school_id: str, changes: dict) -> bool:
        raise NotImplementedError
