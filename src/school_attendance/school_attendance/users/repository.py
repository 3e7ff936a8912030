from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import User


class UserRepository(Protocol):
    """Giao diện repository cho User.

    Lưu ý (DIP): tầng service phụ thuộc vào interface này, không phụ thuộc trực tiếp DB cụ thể.
    """

    def get_by_id(self, user_id: str) -> Optional[User]:
        raise NotImplementedError

    def get_by_email(self, email: str) -> Optional[User]:
        raise NotImplementedError

    def list_by_school(self, school_id: str) -> Sequence[User]:
        raise NotImplementedError

    def create(self, user: User) -> None:
        raise NotImplementedError

    def list_teacher_class_ids(self, teacher_id: str) -> list[str]:
        raise NotImplementedError

    def set_teacher_classes(self, teacher_id: str, class_ids: Sequence[str]) -> None:
        raise NotImplementedError
