from __future__ import annotations

from datetime import datetime
from typing import ContextManager, Optional, Protocol, Sequence, Tuple

from .model import Student, StudentDeviceLink, StudentProvisioning


class StudentRepository(Protocol):
    """Students together with their device provisioning records.

    ``transaction()`` yields a repository whose calls commit or roll back together;
    import and provisioning use cases run their writes inside it.
    """

    def transaction(self) -> ContextManager["StudentRepository"]:
        raise NotImplementedError

    # Students
    def get_by_id(self, student_id: str) -> Optional[Student]:
        raise NotImplementedError

    def get_by_device_student_id(self, school_id: str, device_student_id: str) -> Optional[Student]:
        raise NotImplementedError

    def list_by_device_student_ids(self, school_id: str, device_student_ids: Sequence[str]) -> Sequence[Student]:
        raise NotImplementedError

    def list_active(self, school_id: str, *, class_ids: Optional[Sequence[str]] = None) -> Sequence[Student]:
        raise NotImplementedError

    def search(
        self,
        school_id: str,
        *,
        class_ids: Optional[Sequence[str]] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[Sequence[Student], int]:
        """Active students ordered by class grade, class name, last and first name."""

        raise NotImplementedError

    def find_duplicate_in_class(
        self,
        *,
        school_id: str,
        class_id: str,
        first_name: str,
        last_name: str,
        full_name: str,
        exclude_id: Optional[str] = None,
    ) -> Optional[Student]:
        raise NotImplementedError

    def create(self, student: Student) -> None:
        raise NotImplementedError

    def update(self, student_id: str, changes: dict) -> Optional[Student]:
        raise NotImplementedError

    def upsert_by_device_student_id(self, student: Student) -> Tuple[Student, Optional[Student]]:
        """Insert or update on ``(school_id, device_student_id)``.

        Returns ``(saved, previous)``; ``previous`` is None when a row was created.
        An existing row is reactivated.
        """

        raise NotImplementedError

    def set_sync_status(self, student_id: str, status: str, at: datetime) -> None:
        raise NotImplementedError

    # Provisioning
    def get_provisioning(self, provisioning_id: str) -> Optional[StudentProvisioning]:
        raise NotImplementedError

    def get_provisioning_by_request(self, school_id: str, request_id: str) -> Optional[StudentProvisioning]:
        raise NotImplementedError

    def create_provisioning(self, provisioning: StudentProvisioning) -> None:
        raise NotImplementedError

    def update_provisioning(self, provisioning_id: str, *, status: str, last_error: Optional[str]) -> None:
        raise NotImplementedError

    def list_links(self, provisioning_id: str) -> Sequence[StudentDeviceLink]:
        raise NotImplementedError

    def get_link(self, provisioning_id: str, device_id: str) -> Optional[StudentDeviceLink]:
        raise NotImplementedError

    def save_link(self, link: StudentDeviceLink) -> None:
        """Insert or replace the link identified by ``(provisioning_id, device_id)``."""

        raise NotImplementedError
