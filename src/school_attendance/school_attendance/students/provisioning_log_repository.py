from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import ProvisioningLog


class ProvisioningLogRepository(Protocol):
    def create(self, log: ProvisioningLog) -> None:
        raise NotImplementedError

    def list_by_provisioning(self, provisioning_id: str, *, limit: int = 200) -> Sequence[ProvisioningLog]:
        """Newest first."""

        raise NotImplementedError

    def list_by_school(
        self,
        school_id: str,
        *,
        level: Optional[str] = None,
        stage: Optional[str] = None,
        student_id: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[ProvisioningLog]:
        raise NotImplementedError
