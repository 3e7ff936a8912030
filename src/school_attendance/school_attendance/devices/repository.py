from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from .model import Device


class DeviceRepository(Protocol):
    def get_by_id(self, device_id: str) -> Optional[Device]:
        raise NotImplementedError

    def get_by_external_id(self, external_id: str) -> Optional[Device]:
        """Look up by the serial the terminal reports (``devices.device_id``)."""

        raise NotImplementedError

    def list_by_school(self, school_id: str, *, active_only: bool = False) -> Sequence[Device]:
        raise NotImplementedError

    def list_all(self) -> Sequence[Device]:
        raise NotImplementedError

    def create(self, device: Device) -> None:
        raise NotImplementedError

    def update(self, device_id: str, changes: dict) -> bool:
        raise NotImplementedError

    def delete(self, device_id: str) -> bool:
        raise NotImplementedError

    def mark_seen(self, device_id: str, seen_at: datetime) -> None:
        raise NotImplementedError

    def set_active(self, device_ids: Sequence[str], *, is_active: bool) -> int:
        raise NotImplementedError

    def last_event_at(self, device_id: str) -> Optional[datetime]:
        raise NotImplementedError
