from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..common.serialization import iso
from ..core.enums import DeviceType


@dataclass(frozen=True)
class Device:
    """Thiết bị nhận diện khuôn mặt đặt ở cổng trường.

    ``device_id`` là mã ngoài (serial) mà thiết bị gửi kèm webhook.
    """

    id: str
    school_id: str
    name: str
    device_id: str
    type: DeviceType = DeviceType.ENTRANCE
    location: Optional[str] = None
    is_active: bool = True
    last_seen_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "schoolId": self.school_id,
            "name": self.name,
            "deviceId": self.device_id,
            "type": self.type.value,
            "location": self.location,
            "isActive": self.is_active,
            "lastSeenAt": iso(self.last_seen_at),
        }
