from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..common.serialization import iso
from ..core.constants import DEFAULT_ABSENCE_CUTOFF_MINUTES, DEFAULT_LATE_THRESHOLD_MINUTES, DEFAULT_TIMEZONE


@dataclass(frozen=True)
class School:
    """Thực thể miền (domain): School (một trường học / tenant)."""

    id: str
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    timezone: str = DEFAULT_TIMEZONE
    late_threshold_minutes: int = DEFAULT_LATE_THRESHOLD_MINUTES
    absence_cutoff_minutes: int = DEFAULT_ABSENCE_CUTOFF_MINUTES
    webhook_secret_in: Optional[str] = None
    webhook_secret_out: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self, *, include_secrets: bool = False) -> dict:
        out = {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "timezone": self.timezone,
            "lateThresholdMinutes": self.late_threshold_minutes,
            "absenceCutoffMinutes": self.absence_cutoff_minutes,
            "createdAt": iso(self.created_at),
        }
        if include_secrets:
            out["webhookSecretIn"] = self.webhook_secret_in
            out["webhookSecretOut"] = self.webhook_secret_out
        return out
