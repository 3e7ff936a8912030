from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from ..common.datetime_utils import now_utc
from ..common.serialization import iso
from ..common.validators import optional_str, require_non_empty
from ..core.constants import DEVICE_OFFLINE_AFTER_HOURS
from ..core.enums import DeviceType
from ..core.exceptions import ConflictError, DuplicateKeyError, ValidationError
from ..database.mysql_base import new_id
from .model import Device
from .repository import DeviceRepository

logger = logging.getLogger(__name__)


def _parse_type(value: Any) -> DeviceType:
    try:
        return DeviceType(str(value or DeviceType.ENTRANCE.value).upper())
    except ValueError:
        raise ValidationError("Invalid device type")


class DeviceService:
    """Use case: register terminals and track their health."""

    def __init__(self, devices: DeviceRepository, *, auto_register: bool = False):
        self._devices = devices
        self._auto_register = auto_register

    def list_for_school(self, school_id: str) -> Sequence[Device]:
        return self._devices.list_by_school(school_id)

    def create(self, school_id: str, data: dict) -> Device:
        external_id = require_non_empty(data.get("deviceId"), "deviceId")
        if self._devices.get_by_external_id(external_id):
            raise ConflictError("deviceId already exists")
        device = Device(
            id=new_id(),
            school_id=school_id,
            name=require_non_empty(data.get("name"), "name"),
            device_id=external_id,
            type=_parse_type(data.get("type")),
            location=optional_str(data.get("location")),
            is_active=bool(data.get("isActive", True)),
        )
        try:
            self._devices.create(device)
        except DuplicateKeyError:
            raise ConflictError("deviceId already exists")
        logger.info("Device registered: %s (%s) school=%s", device.name, external_id, school_id)
        return device

    def update(self, device: Device, data: dict) -> Device:
        changes: dict[str, Any] = {}
        if "name" in data:
            changes["name"] = require_non_empty(data.get("name"), "name")
        if "deviceId" in data:
            external_id = require_non_empty(data.get("deviceId"), "deviceId")
            existing = self._devices.get_by_external_id(external_id)
            if existing and existing.id != device.id:
                raise ConflictError("deviceId already exists")
            changes["device_id"] = external_id
        if "type" in data:
            changes["type"] = _parse_type(data.get("type"))
        if "location" in data:
            changes["location"] = optional_str(data.get("location"))
        if "isActive" in data:
            changes["is_active"] = bool(data.get("isActive"))
        if changes:
            try:
                self._devices.update(device.id, changes)
            except DuplicateKeyError:
                raise ConflictError("deviceId already exists")
        return replace(device, **changes)

    def delete(self, device: Device) -> None:
        self._devices.delete(device.id)

    def webhook_health(self, device: Device) -> dict:
        return {
            "deviceId": device.id,
            "externalId": device.device_id,
            "isActive": device.is_active,
            "lastSeenAt": iso(device.last_seen_at),
            "lastWebhookEventAt": iso(self._devices.last_event_at(device.id)),
        }

    def resolve_for_webhook(
        self,
        school_id: str,
        external_id: str,
        *,
        seen_at: datetime,
        device_type: DeviceType = DeviceType.ENTRANCE,
    ) -> Optional[Device]:
        """Find the terminal behind a webhook, auto-registering it when enabled.

        A serial already owned by another school is never re-assigned.
        """
        device = self._devices.get_by_external_id(external_id)
        if device and device.school_id != school_id:
            logger.warning("Device %s belongs to another school, ignoring for %s", external_id, school_id)
            return None
        if device is None:
            device = self.auto_register(
                school_id,
                external_id,
                device_type=device_type,
                location="Auto-discovered",
                seen_at=seen_at,
            )
            if device is None:
                return None
        if device.last_seen_at is not None and device.last_seen_at > seen_at:
            seen_at = device.last_seen_at
        self._devices.mark_seen(device.id, seen_at)
        return replace(device, last_seen_at=seen_at, is_active=True)

    def auto_register(
        self,
        school_id: str,
        external_id: str,
        *,
        name: Optional[str] = None,
        device_type: DeviceType = DeviceType.ENTRANCE,
        location: Optional[str] = None,
        seen_at: Optional[datetime] = None,
    ) -> Optional[Device]:
        """Create a terminal first seen in traffic; None when auto-registration is off."""
        if not self._auto_register:
            return None
        device = Device(
            id=new_id(),
            school_id=school_id,
            name=name or f"Auto {external_id}",
            device_id=external_id,
            type=device_type,
            location=location,
            is_active=True,
            last_seen_at=seen_at,
        )
        try:
            self._devices.create(device)
        except DuplicateKeyError:
            existing = self._devices.get_by_external_id(external_id)
            if not existing or existing.school_id != school_id:
                return None
            return existing
        logger.info("Device auto-registered: %s school=%s", external_id, school_id)
        return device

    def refresh_health(self, now: Optional[datetime] = None) -> dict:
        """Deactivate terminals silent for too long, reactivate the ones seen again."""
        now = now or now_utc()
        threshold = now - timedelta(hours=DEVICE_OFFLINE_AFTER_HOURS)
        to_offline: list[str] = []
        to_online: list[str] = []
        for device in self._devices.list_all():
            recently_seen = device.last_seen_at is not None and device.last_seen_at >= threshold
            if device.is_active and not recently_seen:
                to_offline.append(device.id)
            elif not device.is_active and recently_seen:
                to_online.append(device.id)
        offline = self._devices.set_active(to_offline, is_active=False)
        online = self._devices.set_active(to_online, is_active=True)
        if offline or online:
            logger.info("Device health: %s offline, %s back online", offline, online)
        return {"deactivated": offline, "reactivated": online}
