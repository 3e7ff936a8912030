"""Parsing of access-control terminal webhooks (iVMS style AccessControllerEvent)."""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..core.constants import SUCCESS_SUB_EVENT_TYPE
from ..core.exceptions import ValidationError

EVENT_FIELDS = ("AccessControllerEvent", "accessControllerEvent", "event", "Event", "data", "Data")
PICTURE_FIELDS = ("Picture", "picture")


@dataclass(frozen=True)
class NormalizedEvent:
    employee_no: str
    device_id: str
    date_time: str
    student_name: Optional[str]
    raw_payload: dict


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_event(access_event: Mapping[str, Any]) -> Optional[NormalizedEvent]:
    """Keep only successful authentication events (sub-event 75) with the fields we need."""

    if not isinstance(access_event, Mapping):
        return None
    inner = access_event.get("AccessControllerEvent") or access_event
    if not isinstance(inner, Mapping):
        return None

    if _as_int(inner.get("subEventType")) != SUCCESS_SUB_EVENT_TYPE:
        return None

    employee_no = inner.get("employeeNoString")
    device_id = access_event.get("deviceID") or inner.get("deviceID")
    date_time = access_event.get("dateTime") or inner.get("dateTime")
    if not employee_no or not device_id or not date_time:
        return None

    return NormalizedEvent(
        employee_no=str(employee_no).strip(),
        device_id=str(device_id).strip(),
        date_time=str(date_time).strip(),
        student_name=inner.get("name"),
        raw_payload=dict(access_event),
    )


def build_event_key(device_id: str, employee_no: str, date_time: str, direction: str) -> str:
    raw = f"{device_id}:{employee_no}:{date_time}:{direction}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def extract_access_event(
    *,
    content_type: str,
    form: Mapping[str, Any],
    json_body: Any,
) -> Any:
    """Pull the event JSON out of a multipart form or a JSON body.

    Raises ``ValidationError`` when a multipart field holds invalid JSON or nothing
    usable was sent.
    """

    event: Any = None
    if "multipart" in (content_type or ""):
        for name in EVENT_FIELDS:
            value = form.get(name)
            if not value:
                continue
            if isinstance(value, str):
                try:
                    event = json.loads(value)
                except ValueError as e:
                    raise ValidationError(f"Parse failed: {e}")
            else:
                event = value
            break
    elif isinstance(json_body, Mapping):
        event = json_body

    if not event:
        raise ValidationError("Missing AccessControllerEvent")
    return event
