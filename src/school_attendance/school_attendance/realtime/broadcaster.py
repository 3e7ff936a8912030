from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from ..core.constants import SSE_CLIENT_QUEUE_SIZE, SSE_HEARTBEAT_SECONDS

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Subscription:
    """One open SSE connection.

    ``school_id`` None receives every school (super admin feed); ``class_ids`` None
    receives every class of the school.
    """

    school_id: Optional[str]
    class_ids: Optional[frozenset] = None
    queue: "queue.Queue[dict]" = field(default_factory=lambda: queue.Queue(maxsize=SSE_CLIENT_QUEUE_SIZE))
    closed: threading.Event = field(default_factory=threading.Event)

    def wants(self, school_id: str, class_id: Optional[str]) -> bool:
        if self.school_id is not None and self.school_id != school_id:
            return False
        if self.class_ids is None:
            return True
        return class_id is not None and class_id in self.class_ids


def format_sse(data: Dict[str, Any]) -> str:
    return f"data: {json.dumps(data, default=str, ensure_ascii=False)}\n\n"


class EventBroadcaster:
    """Fan-out of attendance events to SSE clients (thread-safe, in-process)."""

    def __init__(self):
        self._clients: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, school_id: Optional[str], class_ids: Optional[List[str]] = None) -> Subscription:
        sub = Subscription(school_id=school_id, class_ids=frozenset(class_ids) if class_ids is not None else None)
        with self._lock:
            self._clients.append(sub)
            total = len(self._clients)
        logger.info("[SSE] New client connected (school=%s). Total: %s", school_id or "*", total)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        sub.closed.set()
        with self._lock:
            if sub not in self._clients:
                return
            self._clients.remove(sub)
            total = len(self._clients)
        logger.info("[SSE] Client disconnected (school=%s). Remaining: %s", sub.school_id or "*", total)

    def publish_attendance(self, school_id: str, event: Dict[str, Any]) -> int:
        """Deliver one attendance event; returns the number of clients reached."""

        student = event.get("student") or {}
        class_id = student.get("classId")
        timestamp = datetime.now().isoformat()

        delivered = 0
        dropped: List[Subscription] = []
        with self._lock:
            clients = list(self._clients)
        for sub in clients:
            if not sub.wants(school_id, class_id):
                continue
            message = {
                "type": "attendance" if sub.school_id is not None else "attendance_event",
                "schoolId": school_id,
                "event": event,
                "timestamp": timestamp,
            }
            try:
                sub.queue.put_nowait(message)
                delivered += 1
            except queue.Full:
                logger.warning("[SSE] Client queue full, dropping client (school=%s)", sub.school_id or "*")
                dropped.append(sub)

        for sub in dropped:
            self.unsubscribe(sub)
        return delivered

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            clients = list(self._clients)
        by_school: Dict[str, int] = {}
        for sub in clients:
            key = sub.school_id or "*"
            by_school[key] = by_school.get(key, 0) + 1
        return {"total": len(clients), "bySchool": by_school}

    def stream(
        self,
        sub: Subscription,
        *,
        initial: Optional[Dict[str, Any]] = None,
        heartbeat_seconds: int = SSE_HEARTBEAT_SECONDS,
    ) -> Iterator[str]:
        """Generator for a Flask streaming response.

        Ends once the subscription is closed (client dropped for a full queue);
        unsubscribes when the client goes away.
        """

        try:
            if initial is not None:
                yield format_sse(initial)
            while not sub.closed.is_set():
                try:
                    message = sub.queue.get(timeout=heartbeat_seconds)
                    yield format_sse(message)
                except queue.Empty:
                    yield f": heartbeat {datetime.now().isoformat()}\n\n"
        finally:
            self.unsubscribe(sub)
