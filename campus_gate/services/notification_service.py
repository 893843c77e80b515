# =======================================================================================
# campus_gate/services/notification_service.py - Notification Fan-out
# =======================================================================================
"""
Best-effort push of committed state changes.

Publishers are the synchronous services, running in FastAPI's threadpool.
Subscribers are WebSocket sessions living on the event loop, each with a
bounded queue. A full queue drops the event: clients always reconcile through
the status read, so nothing here is authoritative.
"""
import asyncio
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from ..config import config
from ..models.schemas import Notification
from ..utils.timeutil import utcnow

logger = logger.bind(module="notifications")

OBSERVERS_ROOM = "observers"
Deliver = Callable[[dict], None]


def student_room(student_id: int) -> str:
    return f"student:{student_id}"


class Subscription:
    """One open session listening on a room."""

    def __init__(self, room: str, deliver: Deliver):
        self.room = room
        self.deliver = deliver


class QueueSubscription(Subscription):
    """Subscription feeding an asyncio queue owned by an event loop."""

    def __init__(self, room: str, loop: asyncio.AbstractEventLoop, maxsize: Optional[int] = None):
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize or config.NOTIFY_QUEUE_SIZE)
        super().__init__(room, self._deliver_threadsafe)

    def _put(self, event: dict) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.debug(f"Dropping event for slow subscriber on {self.room}")

    def _deliver_threadsafe(self, event: dict) -> None:
        self.loop.call_soon_threadsafe(self._put, event)

    async def get(self) -> dict:
        return await self.queue.get()


class NotificationHub:
    """Room-based fan-out to live sessions."""

    def __init__(self):
        self._rooms: Dict[str, List[Subscription]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, subscription: Subscription) -> Subscription:
        with self._lock:
            self._rooms[subscription.room].append(subscription)
        logger.debug(f"Subscribed to {subscription.room}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._rooms.get(subscription.room, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._rooms.pop(subscription.room, None)

    def subscriber_count(self, room: str) -> int:
        with self._lock:
            return len(self._rooms.get(room, []))

    def publish(self, room: str, event: Notification) -> int:
        """Deliver to every subscriber of ``room``; returns how many accepted it."""
        with self._lock:
            subs = list(self._rooms.get(room, []))

        message = event.model_dump(mode="json")
        delivered = 0
        for sub in subs:
            try:
                sub.deliver(message)
                delivered += 1
            except Exception as e:
                # a closed loop or broken session must not affect the commit
                logger.warning(f"Notification delivery failed on {room}: {e}")
        return delivered

    def notify(self, student_id: int, kind: str, payload: Dict[str, Any],
               observer_payload: Optional[Dict[str, Any]] = None) -> None:
        """One event to the student's session, one to observers."""
        now = utcnow()
        self.publish(student_room(student_id),
                     Notification(type=kind, payload=payload, timestamp=now))
        self.publish(OBSERVERS_ROOM,
                     Notification(type="activity",
                                  payload={"student_id": student_id, **(observer_payload or payload)},
                                  timestamp=now))
