"""
Outbound notification channel.

The engine reports to clients through named messages:

- ``schedules-offline``: scheduled transactions could not be posted because
  the last sync failed; payload lists the affected payees
- ``sync-event``: data changed as if it had arrived through a sync; payload
  names the tables to refresh

Messages are fanned out to subscriber queues and kept in a bounded backlog
that pollers can drain.
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    name: str
    payload: Optional[Dict[str, Any]] = None
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "payload": self.payload,
            "sent_at": self.sent_at.isoformat(),
        }


class NotificationChannel:
    """In-process fan-out of outbound notifications."""

    def __init__(self, backlog_size: int = 100):
        self._subscribers: List[asyncio.Queue] = []
        self._backlog: Deque[Notification] = deque(maxlen=backlog_size)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    async def send(self, name: str, payload: Optional[Dict[str, Any]] = None) -> Notification:
        notification = Notification(name=name, payload=payload)
        logger.info(f"Notification {name}: {payload}")
        self._backlog.append(notification)
        for queue in self._subscribers:
            queue.put_nowait(notification)
        return notification

    def drain(self) -> List[Notification]:
        """Return and clear the backlog."""
        pending = list(self._backlog)
        self._backlog.clear()
        return pending
