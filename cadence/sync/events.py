"""
Sync completion events.

The sync transport publishes an event on a ``SyncEventChannel`` whenever a
cycle starts or finishes; the schedule engine consumes them. Success, error
and unauthorized all count as a completed cycle.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class SyncEventType(str, Enum):
    """Kinds of sync events."""
    STARTED = "started"
    SUCCESS = "success"
    ERROR = "error"
    UNAUTHORIZED = "unauthorized"


COMPLETION_TYPES = {SyncEventType.SUCCESS, SyncEventType.ERROR, SyncEventType.UNAUTHORIZED}


@dataclass
class SyncEvent:
    type: SyncEventType

    @property
    def is_completion(self) -> bool:
        return self.type in COMPLETION_TYPES

    @property
    def succeeded(self) -> bool:
        return self.type == SyncEventType.SUCCESS


class SyncEventChannel:
    """Queue carrying sync events from the transport to the engine."""

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize)

    async def publish(self, event: SyncEvent) -> None:
        await self._queue.put(event)

    def pending(self) -> int:
        return self._queue.qsize()

    async def consume(self, handler: Callable[[SyncEvent], Awaitable[object]]) -> None:
        """
        Feed events to ``handler`` one at a time until cancelled.

        A failing handler is logged and the loop moves on to the next event.
        """
        while True:
            event = await self._queue.get()
            try:
                await handler(event)
            except Exception as e:
                logger.error(f"Handling sync event {event.type.value} failed: {e}")
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every published event has been handled."""
        await self._queue.join()
