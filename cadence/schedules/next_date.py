"""
Next-Date Store

Keeps one dual-timestamped next-date record per schedule.

- ``reset`` writes a new base: both pairs get the value and a fresh timestamp.
- ``advance`` writes a provisional local value stamped with the *current base
  timestamp*, not "now". The local value only counts while that stamp still
  equals the base timestamp, so if another device resets the base in the
  meantime its newer base wins when the records converge.

Writes are staged on the session; the caller commits.
"""
from datetime import date
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cadence.data.base import now_ms
from cadence.data.models import ScheduleNextDate
from .errors import ScheduleNotFoundError


def effective_next_date(record: Optional[ScheduleNextDate]) -> Optional[date]:
    """The next date a reader should see for a record."""
    if record is None:
        return None
    if record.local_next_date_ts == record.base_next_date_ts:
        return record.local_next_date
    return record.base_next_date


class NextDateStore:
    """Read/advance/reset operations over ``schedules_next_date``."""

    def __init__(self, db: AsyncSession, clock: Callable[[], int] = now_ms):
        self.db = db
        self.clock = clock

    async def find(self, schedule_id: str) -> Optional[ScheduleNextDate]:
        result = await self.db.execute(
            select(ScheduleNextDate)
            .where(ScheduleNextDate.schedule_id == schedule_id)
            .where(ScheduleNextDate.tombstone == False)
        )
        return result.scalar_one_or_none()

    async def read(self, schedule_id: str) -> ScheduleNextDate:
        record = await self.find(schedule_id)
        if record is None:
            raise ScheduleNotFoundError(schedule_id)
        return record

    def create(self, schedule_id: str, next_date: Optional[date]) -> ScheduleNextDate:
        """Stage the initial record for a new schedule."""
        ts = self.clock()
        record = ScheduleNextDate(
            schedule_id=schedule_id,
            local_next_date=next_date,
            local_next_date_ts=ts,
            base_next_date=next_date,
            base_next_date_ts=ts,
        )
        self.db.add(record)
        return record

    async def recreate(self, schedule_id: str, next_date: Optional[date]) -> ScheduleNextDate:
        """Replace a lost record, reviving a tombstoned row if one is left."""
        result = await self.db.execute(
            select(ScheduleNextDate).where(ScheduleNextDate.schedule_id == schedule_id)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return self.create(schedule_id, next_date)
        ts = self.clock()
        record.tombstone = False
        record.local_next_date = record.base_next_date = next_date
        record.local_next_date_ts = record.base_next_date_ts = ts
        return record

    async def advance(self, schedule_id: str, new_date: Optional[date]) -> bool:
        """Provisionally move the next date. Returns False when unchanged."""
        record = await self.read(schedule_id)
        if effective_next_date(record) == new_date:
            return False
        record.local_next_date = new_date
        record.local_next_date_ts = record.base_next_date_ts
        return True

    async def reset(self, schedule_id: str, new_date: Optional[date]) -> bool:
        """Set a new base next date. Returns False when unchanged."""
        record = await self.read(schedule_id)
        if effective_next_date(record) == new_date:
            return False
        ts = self.clock()
        record.base_next_date = new_date
        record.base_next_date_ts = ts
        record.local_next_date = new_date
        record.local_next_date_ts = ts
        return True

    async def delete(self, schedule_id: str) -> None:
        record = await self.find(schedule_id)
        if record is not None:
            record.tombstone = True
