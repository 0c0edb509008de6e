"""
Preference Store

String-keyed get/set over the ``preferences`` table, plus typed accessors for
the keys the schedule engine reads.
"""
from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cadence.config import settings
from cadence.data.models import Preference

WEEKEND_DAYS = "weekendDays"
UPCOMING_LENGTH = "upcomingScheduledTransactionLength"
FIRST_DAY_OF_WEEK_IDX = "firstDayOfWeekIdx"
LAST_SCHEDULE_RUN = "lastScheduleRun"


def parse_weekend_days(value: Optional[str]) -> List[str]:
    """
    Parse the ``weekendDays`` preference.

    The value is a comma list of day numbers (``"0"`` is Sunday) or the
    literal ``none``. Unset falls back to the configured default.
    """
    if value == "none":
        return []
    if not value:
        value = settings.DEFAULT_WEEKEND_DAYS
    return [day for day in value.split(",") if day]


class PreferenceStore:
    """Reads and writes synced preferences within a session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, key: str) -> Optional[str]:
        result = await self.db.execute(
            select(Preference.value).where(Preference.id == key)
        )
        return result.scalar_one_or_none()

    async def set(self, key: str, value: Optional[str]) -> None:
        """Upsert a preference. The caller commits."""
        pref = await self.db.get(Preference, key)
        if pref is None:
            self.db.add(Preference(id=key, value=value))
        else:
            pref.value = value

    async def weekend_days(self) -> List[str]:
        return parse_weekend_days(await self.get(WEEKEND_DAYS))

    async def upcoming_length(self) -> str:
        return await self.get(UPCOMING_LENGTH) or settings.DEFAULT_UPCOMING_LENGTH

    async def first_day_of_week_idx(self) -> int:
        value = await self.get(FIRST_DAY_OF_WEEK_IDX) or settings.DEFAULT_FIRST_DAY_OF_WEEK_IDX
        try:
            return int(value) % 7
        except ValueError:
            return 0

    async def last_schedule_run(self) -> Optional[date]:
        value = await self.get(LAST_SCHEDULE_RUN)
        return date.fromisoformat(value) if value else None

    async def set_last_schedule_run(self, day: date) -> None:
        await self.set(LAST_SCHEDULE_RUN, day.isoformat())
