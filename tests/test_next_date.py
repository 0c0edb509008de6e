"""
Tests for the dual-timestamp next-date store.

An advance is only visible while its stamp matches the base stamp; a reset
from anywhere else wins over it.
"""

import pytest
from datetime import date

from cadence.data.models import ScheduleNextDate
from cadence.schedules.errors import ScheduleNotFoundError
from cadence.schedules.next_date import NextDateStore, effective_next_date


@pytest.fixture
def store(db, clock):
    return NextDateStore(db, clock)


class TestEffectiveNextDate:
    """Tests for choosing between the local and base pair."""

    def test_missing_record(self):
        assert effective_next_date(None) is None

    def test_local_used_when_stamps_match(self):
        record = ScheduleNextDate(
            local_next_date=date(2024, 3, 8), local_next_date_ts=10,
            base_next_date=date(2024, 3, 1), base_next_date_ts=10,
        )
        assert effective_next_date(record) == date(2024, 3, 8)

    def test_base_used_when_stamps_differ(self):
        record = ScheduleNextDate(
            local_next_date=date(2024, 3, 8), local_next_date_ts=10,
            base_next_date=date(2024, 3, 15), base_next_date_ts=20,
        )
        assert effective_next_date(record) == date(2024, 3, 15)


class TestNextDateStore:
    """Tests for create, advance, reset and delete."""

    @pytest.mark.asyncio
    async def test_create_sets_both_pairs(self, db, store):
        record = store.create("sched-1", date(2024, 3, 1))
        await db.commit()

        assert record.local_next_date == record.base_next_date == date(2024, 3, 1)
        assert record.local_next_date_ts == record.base_next_date_ts

    @pytest.mark.asyncio
    async def test_advance_keeps_base_timestamp(self, db, store):
        record = store.create("sched-1", date(2024, 3, 1))
        await db.commit()
        base_ts = record.base_next_date_ts

        changed = await store.advance("sched-1", date(2024, 3, 8))
        await db.commit()

        assert changed is True
        assert record.local_next_date == date(2024, 3, 8)
        assert record.local_next_date_ts == base_ts
        assert record.base_next_date == date(2024, 3, 1)
        assert record.base_next_date_ts == base_ts
        assert effective_next_date(record) == date(2024, 3, 8)

    @pytest.mark.asyncio
    async def test_reset_stamps_both_pairs_with_new_time(self, db, store):
        record = store.create("sched-1", date(2024, 3, 1))
        await db.commit()
        old_ts = record.base_next_date_ts

        changed = await store.reset("sched-1", date(2024, 4, 1))

        assert changed is True
        assert record.base_next_date_ts > old_ts
        assert record.local_next_date_ts == record.base_next_date_ts
        assert effective_next_date(record) == date(2024, 4, 1)

    @pytest.mark.asyncio
    async def test_unchanged_value_is_not_written(self, db, store):
        record = store.create("sched-1", date(2024, 3, 1))
        await db.commit()
        ts = record.base_next_date_ts

        assert await store.advance("sched-1", date(2024, 3, 1)) is False
        assert await store.reset("sched-1", date(2024, 3, 1)) is False
        assert record.base_next_date_ts == ts

    @pytest.mark.asyncio
    async def test_newer_base_from_elsewhere_wins(self, db, store):
        record = store.create("sched-1", date(2024, 3, 1))
        await db.commit()
        await store.advance("sched-1", date(2024, 3, 8))

        # Another device resets the base after our advance was derived
        record.base_next_date = date(2024, 3, 22)
        record.base_next_date_ts = record.base_next_date_ts + 5000

        assert effective_next_date(record) == date(2024, 3, 22)

    @pytest.mark.asyncio
    async def test_read_missing_raises(self, store):
        with pytest.raises(ScheduleNotFoundError):
            await store.read("nope")

    @pytest.mark.asyncio
    async def test_delete_hides_record(self, db, store):
        store.create("sched-1", date(2024, 3, 1))
        await db.commit()

        await store.delete("sched-1")
        await db.commit()

        assert await store.find("sched-1") is None
