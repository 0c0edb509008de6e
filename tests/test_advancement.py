"""
Tests for the post-sync advancement service.

Schedules are created through the lifecycle manager and transactions are
inserted directly, the way a sync would deliver them.
"""

import logging

import pytest
from datetime import date

from sqlalchemy import func, select

from cadence.data.models import Account, Rule, Schedule, ScheduleNextDate, Transaction
from cadence.schedules.advancement import SCHEDULES_OFFLINE, SYNC_EVENT, AdvancementService
from cadence.schedules.lifecycle import ScheduleLifecycle

from conftest import schedule_conditions, weekly_config


@pytest.fixture
def lifecycle(db, today, clock):
    return ScheduleLifecycle(db, today=today, clock=clock)


@pytest.fixture
def service(db, notifier, today, clock):
    return AdvancementService(db, notifier, today=today, clock=clock)


async def pay(db, schedule_id, on, amount=-120000):
    db.add(Transaction(account="acct-checking", amount=amount, date=on, schedule=schedule_id))
    await db.commit()


async def next_date_record(db, schedule_id) -> ScheduleNextDate:
    result = await db.execute(
        select(ScheduleNextDate).where(ScheduleNextDate.schedule_id == schedule_id)
    )
    return result.scalar_one()


async def transaction_count(db) -> int:
    result = await db.execute(select(func.count()).select_from(Transaction))
    return result.scalar_one()


# =============================================================================
# Paid schedules
# =============================================================================

class TestPaidSchedules:
    """Paid schedules move forward or complete."""

    @pytest.mark.asyncio
    async def test_paid_weekly_schedule_advances(self, db, lifecycle, service, account):
        schedule_id = await lifecycle.create({"name": "Gym"}, schedule_conditions(weekly_config("2024-03-01")))
        record = await next_date_record(db, schedule_id)
        base_ts = record.base_next_date_ts
        await pay(db, schedule_id, date(2024, 3, 1))

        result = await service.run(sync_success=True)

        record = await next_date_record(db, schedule_id)
        assert result.advanced == [schedule_id]
        assert record.local_next_date == date(2024, 3, 8)
        assert record.base_next_date_ts == base_ts
        assert record.local_next_date_ts == base_ts
        assert (await db.get(Schedule, schedule_id)).completed is False

    @pytest.mark.asyncio
    async def test_approximate_date_accepts_early_payment(self, db, lifecycle, service, account):
        schedule_id = await lifecycle.create(
            {}, schedule_conditions(weekly_config("2024-03-01"), date_op="isapprox")
        )
        await pay(db, schedule_id, date(2024, 2, 28))

        result = await service.run(sync_success=True)

        assert result.advanced == [schedule_id]

    @pytest.mark.asyncio
    async def test_payment_for_previous_occurrence_does_not_count(self, db, lifecycle, service, account):
        schedule_id = await lifecycle.create({}, schedule_conditions(weekly_config("2024-03-01")))
        await pay(db, schedule_id, date(2024, 2, 23))

        result = await service.run(sync_success=True)

        assert result.advanced == []

    @pytest.mark.asyncio
    async def test_paid_one_off_completes_after_its_date(self, db, lifecycle, service, account, today):
        schedule_id = await lifecycle.create({}, schedule_conditions("2024-03-05"))
        await pay(db, schedule_id, date(2024, 3, 5))
        today.value = date(2024, 3, 6)

        result = await service.run(sync_success=True)

        assert result.completed == [schedule_id]
        assert (await db.get(Schedule, schedule_id)).completed is True

    @pytest.mark.asyncio
    async def test_paid_one_off_on_its_date_stays_open(self, db, lifecycle, service, account, today):
        schedule_id = await lifecycle.create({}, schedule_conditions("2024-03-05"))
        await pay(db, schedule_id, date(2024, 3, 5))
        today.value = date(2024, 3, 5)

        result = await service.run(sync_success=True)

        assert result.completed == []
        assert (await db.get(Schedule, schedule_id)).completed is False

    @pytest.mark.asyncio
    async def test_exhausted_recurrence_completes(self, db, lifecycle, service, account):
        config = weekly_config("2024-03-01", endMode="after_n_occurrences", endOccurrences=1)
        schedule_id = await lifecycle.create({}, schedule_conditions(config))
        await pay(db, schedule_id, date(2024, 3, 1))

        result = await service.run(sync_success=True)

        assert result.completed == [schedule_id]
        assert result.advanced == []


# =============================================================================
# Auto-posting
# =============================================================================

class TestAutoPosting:
    """Due schedules that post transactions."""

    @pytest.mark.asyncio
    async def test_due_schedule_posts_transaction(self, db, lifecycle, service, notifier, account):
        schedule_id = await lifecycle.create(
            {"posts_transaction": True}, schedule_conditions("2024-03-03", amount=-4500)
        )

        result = await service.run(sync_success=True)

        rows = (await db.execute(select(Transaction))).scalars().all()
        assert result.posted == [schedule_id]
        assert len(rows) == 1
        assert rows[0].schedule == schedule_id
        assert rows[0].amount == -4500
        assert rows[0].date == date(2024, 3, 1)
        assert rows[0].payee == "payee-landlord"
        assert rows[0].cleared is False

        sent = notifier.drain()
        assert [n.name for n in sent] == [SYNC_EVENT]
        assert sent[0].payload == {"type": "success", "tables": ["transactions"], "syncDisabled": False}

    @pytest.mark.asyncio
    async def test_posted_schedule_is_paid_on_next_run(self, db, lifecycle, service, account):
        await lifecycle.create({"posts_transaction": True}, schedule_conditions("2024-03-01"))

        await service.run(sync_success=True)
        second = await service.run(sync_success=True)

        assert second.posted == []
        assert await transaction_count(db) == 1

    @pytest.mark.asyncio
    async def test_schedule_without_auto_post_is_left_due(self, db, lifecycle, service, notifier, account):
        await lifecycle.create({}, schedule_conditions("2024-03-03"))

        result = await service.run(sync_success=True)

        assert result.posted == []
        assert await transaction_count(db) == 0
        assert notifier.drain() == []

    @pytest.mark.asyncio
    async def test_skipped_one_off_still_posts_once_missed(self, db, lifecycle, service, account, today):
        schedule_id = await lifecycle.create({"posts_transaction": True}, schedule_conditions("2024-03-05"))
        await lifecycle.skip_next_date(schedule_id)
        today.value = date(2024, 3, 6)

        result = await service.run(sync_success=True)

        assert result.posted == [schedule_id]
        assert await transaction_count(db) == 1

    @pytest.mark.asyncio
    async def test_failed_sync_reports_payees_and_posts_nothing(self, db, lifecycle, service, notifier, account, payees):
        await lifecycle.create(
            {"name": "Rent", "posts_transaction": True},
            schedule_conditions("2024-03-02", payee="payee-landlord"),
        )
        await lifecycle.create(
            {"name": "Gym", "posts_transaction": True},
            schedule_conditions("2024-03-04", payee="payee-gym"),
        )

        result = await service.run(sync_success=False)

        assert sorted(result.failed_to_post) == ["payee-gym", "payee-landlord"]
        assert await transaction_count(db) == 0

        sent = notifier.drain()
        assert [n.name for n in sent] == [SCHEDULES_OFFLINE]
        assert sorted(sent[0].payload["payees"]) == ["payee-gym", "payee-landlord"]

    @pytest.mark.asyncio
    async def test_range_amount_posts_configured_bound(self, db, lifecycle, notifier, today, clock, account):
        conditions = schedule_conditions("2024-03-01")
        conditions[2] = {"field": "amount", "op": "isbetween", "value": {"num1": -1000, "num2": -2000}}
        schedule_id = await lifecycle.create({}, conditions)

        service = AdvancementService(db, notifier, today=today, clock=clock, range_mode="low")
        transaction = await service.post_transaction(schedule_id)

        assert transaction.amount == -2000

    @pytest.mark.asyncio
    async def test_post_transaction_for_unknown_schedule(self, service):
        assert await service.post_transaction("missing") is None


# =============================================================================
# Scope and isolation
# =============================================================================

class TestRunScope:
    """Which schedules a run looks at, and failure isolation."""

    @pytest.mark.asyncio
    async def test_closed_account_schedules_are_skipped(self, db, lifecycle, service, account):
        await lifecycle.create({"posts_transaction": True}, schedule_conditions("2024-03-01"))
        (await db.get(Account, "acct-checking")).closed = True
        await db.commit()

        result = await service.run(sync_success=True)

        assert result.schedules_checked == 0
        assert await transaction_count(db) == 0

    @pytest.mark.asyncio
    async def test_completed_schedules_are_skipped(self, db, lifecycle, service, account):
        schedule_id = await lifecycle.create({"posts_transaction": True}, schedule_conditions("2024-03-01"))
        await lifecycle.complete(schedule_id)

        result = await service.run(sync_success=True)

        assert result.schedules_checked == 0

    @pytest.mark.asyncio
    async def test_one_failing_schedule_does_not_stop_the_run(self, db, lifecycle, service, account, caplog):
        broken_id = await lifecycle.create({"name": "Broken"}, schedule_conditions(weekly_config("2024-03-01")))
        healthy_id = await lifecycle.create({"name": "Healthy"}, schedule_conditions(weekly_config("2024-03-01")))
        await pay(db, broken_id, date(2024, 3, 1))
        await pay(db, healthy_id, date(2024, 3, 1))

        rule = await db.get(Rule, (await db.get(Schedule, broken_id)).rule)
        rule.conditions = [
            c if c["field"] != "date" else {**c, "value": {"frequency": "hourly", "start": "2024-03-01"}}
            for c in rule.conditions
        ]
        await db.commit()

        with caplog.at_level(logging.ERROR, logger="cadence.schedules.advancement"):
            result = await service.run(sync_success=True)

        assert result.advanced == [healthy_id]
        assert [e["schedule_id"] for e in result.errors] == [broken_id]
        assert broken_id in caplog.text


# =============================================================================
# Schedules without a next date
# =============================================================================

class TestMissingNextDate:
    """Open schedules whose next date was left empty get one back or complete."""

    @pytest.mark.asyncio
    async def test_ended_recurrence_is_reset_to_final_occurrence(self, db, lifecycle, service, account):
        config = weekly_config("2024-02-02", endMode="on_date", endDate="2024-02-20")
        schedule_id = await lifecycle.create({}, schedule_conditions(config))
        record = await next_date_record(db, schedule_id)
        record.local_next_date = None
        record.base_next_date = None
        await db.commit()

        result = await service.run(sync_success=True)

        record = await next_date_record(db, schedule_id)
        assert record.base_next_date == date(2024, 2, 16)
        assert record.local_next_date == date(2024, 2, 16)
        assert result.completed == []

    @pytest.mark.asyncio
    async def test_recurrence_without_occurrences_completes(self, db, lifecycle, service, account):
        config = weekly_config("2024-02-02", endMode="on_date", endDate="2024-01-01")
        schedule_id = await lifecycle.create({}, schedule_conditions(config))

        result = await service.run(sync_success=True)

        assert result.completed == [schedule_id]
        assert (await db.get(Schedule, schedule_id)).completed is True
