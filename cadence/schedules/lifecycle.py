"""
Schedule Lifecycle Manager

Creates, updates, deletes and skips schedules. Owns the invariant that every
schedule has exactly one linking rule and one next-date record:

    Schedule ──rule──▶ Rule (actions: [link-schedule → schedule.id])
        │
        └──────────▶ ScheduleNextDate (base / local pairs)

Each public operation validates first and then commits its writes in one
transaction, so readers never observe a schedule without its rule or next
date. A rule found missing or not linking back is rebuilt by ``repair_rule``.
"""
import logging
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from cadence.data.base import generate_id, now_ms
from cadence.data.models import Rule, Schedule
from cadence.data.preferences import PreferenceStore
from .conditions import (
    AmountCondition,
    Condition,
    DateCondition,
    extract_schedule_conditions,
    merge_conditions,
    parse_conditions,
)
from .errors import ScheduleNotFoundError, ScheduleValidationError
from .next_date import NextDateStore, effective_next_date
from .recurrence import last_date, next_date
from .repository import ScheduleRepository
from .rules import RuleStore, link_schedule_action, linked_schedule_id

logger = logging.getLogger(__name__)

# Schedule columns a caller may set directly
UPDATABLE_FIELDS = ("name", "active", "completed", "posts_transaction")


def _substantive(condition: Optional[Condition]) -> Dict[str, Any]:
    return condition.substantive() if condition is not None else {}


class ScheduleLifecycle:
    """Mutations of schedules and their linked rule / next-date record."""

    def __init__(
        self,
        db: AsyncSession,
        preferences: Optional[PreferenceStore] = None,
        today: Callable[[], date] = date.today,
        clock: Callable[[], int] = now_ms,
    ):
        self.db = db
        self.preferences = preferences or PreferenceStore(db)
        self.rules = RuleStore(db)
        self.next_dates = NextDateStore(db, clock)
        self.repository = ScheduleRepository(db)
        self.today = today

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def _recurrence_settings(self) -> Tuple[List[str], int]:
        return await self.preferences.weekend_days(), await self.preferences.first_day_of_week_idx()

    async def _get_schedule(self, schedule_id: str) -> Schedule:
        schedule = await self.repository.get_row(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        return schedule

    # ==========================================================================
    # Linking rule
    # ==========================================================================

    async def get_rule_for_schedule(self, schedule_id: str) -> Rule:
        """The schedule's linking rule, rebuilt first if it is broken."""
        schedule = await self._get_schedule(schedule_id)
        rule = await self.rules.get(schedule.rule)
        if rule is None or linked_schedule_id(rule) != schedule_id:
            rule = await self.repair_rule(schedule_id)
        return rule

    async def repair_rule(self, schedule_id: str) -> Rule:
        """
        Replace a schedule's missing or corrupted linking rule.

        The replacement matches transactions approximately dated today with an
        approximate amount of zero; the user is expected to edit it. The bad
        rule, if any, is taken out so it cannot match anything again.
        """
        schedule = await self._get_schedule(schedule_id)
        logger.warning(f"Repairing linking rule for schedule {schedule_id} (rule was {schedule.rule})")

        broken = await self.rules.get(schedule.rule)
        if broken is not None and linked_schedule_id(broken) in (None, schedule_id):
            await self.rules.delete(broken.id, allow_linked=True)

        rule = self.rules.insert(
            conditions=[
                DateCondition(field="date", op="isapprox", value=self.today().isoformat()),
                AmountCondition(field="amount", op="isapprox", value=0),
            ],
            actions=[link_schedule_action(schedule_id)],
        )
        schedule.rule = rule.id
        await self._commit()
        return rule

    # ==========================================================================
    # Next date
    # ==========================================================================

    async def set_next_date(
        self,
        schedule_id: str,
        start: Optional[Callable[[date], date]] = None,
        conditions: Optional[List[Condition]] = None,
        reset: bool = False,
        inclusive: bool = False,
    ) -> Optional[date]:
        """
        Recompute a schedule's next date and stage the write.

        ``start`` maps the current next date to the reference date (default:
        today). Without ``reset`` the new date is a provisional advance, and a
        condition with no further dates leaves the record untouched and
        returns None. A reset (or a lost record) with no further dates falls
        back to the final due date so the schedule still reads as missed.
        """
        if conditions is None:
            rule = await self.get_rule_for_schedule(schedule_id)
            conditions = parse_conditions(rule.conditions)

        date_cond = extract_schedule_conditions(conditions).date
        if date_cond is None:
            return None

        record = await self.next_dates.find(schedule_id)
        current = effective_next_date(record)
        reference = start(current) if start is not None and current is not None else self.today()

        weekend_days, week_start = await self._recurrence_settings()
        new_date = next_date(date_cond, reference, inclusive=inclusive, weekend_days=weekend_days, week_start=week_start)
        if new_date is None and (reset or record is None):
            new_date = last_date(date_cond, weekend_days=weekend_days, week_start=week_start)

        if record is None:
            logger.warning(f"Schedule {schedule_id} had no next-date record; creating one")
            await self.next_dates.recreate(schedule_id, new_date)
            return new_date

        if new_date is None:
            return None

        if reset:
            await self.next_dates.reset(schedule_id, new_date)
        else:
            await self.next_dates.advance(schedule_id, new_date)
        return new_date

    # ==========================================================================
    # Operations
    # ==========================================================================

    async def create(self, schedule: Optional[Dict[str, Any]] = None, conditions: Optional[List[Any]] = None) -> str:
        """Create a schedule with its linking rule and next-date record."""
        schedule = dict(schedule or {})
        conditions = parse_conditions(conditions)

        date_cond = extract_schedule_conditions(conditions).date
        if date_cond is None:
            raise ScheduleValidationError("A date condition is required to create a schedule")
        if date_cond.value is None:
            raise ScheduleValidationError("Date is required")

        schedule_id = schedule.get("id") or generate_id()

        weekend_days, week_start = await self._recurrence_settings()
        first_date = next_date(date_cond, self.today(), inclusive=True, weekend_days=weekend_days, week_start=week_start)
        if first_date is None:
            first_date = last_date(date_cond, weekend_days=weekend_days, week_start=week_start)

        name = schedule.get("name") or None
        if name and await self.repository.name_taken(name, schedule_id):
            raise ScheduleValidationError("Cannot create schedules with the same name")

        rule = self.rules.insert(conditions=conditions, actions=[link_schedule_action(schedule_id)])
        self.next_dates.create(schedule_id, first_date)
        self.db.add(Schedule(
            id=schedule_id,
            name=name,
            rule=rule.id,
            active=schedule.get("active", True),
            completed=schedule.get("completed", False),
            posts_transaction=schedule.get("posts_transaction", False),
        ))
        await self._commit()

        logger.info(f"Created schedule {schedule_id} (next date {first_date})")
        return schedule_id

    async def update(
        self,
        schedule: Dict[str, Any],
        conditions: Optional[List[Any]] = None,
        reset_next_date: bool = False,
    ) -> str:
        """
        Update a schedule's fields and/or the conditions of its rule.

        The next date is reset when asked to, when the account condition
        changed or when the date condition changed in substance.
        """
        schedule = dict(schedule)
        if schedule.get("rule"):
            raise ScheduleValidationError("You cannot change the rule of a schedule")

        schedule_id = schedule.get("id")
        if not schedule_id:
            raise ScheduleValidationError("Schedule id is required")
        row = await self._get_schedule(schedule_id)

        new_conditions = None
        if conditions is not None:
            new_conditions = parse_conditions(conditions)
            date_cond = extract_schedule_conditions(new_conditions).date
            if date_cond is not None and date_cond.value is None:
                raise ScheduleValidationError("Date is required")

        if "name" in schedule:
            schedule["name"] = schedule["name"] or None
            if schedule["name"] and await self.repository.name_taken(schedule["name"], schedule_id):
                raise ScheduleValidationError("Cannot create schedules with the same name")

        rule = None
        if new_conditions is not None:
            rule = await self.get_rule_for_schedule(schedule_id)

        try:
            if new_conditions is not None:
                old_conditions = parse_conditions(rule.conditions)
                merged = merge_conditions(old_conditions, new_conditions)
                await self.rules.update(rule.id, merged)

                old_roles = extract_schedule_conditions(old_conditions)
                new_roles = extract_schedule_conditions(merged)
                account_changed = _substantive(old_roles.account) != _substantive(new_roles.account)
                date_changed = _substantive(old_roles.date) != _substantive(new_roles.date)

                if reset_next_date or account_changed or date_changed:
                    await self.set_next_date(schedule_id, conditions=merged, reset=True, inclusive=True)
            elif reset_next_date:
                await self.set_next_date(schedule_id, reset=True, inclusive=True)

            for key in UPDATABLE_FIELDS:
                if key in schedule:
                    setattr(row, key, schedule[key])
        except Exception:
            await self.db.rollback()
            raise

        await self._commit()
        return schedule_id

    async def delete(self, schedule_id: str) -> None:
        """Delete a schedule together with its rule and next-date record."""
        row = await self._get_schedule(schedule_id)
        if row.rule:
            await self.rules.delete(row.rule, allow_linked=True)
        await self.next_dates.delete(schedule_id)
        row.tombstone = True
        await self._commit()
        logger.info(f"Deleted schedule {schedule_id}")

    async def skip_next_date(self, schedule_id: str) -> Optional[date]:
        """
        Move past the current occurrence without marking it paid.

        A one-off or an exhausted recurrence has nothing to move to and keeps
        its current date. Returns the next date after the skip.
        """
        await self._get_schedule(schedule_id)
        new_date = await self.set_next_date(
            schedule_id,
            start=lambda current: current + timedelta(days=1),
            inclusive=True,
        )
        await self._commit()
        if new_date is None:
            return effective_next_date(await self.next_dates.find(schedule_id))
        return new_date

    async def complete(self, schedule_id: str) -> str:
        return await self.update({"id": schedule_id, "completed": True})
