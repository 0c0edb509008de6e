"""
Advancement Service

Runs after a sync cycle completes. Every open schedule is re-evaluated:

- paid + recurring        -> advance the next date (provisional, non-reset)
- paid + one-off, past    -> mark the schedule completed
- due/missed + auto-post  -> post a transaction (or, while offline, remember
                             the payee so the user can be told)

Nothing here is persisted as state: schedules that could not be posted stay
due/missed and are picked up again by the next successful cycle.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cadence.config import settings
from cadence.data.base import generate_id, now_ms
from cadence.data.models import Transaction
from cadence.data.preferences import PreferenceStore
from cadence.notifications.channel import NotificationChannel
from .conditions import scheduled_amount
from .lifecycle import ScheduleLifecycle
from .status import ScheduleStatus, resolve_status

logger = logging.getLogger(__name__)

SCHEDULES_OFFLINE = "schedules-offline"
SYNC_EVENT = "sync-event"


@dataclass
class AdvancementResult:
    """Summary of one advancement cycle."""

    run_on: date
    sync_success: bool
    schedules_checked: int = 0
    advanced: List[str] = field(default_factory=list)
    completed: List[str] = field(default_factory=list)
    posted: List[str] = field(default_factory=list)
    failed_to_post: List[Optional[str]] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_on": self.run_on.isoformat(),
            "sync_success": self.sync_success,
            "schedules_checked": self.schedules_checked,
            "advanced": self.advanced,
            "completed": self.completed,
            "posted": self.posted,
            "failed_to_post": self.failed_to_post,
            "errors": self.errors,
        }


class AdvancementService:
    """Moves paid schedules forward and auto-posts due ones."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: NotificationChannel,
        preferences: Optional[PreferenceStore] = None,
        today: Callable[[], date] = date.today,
        clock: Callable[[], int] = now_ms,
        range_mode: str = settings.SCHEDULE_RANGE_AMOUNT,
    ):
        self.db = db
        self.notifier = notifier
        self.preferences = preferences or PreferenceStore(db)
        self.lifecycle = ScheduleLifecycle(db, self.preferences, today=today, clock=clock)
        self.repository = self.lifecycle.repository
        self.today = today
        self.range_mode = range_mode

    async def post_transaction(self, schedule_id: str) -> Optional[Transaction]:
        """
        Create today's transaction for a schedule.

        Returns None when the schedule does not exist or has no account to
        post to.
        """
        view = await self.repository.get(schedule_id)
        if view is None or view.account is None:
            return None

        transaction = Transaction(
            id=generate_id(),
            account=view.account,
            payee=view.payee,
            amount=scheduled_amount(view.amount, self.range_mode),
            date=self.today(),
            schedule=view.id,
            cleared=False,
        )
        self.db.add(transaction)
        await self.db.commit()

        logger.info(f"Posted transaction {transaction.id} for schedule {schedule_id}")
        return transaction

    async def run(self, sync_success: bool) -> AdvancementResult:
        today = self.today()
        result = AdvancementResult(run_on=today, sync_success=sync_success)

        schedules = await self.repository.list_open()
        has_transaction = await self.repository.has_transactions(schedules)
        upcoming_length = await self.preferences.upcoming_length()
        result.schedules_checked = len(schedules)

        for schedule in schedules:
            status = resolve_status(
                schedule.next_date,
                schedule.completed,
                schedule.id in has_transaction,
                upcoming_length,
                today=today,
            )

            try:
                if schedule.next_date is None and schedule.date_condition is not None:
                    await self._restore_next_date(schedule.id, result)

                elif status == ScheduleStatus.PAID:
                    if schedule.date_condition is None:
                        continue
                    if schedule.is_recurring:
                        await self._advance(schedule.id, result)
                    elif (schedule.date_condition.literal_date or today) < today:
                        await self.lifecycle.complete(schedule.id)
                        result.completed.append(schedule.id)

                elif (
                    status in (ScheduleStatus.DUE, ScheduleStatus.MISSED)
                    and schedule.posts_transaction
                    and schedule.account
                ):
                    if sync_success:
                        await self.post_transaction(schedule.id)
                        result.posted.append(schedule.id)
                    else:
                        result.failed_to_post.append(schedule.payee)
            except Exception as e:
                logger.error(f"Advancing schedule {schedule.id} failed: {e}")
                await self.db.rollback()
                result.errors.append({"schedule_id": schedule.id, "error": str(e)})

        if result.failed_to_post:
            logger.warning(f"{len(result.failed_to_post)} scheduled transactions not posted while offline")
            await self.notifier.send(SCHEDULES_OFFLINE, {"payees": result.failed_to_post})

        if result.posted:
            # Treated like an incoming sync so transaction views refresh
            await self.notifier.send(SYNC_EVENT, {
                "type": "success",
                "tables": ["transactions"],
                "syncDisabled": False,
            })

        logger.info(
            f"Advancement run on {today}: {result.schedules_checked} checked, "
            f"{len(result.advanced)} advanced, {len(result.completed)} completed, "
            f"{len(result.posted)} posted, {len(result.failed_to_post)} pending offline"
        )
        return result

    async def _advance(self, schedule_id: str, result: AdvancementResult) -> None:
        new_date = await self.lifecycle.set_next_date(schedule_id)
        if new_date is None:
            # Recurrence has no further occurrences
            await self.lifecycle.complete(schedule_id)
            result.completed.append(schedule_id)
            return
        await self.db.commit()
        result.advanced.append(schedule_id)

    async def _restore_next_date(self, schedule_id: str, result: AdvancementResult) -> None:
        new_date = await self.lifecycle.set_next_date(schedule_id, reset=True, inclusive=True)
        if new_date is None:
            # Recurrence never produces a date
            await self.lifecycle.complete(schedule_id)
            result.completed.append(schedule_id)
            return
        await self.db.commit()
        logger.warning(f"Schedule {schedule_id} had no next date; reset to {new_date}")
