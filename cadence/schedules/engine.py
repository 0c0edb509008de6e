"""
Schedule Engine

Service object built once at startup. It owns the collaborators the schedule
operations need (session factory, notification channel, settings) and the
mutation gate that keeps schedule mutations strictly one at a time in this
process. Every request-level operation opens its own session and commits it
as a unit.
"""
import asyncio
import logging
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cadence.config import Settings, settings as default_settings
from cadence.data.base import now_ms
from cadence.data.models import Transaction
from cadence.data.preferences import PreferenceStore
from cadence.notifications.channel import NotificationChannel
from cadence.sync.events import SyncEvent
from .advancement import AdvancementResult, AdvancementService
from .discovery import ScheduleCandidate, find_schedules
from .errors import ScheduleNotFoundError
from .lifecycle import ScheduleLifecycle
from .recurrence import get_upcoming_dates
from .repository import ScheduleRepository, ScheduleView
from .status import ScheduleStatus, resolve_status

logger = logging.getLogger(__name__)

T = TypeVar("T")

PatternFinder = Callable[[AsyncSession, date, int], Awaitable[List[ScheduleCandidate]]]


class MutationGate:
    """Runs one mutation at a time."""

    def __init__(self):
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            return await operation()


class ScheduleEngine:
    """Entry point for every schedule operation."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        notifier: NotificationChannel,
        settings: Settings = default_settings,
        today: Callable[[], date] = date.today,
        clock: Callable[[], int] = now_ms,
        pattern_finder: PatternFinder = find_schedules,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.settings = settings
        self.today = today
        self.clock = clock
        self.pattern_finder = pattern_finder
        self.gate = MutationGate()

    def _lifecycle(self, db: AsyncSession) -> ScheduleLifecycle:
        return ScheduleLifecycle(db, today=self.today, clock=self.clock)

    def _advancement(self, db: AsyncSession) -> AdvancementService:
        return AdvancementService(
            db,
            self.notifier,
            today=self.today,
            clock=self.clock,
            range_mode=self.settings.SCHEDULE_RANGE_AMOUNT,
        )

    async def _mutate(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async def run() -> T:
            async with self.session_factory() as db:
                return await operation(db)
        return await self.gate.run(run)

    # ==========================================================================
    # Mutations
    # ==========================================================================

    async def create_schedule(
        self,
        schedule: Optional[Dict[str, Any]] = None,
        conditions: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        return await self._mutate(lambda db: self._lifecycle(db).create(schedule, conditions or []))

    async def update_schedule(
        self,
        schedule: Dict[str, Any],
        conditions: Optional[List[Dict[str, Any]]] = None,
        reset_next_date: bool = False,
    ) -> str:
        return await self._mutate(
            lambda db: self._lifecycle(db).update(schedule, conditions, reset_next_date)
        )

    async def delete_schedule(self, schedule_id: str) -> None:
        await self._mutate(lambda db: self._lifecycle(db).delete(schedule_id))

    async def skip_next_date(self, schedule_id: str) -> Optional[date]:
        return await self._mutate(lambda db: self._lifecycle(db).skip_next_date(schedule_id))

    async def post_transaction(self, schedule_id: str) -> Optional[Transaction]:
        return await self._mutate(lambda db: self._advancement(db).post_transaction(schedule_id))

    async def force_run(self, sync_success: bool = True) -> AdvancementResult:
        return await self._mutate(lambda db: self._advancement(db).run(sync_success))

    async def handle_sync_event(self, event: SyncEvent) -> Optional[AdvancementResult]:
        """
        Run advancement after a completed sync, at most once per day.

        The ``lastScheduleRun`` preference is saved even if the run fails so
        that a broken schedule cannot trigger a retry on every sync.
        """
        if not event.is_completion:
            return None

        async def run() -> Optional[AdvancementResult]:
            today = self.today()
            async with self.session_factory() as db:
                preferences = PreferenceStore(db)
                if await preferences.last_schedule_run() == today:
                    return None
                try:
                    return await self._advancement(db).run(event.succeeded)
                except Exception:
                    await db.rollback()
                    raise
                finally:
                    await preferences.set_last_schedule_run(today)
                    await db.commit()

        return await self.gate.run(run)

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def _with_status(self, db: AsyncSession, views: List[ScheduleView]) -> List[Tuple[ScheduleView, ScheduleStatus]]:
        repository = ScheduleRepository(db)
        has_transaction = await repository.has_transactions(views)
        upcoming_length = await PreferenceStore(db).upcoming_length()
        today = self.today()
        return [
            (view, resolve_status(view.next_date, view.completed, view.id in has_transaction, upcoming_length, today=today))
            for view in views
        ]

    async def list_schedules(self) -> List[Tuple[ScheduleView, ScheduleStatus]]:
        async with self.session_factory() as db:
            views = await ScheduleRepository(db).list_all()
            return await self._with_status(db, views)

    async def get_schedule(self, schedule_id: str) -> Tuple[ScheduleView, ScheduleStatus]:
        async with self.session_factory() as db:
            view = await ScheduleRepository(db).get(schedule_id)
            if view is None:
                raise ScheduleNotFoundError(schedule_id)
            return (await self._with_status(db, [view]))[0]

    async def discover_schedules(self) -> List[ScheduleCandidate]:
        async with self.session_factory() as db:
            return await self.pattern_finder(db, self.today(), self.settings.DISCOVERY_LOOKBACK_DAYS)

    async def get_upcoming_dates(self, config: Dict[str, Any], count: int) -> List[date]:
        async with self.session_factory() as db:
            preferences = PreferenceStore(db)
            weekend_days = await preferences.weekend_days()
            week_start = await preferences.first_day_of_week_idx()
        dates = get_upcoming_dates(config, count, weekend_days, today=self.today(), week_start=week_start)
        return list(dates)
