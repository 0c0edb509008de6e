"""Read model for schedules joined with their rule, next date and account."""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from cadence.data.models import Account, Rule, Schedule, ScheduleNextDate, Transaction
from .conditions import (
    AmountCondition,
    Condition,
    DateCondition,
    extract_schedule_conditions,
    parse_conditions,
)
from .next_date import effective_next_date

# Approximate date conditions accept a transaction this many days early
APPROX_DATE_DAYS = 2


@dataclass
class ScheduleView:
    """A schedule with the attributes derived from its rule and next date."""

    id: str
    name: Optional[str]
    rule: Optional[str]
    active: bool
    completed: bool
    posts_transaction: bool
    next_date: Optional[date]
    conditions: List[Condition] = field(default_factory=list)
    date_condition: Optional[DateCondition] = None
    payee: Optional[str] = None
    account: Optional[str] = None
    amount: Optional[AmountCondition] = None
    account_closed: bool = False

    @property
    def is_recurring(self) -> bool:
        return self.date_condition is not None and self.date_condition.frequency is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "rule": self.rule,
            "active": self.active,
            "completed": self.completed,
            "posts_transaction": self.posts_transaction,
            "next_date": self.next_date.isoformat() if self.next_date else None,
            "payee": self.payee,
            "account": self.account,
            "amount": self.amount.value if self.amount else None,
            "conditions": [c.to_dict() for c in self.conditions],
        }


class ScheduleRepository:
    """Queries over schedules and the transactions tagged with them."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _select(self):
        return (
            select(Schedule, ScheduleNextDate, Rule)
            .outerjoin(
                ScheduleNextDate,
                and_(ScheduleNextDate.schedule_id == Schedule.id, ScheduleNextDate.tombstone == False),
            )
            .outerjoin(Rule, and_(Rule.id == Schedule.rule, Rule.tombstone == False))
            .where(Schedule.tombstone == False)
        )

    async def _build(self, rows) -> List[ScheduleView]:
        views = []
        for schedule, next_date_row, rule in rows:
            conditions = parse_conditions(rule.conditions) if rule is not None else []
            roles = extract_schedule_conditions(conditions)
            views.append(ScheduleView(
                id=schedule.id,
                name=schedule.name,
                rule=schedule.rule,
                active=schedule.active,
                completed=schedule.completed,
                posts_transaction=schedule.posts_transaction,
                next_date=effective_next_date(next_date_row),
                conditions=conditions,
                date_condition=roles.date,
                payee=roles.payee.value if roles.payee else None,
                account=roles.account.value if roles.account else None,
                amount=roles.amount,
            ))

        account_ids = {v.account for v in views if v.account}
        if account_ids:
            result = await self.db.execute(
                select(Account.id, Account.closed).where(Account.id.in_(account_ids))
            )
            closed = {row.id: row.closed for row in result}
            for view in views:
                view.account_closed = bool(closed.get(view.account, False))

        return views

    async def get(self, schedule_id: str) -> Optional[ScheduleView]:
        result = await self.db.execute(self._select().where(Schedule.id == schedule_id))
        views = await self._build(result.all())
        return views[0] if views else None

    async def list_all(self) -> List[ScheduleView]:
        result = await self.db.execute(self._select().order_by(Schedule.created_at, Schedule.id))
        return await self._build(result.all())

    async def list_open(self) -> List[ScheduleView]:
        """Schedules the advancement cycle looks at: not completed, account not closed."""
        result = await self.db.execute(
            self._select()
            .where(Schedule.completed == False)
            .order_by(Schedule.created_at, Schedule.id)
        )
        return [v for v in await self._build(result.all()) if not v.account_closed]

    async def get_row(self, schedule_id: str) -> Optional[Schedule]:
        schedule = await self.db.get(Schedule, schedule_id)
        if schedule is None or schedule.tombstone:
            return None
        return schedule

    async def name_taken(self, name: str, exclude_id: Optional[str] = None) -> bool:
        """Whether another live schedule already uses ``name``."""
        query = select(Schedule.id).where(Schedule.tombstone == False).where(Schedule.name == name)
        if exclude_id:
            query = query.where(Schedule.id != exclude_id)
        result = await self.db.execute(query)
        return result.scalars().first() is not None

    async def has_transactions(self, views: Iterable[ScheduleView]) -> Set[str]:
        """
        Ids of schedules whose current occurrence has a matching transaction.

        A transaction matches when it is tagged with the schedule and dated on
        or after the next date (two days earlier for approximate dates).
        """
        filters = []
        for view in views:
            if view.next_date is None:
                continue
            since = view.next_date
            if view.date_condition is not None and view.date_condition.op == "isapprox":
                since = view.next_date - timedelta(days=APPROX_DATE_DAYS)
            filters.append(and_(Transaction.schedule == view.id, Transaction.date >= since))

        if not filters:
            return set()

        result = await self.db.execute(
            select(Transaction.schedule)
            .where(Transaction.tombstone == False)
            .where(or_(*filters))
            .distinct()
        )
        return set(result.scalars().all())
