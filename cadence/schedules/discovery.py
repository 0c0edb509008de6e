"""
Candidate schedule discovery.

Looks through recent transactions that are not tagged with a schedule for
payments that repeat with a regular cadence, and proposes schedules for them.
A candidate needs at least three occurrences of the same payee, account and
amount spaced weekly (within a day) or monthly (within three days).
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cadence.data.models import Transaction
from .repository import ScheduleRepository

logger = logging.getLogger(__name__)

MIN_OCCURRENCES = 3
WEEKLY_TOLERANCE_DAYS = 1
MONTHLY_TOLERANCE_DAYS = 3


@dataclass
class ScheduleCandidate:
    """A recurring payment spotted in transaction history."""

    payee: str
    account: str
    amount: int
    frequency: str
    start: date
    occurrences: int

    def conditions(self) -> List[Dict[str, Any]]:
        """Conditions ready to pass to schedule creation."""
        return [
            {"field": "payee", "op": "is", "value": self.payee},
            {"field": "account", "op": "is", "value": self.account},
            {"field": "amount", "op": "isapprox", "value": self.amount},
            {
                "field": "date",
                "op": "isapprox",
                "value": {
                    "frequency": self.frequency,
                    "interval": 1,
                    "start": self.start.isoformat(),
                    "patterns": [],
                    "skipWeekend": False,
                    "weekendSolveMode": "after",
                    "endMode": "never",
                },
            },
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payee": self.payee,
            "account": self.account,
            "amount": self.amount,
            "frequency": self.frequency,
            "start": self.start.isoformat(),
            "occurrences": self.occurrences,
            "conditions": self.conditions(),
        }


def _is_weekly(dates: List[date]) -> bool:
    return all(
        abs((later - earlier).days - 7) <= WEEKLY_TOLERANCE_DAYS
        for earlier, later in zip(dates, dates[1:])
    )


def _is_monthly(dates: List[date]) -> bool:
    first = dates[0]
    return all(
        abs((d - (first + relativedelta(months=i))).days) <= MONTHLY_TOLERANCE_DAYS
        for i, d in enumerate(dates)
    )


def detect_frequency(dates: List[date]) -> Optional[str]:
    """'weekly', 'monthly' or None for a sorted list of dates."""
    if len(dates) < MIN_OCCURRENCES:
        return None
    if _is_weekly(dates):
        return "weekly"
    if _is_monthly(dates):
        return "monthly"
    return None


async def find_schedules(db: AsyncSession, today: date, lookback_days: int = 365) -> List[ScheduleCandidate]:
    """Propose schedules for untracked recurring payments."""
    result = await db.execute(
        select(Transaction.payee, Transaction.account, Transaction.amount, Transaction.date)
        .where(Transaction.tombstone == False)
        .where(Transaction.schedule.is_(None))
        .where(Transaction.payee.is_not(None))
        .where(Transaction.date >= today - timedelta(days=lookback_days))
        .order_by(Transaction.date)
    )

    groups: Dict[Tuple[str, str, int], List[date]] = defaultdict(list)
    for row in result:
        groups[(row.payee, row.account, row.amount)].append(row.date)

    # Payee/account pairs that already have a schedule
    tracked = {
        (view.payee, view.account)
        for view in await ScheduleRepository(db).list_all()
        if view.payee and view.account
    }

    candidates = []
    for (payee, account, amount), dates in groups.items():
        if (payee, account) in tracked:
            continue
        dates = sorted(set(dates))
        frequency = detect_frequency(dates)
        if frequency is None:
            continue
        candidates.append(ScheduleCandidate(
            payee=payee,
            account=account,
            amount=amount,
            frequency=frequency,
            start=dates[0],
            occurrences=len(dates),
        ))

    logger.info(f"Schedule discovery found {len(candidates)} candidates in {len(groups)} payment groups")
    return candidates
