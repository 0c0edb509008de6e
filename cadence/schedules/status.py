"""Schedule status resolution."""
from calendar import monthrange
from datetime import date
from enum import Enum
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

DEFAULT_UPCOMING_DAYS = 7


class ScheduleStatus(str, Enum):
    """Derived status of a schedule. Never stored."""
    COMPLETED = "completed"  # Marked done, no further occurrences
    PAID = "paid"            # Current occurrence matched by a transaction
    DUE = "due"              # Within the upcoming window, unsatisfied
    UPCOMING = "upcoming"    # Further out, or no date to go by yet
    MISSED = "missed"        # Past due, unsatisfied


def upcoming_days(upcoming_length: Union[str, int, None] = "7", today: Optional[date] = None) -> int:
    """
    Length of the upcoming window in days.

    Accepts a plain day count (``"7"``), ``"<n>-day|week|month|year"``,
    ``"oneMonth"`` or ``"currentMonth"``. Anything else is 7 days.
    """
    today = today or date.today()
    if upcoming_length is None or upcoming_length == "":
        return DEFAULT_UPCOMING_DAYS
    if isinstance(upcoming_length, int):
        return upcoming_length

    value = str(upcoming_length).strip()
    if value == "currentMonth":
        return monthrange(today.year, today.month)[1] - today.day
    if value == "oneMonth":
        return ((today + relativedelta(months=1)) - today).days

    if "-" in value:
        num, _, unit = value.partition("-")
        try:
            n = max(1, int(num))
        except ValueError:
            return DEFAULT_UPCOMING_DAYS
        if unit == "day":
            return n
        if unit == "week":
            return n * 7
        if unit == "month":
            return ((today + relativedelta(months=n)) - today).days
        if unit == "year":
            return ((today + relativedelta(years=n)) - today).days
        return DEFAULT_UPCOMING_DAYS

    try:
        return int(value)
    except ValueError:
        return DEFAULT_UPCOMING_DAYS


def resolve_status(
    next_date: Optional[date],
    completed: bool,
    has_transaction: bool,
    upcoming_length: Union[str, int, None] = "7",
    today: Optional[date] = None,
) -> ScheduleStatus:
    """Classify a schedule from its next date and observations."""
    today = today or date.today()

    if completed:
        return ScheduleStatus.COMPLETED
    if has_transaction:
        return ScheduleStatus.PAID
    if next_date is None:
        return ScheduleStatus.UPCOMING
    if next_date < today:
        return ScheduleStatus.MISSED
    if (next_date - today).days <= upcoming_days(upcoming_length, today):
        return ScheduleStatus.DUE
    return ScheduleStatus.UPCOMING
