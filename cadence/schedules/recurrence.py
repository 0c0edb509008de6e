"""
Recurrence Evaluator

Expands a schedule's date condition into concrete due dates using
``dateutil.rrule``, applying the weekend-skip policy configured on the
recurrence.

Weekend days are day-number strings where ``"0"`` is Sunday and ``"6"`` is
Saturday, matching the ``weekendDays`` preference.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence

from dateutil.rrule import rrule, rruleset, DAILY, WEEKLY, MONTHLY, YEARLY, MO, TU, WE, TH, FR, SA, SU

from .conditions import DateCondition
from .errors import RecurrenceError

logger = logging.getLogger(__name__)


FREQUENCIES = {
    "daily": DAILY,
    "weekly": WEEKLY,
    "monthly": MONTHLY,
    "yearly": YEARLY,
}

WEEKDAYS = {
    "SU": SU,
    "MO": MO,
    "TU": TU,
    "WE": WE,
    "TH": TH,
    "FR": FR,
    "SA": SA,
}

END_MODES = ("never", "after_n_occurrences", "on_date")

DEFAULT_WEEKEND_DAYS = ["0", "6"]


class WeekendSolveMode(str, Enum):
    """Where an occurrence landing on a weekend day is moved to."""
    BEFORE = "before"     # Previous non-weekend day
    AFTER = "after"       # Next non-weekend day
    NEAREST = "nearest"   # Closer of the two, ties go before


@dataclass
class RecurConfig:
    """Parsed recurrence config of a date condition."""

    frequency: str
    start: date
    interval: int = 1
    patterns: List[Dict[str, Any]] = field(default_factory=list)
    skip_weekend: bool = False
    weekend_solve_mode: WeekendSolveMode = WeekendSolveMode.AFTER
    end_mode: str = "never"
    end_occurrences: Optional[int] = None
    end_date: Optional[date] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecurConfig":
        """Parse the stored camelCase form. Raises RecurrenceError on bad input."""
        if not isinstance(data, dict):
            raise RecurrenceError("Recurrence config must be an object", config=data)

        frequency = data.get("frequency")
        if frequency not in FREQUENCIES:
            raise RecurrenceError(f"Unknown recurrence frequency: {frequency!r}", config=data)

        try:
            start = _to_date(data.get("start"))
            interval = int(data.get("interval") or 1)
            end_mode = data.get("endMode") or "never"
            end_occurrences = data.get("endOccurrences")
            end_date = data.get("endDate")
            solve_mode = WeekendSolveMode(data.get("weekendSolveMode") or WeekendSolveMode.AFTER.value)

            config = cls(
                frequency=frequency,
                start=start,
                interval=interval,
                patterns=list(data.get("patterns") or []),
                skip_weekend=bool(data.get("skipWeekend")),
                weekend_solve_mode=solve_mode,
                end_mode=end_mode,
                end_occurrences=int(end_occurrences) if end_occurrences is not None else None,
                end_date=_to_date(end_date) if end_date else None,
            )
        except (TypeError, ValueError) as err:
            raise RecurrenceError(f"Invalid recurrence config: {err}", config=data) from err

        if config.interval < 1:
            raise RecurrenceError("Recurrence interval must be at least 1", config=data)
        if config.end_mode not in END_MODES:
            raise RecurrenceError(f"Unknown end mode: {config.end_mode!r}", config=data)
        if config.end_mode == "after_n_occurrences" and not config.end_occurrences:
            raise RecurrenceError("endOccurrences is required when ending after n occurrences", config=data)
        if config.end_mode == "on_date" and config.end_date is None:
            raise RecurrenceError("endDate is required when ending on a date", config=data)

        return config


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise ValueError("start date is required")
    return date.fromisoformat(str(value)[:10])


def build_rule_set(config: RecurConfig, week_start: int = 0, raw: Optional[Dict[str, Any]] = None) -> rruleset:
    """
    Build the rrule set for a recurrence config.

    ``week_start`` follows the ``firstDayOfWeekIdx`` preference (0 = Sunday).
    Monthly configs with patterns expand into one rule for day-of-month
    patterns and one for n-th weekday patterns.
    """
    base: Dict[str, Any] = {
        "dtstart": datetime.combine(config.start, time.min),
        "interval": config.interval,
        "wkst": (week_start + 6) % 7,
    }
    if config.end_mode == "after_n_occurrences":
        base["count"] = config.end_occurrences
    elif config.end_mode == "on_date":
        base["until"] = datetime.combine(config.end_date, time.min)

    freq = FREQUENCIES[config.frequency]
    rules = []

    try:
        if config.frequency == "monthly" and config.patterns:
            days = []
            weekdays = []
            for pattern in config.patterns:
                kind = pattern.get("type")
                value = pattern.get("value")
                if kind == "day":
                    day = int(value)
                    if day == 0 or not -31 <= day <= 31:
                        raise ValueError(f"day of month out of range: {value}")
                    days.append(day)
                elif kind in WEEKDAYS:
                    nth = int(value) if value else 0
                    if not -5 <= nth <= 5:
                        raise ValueError(f"weekday position out of range: {value}")
                    weekdays.append(WEEKDAYS[kind](nth) if nth else WEEKDAYS[kind])
                else:
                    raise ValueError(f"unknown pattern type: {kind!r}")
            if days:
                rules.append(rrule(freq, bymonthday=days, **base))
            if weekdays:
                rules.append(rrule(freq, byweekday=weekdays, **base))
        else:
            rules.append(rrule(freq, **base))
    except (TypeError, ValueError) as err:
        raise RecurrenceError(f"Invalid recurrence pattern: {err}", config=raw) from err

    rule_set = rruleset()
    for r in rules:
        rule_set.rrule(r)
    return rule_set


def is_weekend(day: date, weekend_days: Sequence[str]) -> bool:
    return str((day.weekday() + 1) % 7) in weekend_days


def adjust_for_weekend(day: date, mode: WeekendSolveMode, weekend_days: Sequence[str]) -> date:
    """Move ``day`` off the weekend according to ``mode``."""
    # Every day is a weekend day: nothing to move to
    if len({d for d in weekend_days if d in "0123456"}) >= 7:
        return day
    if not is_weekend(day, weekend_days):
        return day

    before = day
    while is_weekend(before, weekend_days):
        before -= timedelta(days=1)
    after = day
    while is_weekend(after, weekend_days):
        after += timedelta(days=1)

    if mode == WeekendSolveMode.BEFORE:
        return before
    if mode == WeekendSolveMode.AFTER:
        return after
    return before if (day - before) <= (after - day) else after


def _occurrences(rule_set: rruleset, start: date) -> Iterator[date]:
    """Occurrence dates on or after ``start``."""
    for occurrence in rule_set.xafter(datetime.combine(start, time.min), inc=True):
        yield occurrence.date()


def next_date(
    condition: DateCondition,
    reference: Optional[date] = None,
    inclusive: bool = False,
    weekend_days: Sequence[str] = DEFAULT_WEEKEND_DAYS,
    week_start: int = 0,
) -> Optional[date]:
    """
    Next due date of a date condition.

    A one-off date is returned while it is on or after ``reference`` and
    yields None once it has passed. A recurrence yields its first occurrence
    (after weekend adjustment) strictly after ``reference``, or on or after
    it with ``inclusive=True``; None once a bounded recurrence is exhausted.
    """
    reference = reference or date.today()

    if not condition.is_recurring:
        literal = condition.literal_date
        if literal is None or literal < reference:
            return None
        return literal

    config = RecurConfig.from_dict(condition.value)
    rule_set = build_rule_set(config, week_start, raw=condition.value)

    for occurrence in _occurrences(rule_set, reference):
        candidate = occurrence
        if config.skip_weekend:
            candidate = adjust_for_weekend(occurrence, config.weekend_solve_mode, weekend_days)
        if candidate > reference or (inclusive and candidate == reference):
            return candidate
    return None


def last_date(
    condition: DateCondition,
    weekend_days: Sequence[str] = DEFAULT_WEEKEND_DAYS,
    week_start: int = 0,
) -> Optional[date]:
    """
    Final due date of a condition.

    The literal date of a one-off, the last (weekend-adjusted) occurrence of
    a bounded recurrence, and None for a recurrence that never ends.
    """
    if not condition.is_recurring:
        return condition.literal_date

    config = RecurConfig.from_dict(condition.value)
    if config.end_mode == "never":
        return None

    occurrences = list(build_rule_set(config, week_start, raw=condition.value))
    if not occurrences:
        return None
    last = occurrences[-1].date()
    if config.skip_weekend:
        last = adjust_for_weekend(last, config.weekend_solve_mode, weekend_days)
    return last


class UpcomingDates:
    """
    Lazy sequence of the next ``count`` due dates from ``start``.

    Iterating again starts over. Weekend-adjusted dates that would not
    strictly increase (two occurrences folding onto the same weekday) are
    dropped.
    """

    def __init__(self, rule_set: rruleset, config: RecurConfig, count: int, start: date, weekend_days: Sequence[str]):
        self._rule_set = rule_set
        self.config = config
        self.count = count
        self.start = start
        self.weekend_days = list(weekend_days)

    def __iter__(self) -> Iterator[date]:
        if self.count <= 0:
            return
        produced = 0
        last: Optional[date] = None
        for occurrence in _occurrences(self._rule_set, self.start):
            day = occurrence
            if self.config.skip_weekend:
                day = adjust_for_weekend(occurrence, self.config.weekend_solve_mode, self.weekend_days)
            if last is not None and day <= last:
                continue
            yield day
            last = day
            produced += 1
            if produced >= self.count:
                return


def get_upcoming_dates(
    config: Dict[str, Any],
    count: int,
    weekend_days: Sequence[str] = DEFAULT_WEEKEND_DAYS,
    today: Optional[date] = None,
    week_start: int = 0,
) -> UpcomingDates:
    """Upcoming due dates of a recurrence config, starting today."""
    try:
        parsed = RecurConfig.from_dict(config)
        rule_set = build_rule_set(parsed, week_start, raw=config)
    except RecurrenceError as err:
        logger.error(f"Failed to expand recurrence config {config!r}: {err}")
        raise

    return UpcomingDates(rule_set, parsed, count, today or date.today(), weekend_days)
