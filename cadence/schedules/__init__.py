# Schedules Module
# Computes when recurring obligations are next due and keeps them moving
#
# Components:
# - recurrence.py: next-date and upcoming-date expansion (dateutil.rrule)
# - status.py: derived schedule status
# - next_date.py: dual-timestamp next-date store
# - lifecycle.py: create / update / delete / skip, rule repair
# - advancement.py: post-sync advancement and auto-posting
# - engine.py: service object and mutation gate

from .errors import (
    ScheduleError,
    ScheduleValidationError,
    ScheduleNotFoundError,
    RecurrenceError,
)
from .status import ScheduleStatus, resolve_status
from .recurrence import get_upcoming_dates, WeekendSolveMode
from .next_date import NextDateStore
from .lifecycle import ScheduleLifecycle
from .advancement import AdvancementService, AdvancementResult
from .engine import ScheduleEngine, MutationGate

__all__ = [
    "ScheduleError",
    "ScheduleValidationError",
    "ScheduleNotFoundError",
    "RecurrenceError",
    "ScheduleStatus",
    "resolve_status",
    "get_upcoming_dates",
    "WeekendSolveMode",
    "NextDateStore",
    "ScheduleLifecycle",
    "AdvancementService",
    "AdvancementResult",
    "ScheduleEngine",
    "MutationGate",
]
