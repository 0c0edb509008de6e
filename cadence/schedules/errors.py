"""Schedule engine exceptions."""
from typing import Any, Optional


class ScheduleError(Exception):
    """Base class for schedule engine errors."""


class ScheduleValidationError(ScheduleError):
    """A requested operation was rejected before anything was written."""


class ScheduleNotFoundError(ScheduleError):
    """No live schedule exists with the given id."""

    def __init__(self, schedule_id: str):
        super().__init__(f"Schedule not found: {schedule_id}")
        self.schedule_id = schedule_id


class RecurrenceError(ScheduleError):
    """A recurrence config could not be expanded into dates."""

    def __init__(self, message: str, config: Optional[Any] = None):
        super().__init__(message)
        self.config = config
