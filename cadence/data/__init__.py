"""Data module - tables and stores the schedule engine reads and writes."""
from cadence.data import models, preferences

__all__ = ["models", "preferences"]
