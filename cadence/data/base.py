"""Shared base utilities for data models."""
import time
from uuid import uuid4


def generate_id() -> str:
    """Generate a UUID-style row id."""
    return str(uuid4())


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)
