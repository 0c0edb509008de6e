"""Shared test fixtures and configuration for Cadence tests."""
import os

# Settings are read at import time; point them at an in-memory database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from datetime import date
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cadence.database import Base
from cadence.data.models import Account, Payee
from cadence.notifications.channel import NotificationChannel


TODAY = date(2024, 3, 1)


class Clock:
    """Deterministic epoch-ms clock that ticks on every read."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.value = start

    def __call__(self) -> int:
        self.value += 1000
        return self.value


@pytest.fixture
async def db_engine():
    """A fresh in-memory database with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def today():
    """Mutable 'today' provider; set ``today.value`` to move time."""

    class Today:
        value = TODAY

        def __call__(self) -> date:
            return self.value

    return Today()


@pytest.fixture
def notifier() -> NotificationChannel:
    return NotificationChannel()


@pytest.fixture
async def account(db) -> Account:
    acct = Account(id="acct-checking", name="Checking")
    db.add(acct)
    await db.commit()
    return acct


@pytest.fixture
async def payees(db):
    rows = [Payee(id="payee-landlord", name="Landlord"), Payee(id="payee-gym", name="Gym")]
    db.add_all(rows)
    await db.commit()
    return rows


def weekly_config(start: str = "2024-03-01", **overrides):
    config = {
        "frequency": "weekly",
        "interval": 1,
        "start": start,
        "patterns": [],
        "skipWeekend": False,
        "weekendSolveMode": "after",
        "endMode": "never",
    }
    config.update(overrides)
    return config


def schedule_conditions(date_value, account="acct-checking", payee="payee-landlord", amount=-120000, date_op="is"):
    return [
        {"field": "payee", "op": "is", "value": payee},
        {"field": "account", "op": "is", "value": account},
        {"field": "amount", "op": "is", "value": amount},
        {"field": "date", "op": date_op, "value": date_value},
    ]
