"""Database models for the schedule engine and the tables it reads."""
from sqlalchemy import Column, String, DateTime, Date, Boolean, Integer, BigInteger, ForeignKey, Index, Text, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from cadence.database import Base
from cadence.data.base import generate_id

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Rule(Base):
    """
    Condition/action rule.

    A schedule is linked to exactly one rule whose actions contain a
    ``link-schedule`` action pointing back at the schedule. The rule's
    conditions carry the schedule's date, payee, account and amount.
    """

    __tablename__ = "rules"

    id = Column(String, primary_key=True, default=generate_id)
    stage = Column(String, nullable=True)
    conditions_op = Column(String, nullable=False, default="and")
    conditions = Column(JSONType, nullable=False, default=list)
    actions = Column(JSONType, nullable=False, default=list)
    tombstone = Column(Boolean, nullable=False, default=False)


class Schedule(Base):
    """A recurring or one-off financial obligation."""

    __tablename__ = "schedules"

    id = Column(String, primary_key=True, default=generate_id)
    name = Column(String, nullable=True)
    rule = Column(String, ForeignKey("rules.id"), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    completed = Column(Boolean, nullable=False, default=False)
    posts_transaction = Column(Boolean, nullable=False, default=False)
    tombstone = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_schedules_name", "name"),
        Index("ix_schedules_rule", "rule"),
    )


class ScheduleNextDate(Base):
    """
    Dual-timestamped next date of a schedule.

    ``base_*`` is the last next date not influenced by a provisional advance;
    ``local_*`` is the most recent candidate. The local pair is only trusted
    while its timestamp equals the base timestamp it was derived from, so a
    base written later by another device takes precedence.
    """

    __tablename__ = "schedules_next_date"

    id = Column(String, primary_key=True, default=generate_id)
    schedule_id = Column(String, ForeignKey("schedules.id"), nullable=False, unique=True)

    local_next_date = Column(Date, nullable=True)
    local_next_date_ts = Column(BigInteger, nullable=True)  # epoch ms

    base_next_date = Column(Date, nullable=True)
    base_next_date_ts = Column(BigInteger, nullable=True)  # epoch ms

    tombstone = Column(Boolean, nullable=False, default=False)


class Account(Base):
    """Account that transactions are posted to."""

    __tablename__ = "accounts"

    id = Column(String, primary_key=True, default=generate_id)
    name = Column(String, nullable=False)
    closed = Column(Boolean, nullable=False, default=False)
    tombstone = Column(Boolean, nullable=False, default=False)


class Payee(Base):
    """Counterparty of a transaction."""

    __tablename__ = "payees"

    id = Column(String, primary_key=True, default=generate_id)
    name = Column(String, nullable=False)
    tombstone = Column(Boolean, nullable=False, default=False)


class Transaction(Base):
    """Ledger transaction. ``amount`` is in integer minor units (cents)."""

    __tablename__ = "transactions"

    id = Column(String, primary_key=True, default=generate_id)
    account = Column(String, ForeignKey("accounts.id"), nullable=False)
    payee = Column(String, ForeignKey("payees.id"), nullable=True)
    amount = Column(Integer, nullable=False, default=0)
    date = Column(Date, nullable=False)
    schedule = Column(String, ForeignKey("schedules.id"), nullable=True)
    cleared = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    tombstone = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_transactions_schedule", "schedule"),
        Index("ix_transactions_date", "date"),
    )


class Preference(Base):
    """String-keyed synced preference (``id`` is the key)."""

    __tablename__ = "preferences"

    id = Column(String, primary_key=True)
    value = Column(Text, nullable=True)
