"""
Schedule Conditions

Rules store their conditions as a JSON list of ``{"field", "op", "value"}``
objects (plus optional tags such as ``type``). The engine works on typed
variants instead, one per semantic role:

- DateCondition: ``date`` with ``is`` / ``isapprox``; value is an ISO date
  (one-off) or a recurrence config object
- PayeeCondition: ``payee`` (or ``description``) with ``is``
- AccountCondition: ``account`` (or ``acct``) with ``is``
- AmountCondition: ``amount`` with ``is`` / ``isapprox`` / ``isbetween``
- OtherCondition: anything else; carried through untouched
"""
import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional


class ConditionRole(str, Enum):
    """Semantic role a condition plays for a schedule."""
    PAYEE = "payee"
    ACCOUNT = "account"
    AMOUNT = "amount"
    DATE = "date"
    OTHER = "other"


# Order in which roles are matched up when merging
SCHEDULE_ROLES = (ConditionRole.PAYEE, ConditionRole.ACCOUNT, ConditionRole.AMOUNT, ConditionRole.DATE)


@dataclass(frozen=True)
class Condition:
    """A single rule condition."""

    field: str
    op: str
    value: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)

    role: ClassVar[ConditionRole] = ConditionRole.OTHER

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({"field": self.field, "op": self.op, "value": self.value})
        return data

    def substantive(self) -> Dict[str, Any]:
        """Serialized form without the ``type`` tag, for change detection."""
        data = self.to_dict()
        data.pop("type", None)
        return data


@dataclass(frozen=True)
class DateCondition(Condition):
    role: ClassVar[ConditionRole] = ConditionRole.DATE

    @property
    def is_recurring(self) -> bool:
        return isinstance(self.value, dict)

    @property
    def frequency(self) -> Optional[str]:
        """Recurrence frequency, or None for a one-off date."""
        if self.is_recurring:
            return self.value.get("frequency")
        return None

    @property
    def literal_date(self) -> Optional[date]:
        if self.value is None or self.is_recurring:
            return None
        if isinstance(self.value, date):
            return self.value
        return date.fromisoformat(str(self.value))


@dataclass(frozen=True)
class PayeeCondition(Condition):
    role: ClassVar[ConditionRole] = ConditionRole.PAYEE


@dataclass(frozen=True)
class AccountCondition(Condition):
    role: ClassVar[ConditionRole] = ConditionRole.ACCOUNT


@dataclass(frozen=True)
class AmountCondition(Condition):
    role: ClassVar[ConditionRole] = ConditionRole.AMOUNT


@dataclass(frozen=True)
class OtherCondition(Condition):
    role: ClassVar[ConditionRole] = ConditionRole.OTHER


def parse_condition(data: Dict[str, Any]) -> Condition:
    """Build the typed variant for a serialized condition."""
    field_name = data.get("field")
    op = data.get("op")
    extra = {k: v for k, v in data.items() if k not in ("field", "op", "value")}
    kwargs = dict(field=field_name, op=op, value=data.get("value"), extra=extra)

    if field_name == "date" and op in ("is", "isapprox"):
        return DateCondition(**kwargs)
    if field_name in ("payee", "description") and op == "is":
        return PayeeCondition(**kwargs)
    if field_name in ("account", "acct") and op == "is":
        return AccountCondition(**kwargs)
    if field_name == "amount" and op in ("is", "isapprox", "isbetween"):
        return AmountCondition(**kwargs)
    return OtherCondition(**kwargs)


def parse_conditions(items: Optional[List[Any]]) -> List[Condition]:
    return [c if isinstance(c, Condition) else parse_condition(c) for c in (items or [])]


def serialize_conditions(conditions: List[Condition]) -> List[Dict[str, Any]]:
    return [c.to_dict() for c in conditions]


@dataclass
class ScheduleConditions:
    """The conditions of a rule that describe a schedule, by role."""

    payee: Optional[PayeeCondition] = None
    account: Optional[AccountCondition] = None
    amount: Optional[AmountCondition] = None
    date: Optional[DateCondition] = None

    def get(self, role: ConditionRole) -> Optional[Condition]:
        return getattr(self, role.value)


def _first(conditions: List[Condition], cls, field_name: str) -> Optional[Condition]:
    return next((c for c in conditions if isinstance(c, cls) and c.field == field_name), None)


def extract_schedule_conditions(conditions: List[Condition]) -> ScheduleConditions:
    """Pick the payee, account, amount and date conditions out of a rule."""
    return ScheduleConditions(
        payee=_first(conditions, PayeeCondition, "payee") or _first(conditions, PayeeCondition, "description"),
        account=_first(conditions, AccountCondition, "account") or _first(conditions, AccountCondition, "acct"),
        amount=next((c for c in conditions if isinstance(c, AmountCondition)), None),
        date=next((c for c in conditions if isinstance(c, DateCondition)), None),
    )


def merge_conditions(old: List[Condition], new: List[Condition]) -> List[Condition]:
    """
    Merge updated schedule conditions into a rule's existing conditions.

    A role present in both sets is replaced in place, a role only present in
    the new set is appended, and conditions of the old set that the update
    does not speak to are kept. Non-schedule conditions of the new set are
    appended unless an equal condition already exists.
    """
    old_roles = extract_schedule_conditions(old)
    new_roles = extract_schedule_conditions(new)

    merged = list(old)
    claimed = []
    for role in SCHEDULE_ROLES:
        previous = old_roles.get(role)
        replacement = new_roles.get(role)
        if replacement is None:
            continue
        claimed.append(replacement)
        if previous is None:
            merged.append(replacement)
        else:
            idx = next(i for i, c in enumerate(merged) if c is previous)
            merged[idx] = replacement

    for cond in new:
        if any(cond is c for c in claimed):
            continue
        if cond not in merged:
            merged.append(cond)

    return merged


def scheduled_amount(amount: Optional[AmountCondition], range_mode: str = "average", inverse: bool = False) -> int:
    """
    Resolve an amount condition to the amount a posted transaction gets.

    ``is`` / ``isapprox`` use the value as-is. ``isbetween`` (value
    ``{"num1", "num2"}``) resolves to the midpoint, or to the lower or upper
    bound when ``range_mode`` is ``"low"`` or ``"high"``. A missing amount
    condition posts zero.
    """
    if amount is None or amount.value is None:
        return 0

    value = amount.value
    if isinstance(value, dict):
        low, high = sorted((value.get("num1", 0), value.get("num2", 0)))
        if range_mode == "low":
            resolved = low
        elif range_mode == "high":
            resolved = high
        else:
            # Half-up rounding of the midpoint
            resolved = math.floor((low + high) / 2 + 0.5)
    else:
        resolved = value

    resolved = int(resolved)
    return -resolved if inverse else resolved
