"""Pydantic schemas for the schedule API."""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from datetime import date


# ============================================
# Conditions
# ============================================

class ConditionIn(BaseModel):
    """A rule condition as sent by clients."""

    model_config = ConfigDict(extra="allow")

    field: str = Field(..., description="Field the condition tests (date, payee, account, amount, ...)")
    op: str = Field(..., description="Operator (is, isapprox, isbetween, ...)")
    value: Any = Field(None, description="ISO date, recurrence config, id or amount")
    type: Optional[str] = Field(None, description="Optional value type tag")

    def to_condition_dict(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_unset=True)
        data.setdefault("value", None)
        return data


# ============================================
# Schedule Schemas
# ============================================

class ScheduleFields(BaseModel):
    """Schedule attributes accepted on create."""

    id: Optional[str] = Field(None, description="Client-supplied id; generated when omitted")
    name: Optional[str] = None
    posts_transaction: bool = False
    active: bool = True
    completed: bool = False


class ScheduleCreate(BaseModel):
    """Schema for creating a schedule."""

    schedule: ScheduleFields = Field(default_factory=ScheduleFields)
    conditions: List[ConditionIn] = Field(default_factory=list)


class ScheduleUpdateFields(BaseModel):
    """Schedule attributes accepted on update. Only fields sent are applied."""

    name: Optional[str] = None
    posts_transaction: Optional[bool] = None
    active: Optional[bool] = None
    completed: Optional[bool] = None
    rule: Optional[str] = Field(None, description="Rejected: a schedule's rule cannot change")


class ScheduleUpdate(BaseModel):
    """Schema for updating a schedule."""

    schedule: ScheduleUpdateFields = Field(default_factory=ScheduleUpdateFields)
    conditions: Optional[List[ConditionIn]] = None
    reset_next_date: bool = False


class ScheduleIdResponse(BaseModel):
    id: str


class ScheduleResponse(BaseModel):
    """A schedule with its derived status."""

    id: str
    name: Optional[str]
    rule: Optional[str]
    active: bool
    completed: bool
    posts_transaction: bool
    next_date: Optional[date]
    status: str
    payee: Optional[str] = None
    account: Optional[str] = None
    amount: Any = None
    conditions: List[Dict[str, Any]] = Field(default_factory=list)


class SkipNextDateResponse(BaseModel):
    id: str
    next_date: Optional[date]


class TransactionResponse(BaseModel):
    """A transaction posted for a schedule."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    account: str
    payee: Optional[str]
    amount: int
    date: date
    schedule: Optional[str]
    cleared: bool


class AdvancementRunResponse(BaseModel):
    run_on: date
    sync_success: bool
    schedules_checked: int
    advanced: List[str]
    completed: List[str]
    posted: List[str]
    failed_to_post: List[Optional[str]]
    errors: List[Dict[str, str]]


class UpcomingDatesRequest(BaseModel):
    config: Dict[str, Any] = Field(..., description="Recurrence config")
    count: int = Field(5, ge=0, le=500)


class UpcomingDatesResponse(BaseModel):
    dates: List[date]


class ScheduleCandidateResponse(BaseModel):
    payee: str
    account: str
    amount: int
    frequency: str
    start: date
    occurrences: int
    conditions: List[Dict[str, Any]]
