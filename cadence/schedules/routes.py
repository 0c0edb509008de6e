"""
API routes for schedules.

Thin wrappers around ScheduleEngine; engine errors are mapped to HTTP
status codes here.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from typing import List, NoReturn

from .engine import ScheduleEngine
from .errors import RecurrenceError, ScheduleError, ScheduleNotFoundError, ScheduleValidationError
from .repository import ScheduleView
from .status import ScheduleStatus
from .schemas import (
    AdvancementRunResponse,
    ScheduleCandidateResponse,
    ScheduleCreate,
    ScheduleIdResponse,
    ScheduleResponse,
    ScheduleUpdate,
    SkipNextDateResponse,
    TransactionResponse,
    UpcomingDatesRequest,
    UpcomingDatesResponse,
)

router = APIRouter()


def get_engine(request: Request) -> ScheduleEngine:
    """Dependency returning the engine built at startup."""
    return request.app.state.schedule_engine


def _raise_http(err: ScheduleError) -> NoReturn:
    if isinstance(err, ScheduleNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(err))
    if isinstance(err, RecurrenceError):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(err), "config": err.config},
        )
    if isinstance(err, ScheduleValidationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(err))
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(err))


def _to_response(view: ScheduleView, schedule_status: ScheduleStatus) -> ScheduleResponse:
    return ScheduleResponse(status=schedule_status.value, **view.to_dict())


# ============================================
# Schedule Endpoints
# ============================================

@router.get("/schedules", response_model=List[ScheduleResponse])
async def list_schedules(engine: ScheduleEngine = Depends(get_engine)):
    """List live schedules with their current status."""
    return [_to_response(view, s) for view, s in await engine.list_schedules()]


@router.post("/schedules", response_model=ScheduleIdResponse, status_code=status.HTTP_201_CREATED)
async def create_schedule(payload: ScheduleCreate, engine: ScheduleEngine = Depends(get_engine)):
    """
    Create a schedule.

    Requires a date condition with a value. The linking rule and next-date
    record are created with it.
    """
    try:
        schedule_id = await engine.create_schedule(
            payload.schedule.model_dump(exclude_none=True),
            [c.to_condition_dict() for c in payload.conditions],
        )
    except ScheduleError as err:
        _raise_http(err)
    return ScheduleIdResponse(id=schedule_id)


@router.post("/schedules/run", response_model=AdvancementRunResponse)
async def force_run_advancement(engine: ScheduleEngine = Depends(get_engine)):
    """Run the advancement cycle now, as after a successful sync."""
    result = await engine.force_run(sync_success=True)
    return result.to_dict()


@router.get("/schedules/discover", response_model=List[ScheduleCandidateResponse])
async def discover_schedules(engine: ScheduleEngine = Depends(get_engine)):
    """Propose schedules for recurring payments found in transaction history."""
    return [candidate.to_dict() for candidate in await engine.discover_schedules()]


@router.post("/schedules/upcoming-dates", response_model=UpcomingDatesResponse)
async def get_upcoming_dates(payload: UpcomingDatesRequest, engine: ScheduleEngine = Depends(get_engine)):
    """Preview the next due dates of a recurrence config."""
    try:
        dates = await engine.get_upcoming_dates(payload.config, payload.count)
    except ScheduleError as err:
        _raise_http(err)
    return UpcomingDatesResponse(dates=dates)


@router.get("/schedules/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(schedule_id: str, engine: ScheduleEngine = Depends(get_engine)):
    try:
        view, schedule_status = await engine.get_schedule(schedule_id)
    except ScheduleError as err:
        _raise_http(err)
    return _to_response(view, schedule_status)


@router.patch("/schedules/{schedule_id}", response_model=ScheduleIdResponse)
async def update_schedule(schedule_id: str, payload: ScheduleUpdate, engine: ScheduleEngine = Depends(get_engine)):
    """
    Update a schedule.

    Conditions are merged into the schedule's rule; the next date is reset
    when requested or when the date or account condition changes.
    """
    fields = payload.schedule.model_dump(exclude_unset=True)
    fields["id"] = schedule_id
    conditions = None
    if payload.conditions is not None:
        conditions = [c.to_condition_dict() for c in payload.conditions]

    try:
        await engine.update_schedule(fields, conditions, payload.reset_next_date)
    except ScheduleError as err:
        _raise_http(err)
    return ScheduleIdResponse(id=schedule_id)


@router.delete("/schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(schedule_id: str, engine: ScheduleEngine = Depends(get_engine)):
    try:
        await engine.delete_schedule(schedule_id)
    except ScheduleError as err:
        _raise_http(err)


@router.post("/schedules/{schedule_id}/skip-next-date", response_model=SkipNextDateResponse)
async def skip_next_date(schedule_id: str, engine: ScheduleEngine = Depends(get_engine)):
    """Move past the current occurrence without marking it paid."""
    try:
        next_date = await engine.skip_next_date(schedule_id)
    except ScheduleError as err:
        _raise_http(err)
    return SkipNextDateResponse(id=schedule_id, next_date=next_date)


@router.post("/schedules/{schedule_id}/post-transaction", response_model=TransactionResponse)
async def post_transaction(schedule_id: str, engine: ScheduleEngine = Depends(get_engine)):
    """Post today's transaction for a schedule."""
    transaction = await engine.post_transaction(schedule_id)
    if transaction is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Schedule not found or has no account",
        )
    return transaction
