"""API routes connecting the sync transport to the schedule engine."""
from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from cadence.notifications.channel import NotificationChannel
from .events import SyncEvent, SyncEventChannel, SyncEventType

router = APIRouter()


class SyncEventIn(BaseModel):
    type: SyncEventType = Field(..., description="started, success, error or unauthorized")


class SyncEventAccepted(BaseModel):
    type: SyncEventType
    completion: bool


class NotificationResponse(BaseModel):
    name: str
    payload: Optional[Dict[str, Any]] = None
    sent_at: datetime


def get_sync_channel(request: Request) -> SyncEventChannel:
    return request.app.state.sync_channel


def get_notifier(request: Request) -> NotificationChannel:
    return request.app.state.notifier


@router.post("/events", response_model=SyncEventAccepted, status_code=status.HTTP_202_ACCEPTED)
async def publish_sync_event(payload: SyncEventIn, channel: SyncEventChannel = Depends(get_sync_channel)):
    """
    Report a sync cycle event.

    Completed cycles (success, error, unauthorized) trigger the daily
    schedule advancement run.
    """
    event = SyncEvent(type=payload.type)
    await channel.publish(event)
    return SyncEventAccepted(type=event.type, completion=event.is_completion)


@router.get("/notifications", response_model=List[NotificationResponse])
async def drain_notifications(notifier: NotificationChannel = Depends(get_notifier)):
    """Return and clear pending outbound notifications."""
    return [n.to_dict() for n in notifier.drain()]
