"""Notification model - addressed, per-recipient records."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from taskgate.models.enums import EventAction


class Notification(BaseModel):
    notification_id: UUID
    event_id: UUID
    recipient_id: UUID
    task_id: UUID
    type: EventAction
    title: str
    message: str
    created_at: datetime
    read_at: Optional[datetime] = None
    email_sent: bool = False
    email_error: Optional[str] = None
