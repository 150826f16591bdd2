"""Domain event model."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from taskgate.models.enums import EventAction


class DomainEvent(BaseModel):
    """Immutable record of a state transition.

    Events are appended to the task history and fed to the notification
    dispatcher. `metadata` carries dispatch-only context (newly assigned
    actors, freshly issued approval links) that is never written to history.
    """

    event_id: UUID = Field(default_factory=uuid4)
    task_id: UUID
    action: EventAction
    actor_id: Optional[UUID] = None
    field: Optional[str] = None
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
    description: str = ""
    assignee_id: Optional[UUID] = None
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict, exclude=True)

    model_config = {"frozen": True}
