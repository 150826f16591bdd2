"""Actor model - people known to the identity collaborator."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from taskgate.models.enums import ActorRole


class Actor(BaseModel):
    """A user who creates, works on or approves tasks."""

    id: UUID
    name: str
    email: str
    role: ActorRole = ActorRole.EMPLOYEE
    department_id: Optional[UUID] = None
    is_active: bool = True
