"""Task model - the unit of work and its embedded per-assignee records."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from taskgate.models.enums import (
    ApprovalFlow,
    ApprovalState,
    AssignmentStatus,
    Decision,
    RemarkCategory,
    TaskPriority,
    TaskStage,
    TaskStatus,
)


class Assignment(BaseModel):
    """One assignee's individual progress within a task."""

    assignee_id: UUID
    assigned_at: datetime
    individual_stage: TaskStage = TaskStage.NOT_STARTED
    individual_status: AssignmentStatus = AssignmentStatus.ASSIGNED
    approval: ApprovalState = ApprovalState.PENDING
    completed_at: Optional[datetime] = None
    approval_at: Optional[datetime] = None
    approved_by: Optional[UUID] = None
    rejection_reason: Optional[str] = None
    notes: Optional[str] = None


class TokenRecord(BaseModel):
    """Audit entry for an issued capability token.

    Only a reference (jti) and a digest of the raw token are kept; the `used`
    flag is authoritative for single use and never resets.
    """

    token_id: UUID
    token_hash: str
    actor_id: UUID
    assignee_scope: Optional[UUID] = None
    action: Decision
    issued_at: datetime
    expires_at: datetime
    used: bool = False
    used_at: Optional[datetime] = None

    @property
    def flow(self) -> ApprovalFlow:
        return ApprovalFlow.ASSIGNEE if self.assignee_scope else ApprovalFlow.TASK


class Remark(BaseModel):
    text: str
    author_id: UUID
    category: RemarkCategory = RemarkCategory.GENERAL
    created_at: datetime


class TransferRecord(BaseModel):
    from_assignee: UUID
    to_assignee: UUID
    reason: Optional[str] = None
    transferred_at: datetime
    approved_by: UUID


class Task(BaseModel):
    """Core task entity."""

    # Identity
    task_id: UUID
    version: int = 0

    # Content
    title: str
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    department_id: Optional[UUID] = None
    start_date: datetime
    deadline: Optional[datetime] = None

    # Ownership (immutable after creation)
    created_by: UUID

    # Lifecycle
    status: TaskStatus = TaskStatus.CREATED
    stage: TaskStage = TaskStage.NOT_STARTED
    force_group: bool = False
    is_group_task: bool = False
    assignments: list[Assignment] = Field(default_factory=list)

    # Approval
    approval_status: Optional[ApprovalState] = None
    approval_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    time_to_complete_seconds: Optional[float] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[UUID] = None
    tokens: list[TokenRecord] = Field(default_factory=list)

    # Collaboration
    remarks: list[Remark] = Field(default_factory=list)
    transfer_history: list[TransferRecord] = Field(default_factory=list)

    # Reminders
    last_reminder_sent: Optional[datetime] = None

    # Timestamps
    created_at: datetime
    updated_at: datetime

    @property
    def assignee_ids(self) -> list[UUID]:
        return [a.assignee_id for a in self.assignments]

    def is_assignee(self, actor_id: UUID) -> bool:
        return any(a.assignee_id == actor_id for a in self.assignments)

    def find_assignment(self, assignee_id: UUID) -> Optional[Assignment]:
        for assignment in self.assignments:
            if assignment.assignee_id == assignee_id:
                return assignment
        return None

    def find_token(self, token_hash: str) -> Optional[TokenRecord]:
        for record in self.tokens:
            if record.token_hash == token_hash:
                return record
        return None

    def refresh_group_flag(self) -> None:
        """A task is a group task iff it has more than one assignee or is forced."""
        self.is_group_task = self.force_group or len(self.assignments) > 1
