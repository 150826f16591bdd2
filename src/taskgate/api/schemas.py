"""API request/response schemas."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from taskgate.engine.tokens import ApprovalLinks
from taskgate.models import DomainEvent, Notification, Task, TaskPriority


# ============================================================================
# Tasks
# ============================================================================


class CreateTaskRequest(BaseModel):
    """Create task request."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    start_date: Optional[datetime] = None
    deadline: Optional[datetime] = None
    department_id: Optional[UUID] = None
    assignee_ids: list[UUID] = Field(default_factory=list)
    force_group: bool = Field(False, description="Treat as a group task even with one assignee")


class AssignRequest(BaseModel):
    assignee_ids: list[UUID]


class ReportStageRequest(BaseModel):
    stage: str = Field(..., description="not_started, pending or done")


class DecisionRequest(BaseModel):
    """Approve or reject, for the whole task or one assignee's work."""

    decision: str = Field(..., description="approve or reject")
    assignee_id: Optional[UUID] = Field(None, description="Decide on one assignee's work")
    reason: Optional[str] = Field(None, max_length=1000)


class IssueLinksRequest(BaseModel):
    approver_id: UUID
    assignee_id: Optional[UUID] = None
    ttl_seconds: Optional[int] = Field(None, ge=0)


class UpdateStatusRequest(BaseModel):
    status: str
    reason: Optional[str] = Field(None, max_length=1000)


class RemarkRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)
    category: Optional[str] = None


class TransferRequest(BaseModel):
    from_assignee: UUID
    to_assignee: UUID
    reason: Optional[str] = Field(None, max_length=1000)


class TaskResponse(BaseModel):
    """Task response. Token audit entries are summarized, never exposed."""

    task: dict[str, Any]

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        payload = task.model_dump(mode="json", exclude={"tokens"})
        payload["tokens_issued"] = len(task.tokens)
        payload["tokens_used"] = sum(1 for t in task.tokens if t.used)
        return cls(task=payload)


class ListTasksResponse(BaseModel):
    tasks: list[dict[str, Any]]
    next_cursor: Optional[str] = None


class ApprovalLinksResponse(BaseModel):
    approve_url: str
    reject_url: str
    approve_token: str
    reject_token: str
    expires_at: datetime
    assignee_id: Optional[UUID] = None

    @classmethod
    def from_links(cls, links: ApprovalLinks, base_url: str) -> "ApprovalLinksResponse":
        urls = links.urls(base_url)
        return cls(
            approve_url=urls["approve"],
            reject_url=urls["reject"],
            approve_token=links.approve_token,
            reject_token=links.reject_token,
            expires_at=links.expires_at,
            assignee_id=links.assignee_scope,
        )


class HistoryResponse(BaseModel):
    events: list[DomainEvent]


# ============================================================================
# Notifications & reminders
# ============================================================================


class NotificationListResponse(BaseModel):
    notifications: list[Notification]


class MarkReadResponse(BaseModel):
    notification_id: UUID
    updated: bool


class ReminderSweepResponse(BaseModel):
    reminders_sent: int
    task_ids: list[UUID]


class HealthResponse(BaseModel):
    status: str
    version: str
