"""SQLAlchemy table definitions."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Enum,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from taskgate.db.base import Base
from taskgate.db.columns import JSONDocument, UTCDateTime
from taskgate.models.enums import (
    ActorRole,
    ApprovalState,
    EventAction,
    TaskPriority,
    TaskStage,
    TaskStatus,
)


def _enum(enum_cls) -> Enum:
    """Store enum values (not member names) without a native DB type."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


class TaskTable(Base):
    """Tasks table. Assignments, token audit entries and remarks are embedded."""

    __tablename__ = "tasks"

    task_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Content
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    priority: Mapped[TaskPriority] = mapped_column(_enum(TaskPriority), nullable=False)
    department_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    start_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Ownership (immutable)
    created_by: Mapped[UUID] = mapped_column(Uuid, nullable=False)

    # Lifecycle
    status: Mapped[TaskStatus] = mapped_column(
        _enum(TaskStatus), nullable=False, default=TaskStatus.CREATED
    )
    stage: Mapped[TaskStage] = mapped_column(
        _enum(TaskStage), nullable=False, default=TaskStage.NOT_STARTED
    )
    force_group: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_group_task: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    assignments: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)

    # Approval
    approval_status: Mapped[ApprovalState | None] = mapped_column(_enum(ApprovalState), nullable=True)
    approval_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    time_to_complete_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    tokens: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)

    # Collaboration
    remarks: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)
    transfer_history: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONDocument, nullable=False, default=list
    )

    # Reminders
    last_reminder_sent: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("idx_tasks_created_by", "created_by", "created_at"),
        Index("idx_tasks_status", "status", "created_at"),
        # Reminder sweep selection
        Index("idx_tasks_awaiting_approval", "stage", "status", "completed_at"),
    )


class TaskHistoryTable(Base):
    """Append-only history of domain events."""

    __tablename__ = "task_history"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, unique=True)
    task_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    action: Mapped[EventAction] = mapped_column(_enum(EventAction), nullable=False)
    actor_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    field: Mapped[str | None] = mapped_column(String(64), nullable=True)
    old_value: Mapped[Any] = mapped_column(JSONDocument, nullable=True)
    new_value: Mapped[Any] = mapped_column(JSONDocument, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    assignee_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (Index("idx_history_task", "task_id", "seq"),)


class NotificationTable(Base):
    """Per-recipient notifications derived from domain events."""

    __tablename__ = "notifications"

    notification_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    event_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    recipient_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    task_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    type: Mapped[EventAction] = mapped_column(_enum(EventAction), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(String(1000), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        # One notification per recipient per event
        UniqueConstraint("event_id", "recipient_id", name="uq_notification_event_recipient"),
        Index("idx_notifications_recipient", "recipient_id", "created_at"),
    )


class ActorTable(Base):
    """Identity collaborator view of users."""

    __tablename__ = "actors"

    actor_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[ActorRole] = mapped_column(_enum(ActorRole), nullable=False)
    department_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
