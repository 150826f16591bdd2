"""TaskGate data models."""

from taskgate.models.enums import (
    ActorRole,
    ApprovalFlow,
    ApprovalState,
    AssignmentStatus,
    Decision,
    EventAction,
    RemarkCategory,
    TaskPriority,
    TaskStage,
    TaskStatus,
)
from taskgate.models.actor import Actor
from taskgate.models.event import DomainEvent
from taskgate.models.notification import Notification
from taskgate.models.task import Assignment, Remark, Task, TokenRecord, TransferRecord

__all__ = [
    "Actor",
    "ActorRole",
    "ApprovalFlow",
    "ApprovalState",
    "Assignment",
    "AssignmentStatus",
    "Decision",
    "DomainEvent",
    "EventAction",
    "Notification",
    "Remark",
    "RemarkCategory",
    "Task",
    "TaskPriority",
    "TaskStage",
    "TaskStatus",
    "TokenRecord",
    "TransferRecord",
]
