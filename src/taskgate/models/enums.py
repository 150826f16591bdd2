"""TaskGate enumerations."""

from enum import Enum


class TaskStatus(str, Enum):
    """Overall lifecycle status of a task."""

    CREATED = "created"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    APPROVED = "approved"
    REJECTED = "rejected"
    TRANSFERRED = "transferred"
    PENDING = "pending"

    @classmethod
    def decided_states(cls) -> set["TaskStatus"]:
        """Statuses that record an approval decision."""
        return {cls.APPROVED, cls.REJECTED}


class TaskStage(str, Enum):
    """Creator-facing workflow position, ordered."""

    NOT_STARTED = "not_started"
    PENDING = "pending"
    DONE = "done"

    @property
    def rank(self) -> int:
        return _STAGE_ORDER.index(self)


_STAGE_ORDER = [TaskStage.NOT_STARTED, TaskStage.PENDING, TaskStage.DONE]


class AssignmentStatus(str, Enum):
    """Per-assignee progress status."""

    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class ApprovalState(str, Enum):
    """Approval decision state (per assignee or task-level)."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Decision(str, Enum):
    """Approve/reject decision, also the action a capability token carries."""

    APPROVE = "approve"
    REJECT = "reject"

    @property
    def outcome(self) -> ApprovalState:
        return ApprovalState.APPROVED if self is Decision.APPROVE else ApprovalState.REJECTED


class ApprovalFlow(str, Enum):
    """Which approval path a capability token authorizes."""

    TASK = "task"
    ASSIGNEE = "assignee"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ActorRole(str, Enum):
    """Roles known to the identity collaborator."""

    EMPLOYEE = "employee"
    HOD = "hod"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    def is_escalated(self) -> bool:
        """Department heads and administrators may decide on tasks they did not create."""
        return self in {ActorRole.HOD, ActorRole.ADMIN, ActorRole.SUPER_ADMIN}


class RemarkCategory(str, Enum):
    CREATOR = "creator"
    ASSIGNEE = "assignee"
    GENERAL = "general"


class EventAction(str, Enum):
    """Types of domain events."""

    TASK_CREATED = "task_created"
    TASK_ASSIGNED = "task_assigned"
    STAGE_CHANGED = "stage_changed"
    STATUS_CHANGED = "status_changed"
    TASK_APPROVED = "task_approved"
    TASK_REJECTED = "task_rejected"
    INDIVIDUAL_APPROVAL_UPDATED = "individual_approval_updated"
    REMARK_ADDED = "remark_added"
    TASK_TRANSFERRED = "task_transferred"
    APPROVAL_LINKS_ISSUED = "approval_links_issued"
    APPROVAL_REMINDER = "approval_reminder"
