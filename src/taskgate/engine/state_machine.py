"""Stage/status state machine for tasks and their assignments.

Every mutator returns `Transition` records describing what changed so the
caller can emit domain events; nothing here dispatches or persists.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from taskgate.engine.errors import IllegalTransition, InvalidStage, InvalidStatus
from taskgate.models import (
    ApprovalState,
    Assignment,
    AssignmentStatus,
    Task,
    TaskStage,
    TaskStatus,
)


@dataclass(frozen=True)
class Transition:
    """Old and new value of one field, plus any coupled changes it forced."""

    field: str
    old: Any
    new: Any
    coupled: tuple["Transition", ...] = field(default=())

    @property
    def changed(self) -> bool:
        return self.old != self.new


def coerce_stage(value: TaskStage | str) -> TaskStage:
    try:
        return TaskStage(value)
    except ValueError as exc:
        raise InvalidStage(value) from exc


def coerce_status(value: TaskStatus | str) -> TaskStatus:
    try:
        return TaskStatus(value)
    except ValueError as exc:
        raise InvalidStatus(value) from exc


def _check_forward(current: TaskStage, requested: TaskStage) -> None:
    # done is always reachable: it means "assignee declares finished"
    if requested is TaskStage.DONE:
        return
    if requested.rank <= current.rank:
        raise IllegalTransition(
            current.value, requested.value, "cannot move to an earlier or equal stage"
        )


def advance_stage(task: Task, new_stage: TaskStage | str, now: datetime) -> Transition:
    """Move the task stage forward. Reaching done never changes status."""
    requested = coerce_stage(new_stage)
    current = task.stage
    _check_forward(current, requested)

    task.stage = requested
    if requested is TaskStage.DONE:
        task.completed_at = now
        task.time_to_complete_seconds = max(0.0, (now - task.start_date).total_seconds())
    task.updated_at = now
    return Transition("stage", current, requested)


def _rollback_for_revision(task: Task, now: datetime) -> Optional[Transition]:
    """Clear completion/approval stamps and put the stage back to pending.

    This is the only sanctioned backward stage movement; it
    bypasses `advance_stage`.
    """
    task.completed_at = None
    task.time_to_complete_seconds = None
    task.approved_at = None
    task.approved_by = None
    task.updated_at = now
    old_stage = task.stage
    task.stage = TaskStage.PENDING
    if old_stage is TaskStage.PENDING:
        return None
    return Transition("stage", old_stage, TaskStage.PENDING)


def set_status(
    task: Task,
    new_status: TaskStatus | str,
    actor_id: UUID | None,
    now: datetime,
    reason: str | None = None,
) -> Transition:
    """Assign a task status and apply its coupled side effects.

    Actor authorization is the caller's job. `reason` is accepted for the
    caller's history record; it does not affect the transition.
    """
    requested = coerce_status(new_status)
    current = task.status
    coupled: list[Transition] = []

    if requested is TaskStatus.COMPLETED:
        task.completed_at = now
    elif requested is TaskStatus.APPROVED:
        task.approved_at = now
        task.approved_by = actor_id
    elif requested is TaskStatus.REJECTED or (
        requested is TaskStatus.IN_PROGRESS and current is TaskStatus.REJECTED
    ):
        stage_change = _rollback_for_revision(task, now)
        if stage_change:
            coupled.append(stage_change)

    task.status = requested
    task.updated_at = now
    return Transition("status", current, requested, tuple(coupled))


def demote_for_revision(task: Task, now: datetime) -> Transition:
    """Return an approved/completed task to actionable work."""
    current = task.status
    coupled: list[Transition] = []
    stage_change = _rollback_for_revision(task, now)
    if stage_change:
        coupled.append(stage_change)
    task.status = TaskStatus.IN_PROGRESS
    return Transition("status", current, TaskStatus.IN_PROGRESS, tuple(coupled))


def retreat_group_stage(task: Task, now: datetime) -> Optional[Transition]:
    """Pull a group task's stage back to pending when a member left done."""
    if task.stage is not TaskStage.DONE:
        return None
    task.completed_at = None
    task.time_to_complete_seconds = None
    task.stage = TaskStage.PENDING
    task.updated_at = now
    return Transition("stage", TaskStage.DONE, TaskStage.PENDING)


# Assignment-scoped transitions ------------------------------------------------


def advance_assignment_stage(
    assignment: Assignment,
    new_stage: TaskStage | str,
    now: datetime,
) -> Transition:
    """Move one assignee's stage forward; reaching done puts them up for approval."""
    requested = coerce_stage(new_stage)
    current = assignment.individual_stage
    if assignment.approval is ApprovalState.APPROVED:
        raise IllegalTransition(current.value, requested.value, "work is already approved")
    _check_forward(current, requested)

    assignment.individual_stage = requested
    if requested is TaskStage.DONE:
        assignment.individual_status = AssignmentStatus.COMPLETED
        assignment.approval = ApprovalState.PENDING
        assignment.completed_at = now
    elif assignment.individual_status is AssignmentStatus.ASSIGNED:
        assignment.individual_status = AssignmentStatus.IN_PROGRESS
    return Transition("individual_stage", current, requested)


def approve_assignment(assignment: Assignment, approver_id: UUID, now: datetime) -> Transition:
    if assignment.approval is ApprovalState.APPROVED:
        raise IllegalTransition(
            ApprovalState.APPROVED.value, ApprovalState.APPROVED.value, "work is already approved"
        )
    if assignment.individual_stage is not TaskStage.DONE:
        raise IllegalTransition(
            assignment.approval.value,
            ApprovalState.APPROVED.value,
            "assignee has not reported done",
        )
    old = assignment.approval
    assignment.approval = ApprovalState.APPROVED
    assignment.approval_at = now
    assignment.approved_by = approver_id
    assignment.rejection_reason = None
    return Transition("individual_approval", old, ApprovalState.APPROVED)


def reject_assignment(
    assignment: Assignment,
    approver_id: UUID,
    now: datetime,
    reason: str | None = None,
) -> Transition:
    """Reject one assignee's work and return them to actionable work."""
    old = assignment.approval
    old_stage = assignment.individual_stage
    assignment.approval = ApprovalState.REJECTED
    assignment.approval_at = now
    assignment.approved_by = approver_id
    assignment.rejection_reason = reason or ""
    assignment.individual_stage = TaskStage.PENDING
    assignment.individual_status = AssignmentStatus.IN_PROGRESS
    assignment.completed_at = None
    coupled = ()
    if old_stage is not TaskStage.PENDING:
        coupled = (Transition("individual_stage", old_stage, TaskStage.PENDING),)
    return Transition("individual_approval", old, ApprovalState.REJECTED, coupled)
