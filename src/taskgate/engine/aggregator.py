"""Group aggregation - derive parent task state from per-assignee records."""

from datetime import datetime

from taskgate.engine import state_machine
from taskgate.engine.state_machine import Transition
from taskgate.models import ApprovalState, Task, TaskStage, TaskStatus


def all_individually_done(task: Task) -> bool:
    return bool(task.assignments) and all(
        a.individual_stage is TaskStage.DONE for a in task.assignments
    )


def all_approved(task: Task) -> bool:
    return bool(task.assignments) and all(
        a.approval is ApprovalState.APPROVED for a in task.assignments
    )


def any_rejected(task: Task) -> bool:
    return any(a.approval is ApprovalState.REJECTED for a in task.assignments)


def reconcile(task: Task, now: datetime) -> list[Transition]:
    """Apply the closing and rollback rules to a group task.

    Runs after every mutation of a group task. Individual approvals are
    necessary and jointly sufficient for the parent to reach approved, and
    the parent is never left approved while any member is rejected.
    Single-assignee tasks are returned untouched.
    """
    if not task.is_group_task:
        return []

    transitions: list[Transition] = []

    if all_individually_done(task) and all_approved(task):
        if task.status is not TaskStatus.APPROVED:
            transitions.extend(_close(task, now))
        return transitions

    if any_rejected(task) and task.status in (TaskStatus.APPROVED, TaskStatus.COMPLETED):
        transitions.append(state_machine.demote_for_revision(task, now))

    transitions.extend(_sync_stage(task, now))
    return transitions


def _close(task: Task, now: datetime) -> list[Transition]:
    transitions: list[Transition] = []
    if task.stage is not TaskStage.DONE:
        transitions.append(state_machine.advance_stage(task, TaskStage.DONE, now))

    last = max(task.assignments, key=lambda a: a.approval_at or now)
    old_status = task.status
    task.status = TaskStatus.APPROVED
    task.approved_at = last.approval_at or now
    task.approved_by = last.approved_by
    task.updated_at = now
    transitions.append(Transition("status", old_status, TaskStatus.APPROVED))
    return transitions


def _sync_stage(task: Task, now: datetime) -> list[Transition]:
    """Keep the parent stage in step with member progress."""
    if all_individually_done(task):
        if task.stage is not TaskStage.DONE:
            return [state_machine.advance_stage(task, TaskStage.DONE, now)]
        return []

    started = any(a.individual_stage is not TaskStage.NOT_STARTED for a in task.assignments)
    if task.stage is TaskStage.DONE:
        retreat = state_machine.retreat_group_stage(task, now)
        return [retreat] if retreat else []
    if started and task.stage is TaskStage.NOT_STARTED:
        return [state_machine.advance_stage(task, TaskStage.PENDING, now)]
    return []
