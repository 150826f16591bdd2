"""Approval workflow - turns an approve/reject decision into task state.

Shared by the authenticated path and the email-link path: both end up in
`ApprovalWorkflow.apply` against a task loaded inside a serialized update.
"""

import logging
from typing import Optional
from uuid import UUID

from taskgate.engine import aggregator, state_machine
from taskgate.engine.errors import (
    AlreadyFinalized,
    AssignmentNotFound,
    IllegalTransition,
    NotAuthorized,
)
from taskgate.engine.events import build_event, stage_events
from taskgate.engine.state_machine import Transition
from taskgate.models import (
    Actor,
    ActorRole,
    ApprovalState,
    Assignment,
    Decision,
    DomainEvent,
    EventAction,
    Task,
    TaskStage,
    TaskStatus,
)
from taskgate.utils.time import Clock, utc_now

logger = logging.getLogger(__name__)


def authorize_decision(task: Task, actor: Actor, assignee_scope: Optional[UUID] = None) -> None:
    """Only the creator or an escalated role may decide, never on their own work."""
    if not actor.is_active:
        raise NotAuthorized(f"Actor {actor.id} is inactive")

    is_creator = actor.id == task.created_by
    if not is_creator:
        if not actor.role.is_escalated():
            raise NotAuthorized("Only the task creator, a department head or an admin may decide")
        if (
            actor.role is ActorRole.HOD
            and task.department_id is not None
            and actor.department_id != task.department_id
        ):
            raise NotAuthorized("Department head belongs to a different department")

    if assignee_scope is not None:
        if assignee_scope == actor.id:
            raise NotAuthorized("Assignees may not approve or reject their own work")
    elif task.is_assignee(actor.id):
        raise NotAuthorized("Assignees may not approve or reject their own work")


class ApprovalWorkflow:
    """Applies approval decisions at task level or for a single assignee."""

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock

    def apply(
        self,
        task: Task,
        decision: Decision,
        actor: Actor,
        assignee_scope: Optional[UUID] = None,
        reason: Optional[str] = None,
        via_token: bool = False,
    ) -> list[DomainEvent]:
        """Mutate `task` in place and return the resulting domain events."""
        if task.approval_status is ApprovalState.APPROVED:
            raise AlreadyFinalized(str(task.task_id))

        authorize_decision(task, actor, assignee_scope)

        metadata: dict = {"via_token": via_token}
        if reason:
            metadata["reason"] = reason

        if assignee_scope is not None:
            assignment = task.find_assignment(assignee_scope)
            if assignment is None:
                raise AssignmentNotFound(str(task.task_id), str(assignee_scope))
            if task.is_group_task:
                return self._decide_for_assignee(task, assignment, decision, actor, reason, metadata)

        return self._decide_for_task(task, decision, actor, reason, metadata)

    def _decide_for_assignee(
        self,
        task: Task,
        assignment: Assignment,
        decision: Decision,
        actor: Actor,
        reason: Optional[str],
        metadata: dict,
    ) -> list[DomainEvent]:
        now = self.clock()
        if decision is Decision.APPROVE:
            transition = state_machine.approve_assignment(assignment, actor.id, now)
            verb = "Approved"
        else:
            transition = state_machine.reject_assignment(assignment, actor.id, now, reason)
            verb = "Rejected"
        task.updated_at = now

        suffix = f" (Reason: {reason})" if reason else ""
        events = [
            build_event(
                task,
                EventAction.INDIVIDUAL_APPROVAL_UPDATED,
                actor.id,
                now,
                f"{verb} work of assignee {assignment.assignee_id}{suffix}",
                transition=transition,
                assignee_id=assignment.assignee_id,
                metadata=metadata,
            )
        ]

        for change in aggregator.reconcile(task, now):
            if change.field == "status" and change.new is TaskStatus.APPROVED:
                events.append(
                    build_event(
                        task,
                        EventAction.TASK_APPROVED,
                        actor.id,
                        now,
                        "All assignees approved; task closed",
                        transition=change,
                        metadata=metadata,
                    )
                )
            else:
                events.extend(stage_events(task, [change], actor.id, now, "group approval"))
        return events

    def _decide_for_task(
        self,
        task: Task,
        decision: Decision,
        actor: Actor,
        reason: Optional[str],
        metadata: dict,
    ) -> list[DomainEvent]:
        if not task.assignments:
            raise IllegalTransition(task.status.value, decision.outcome.value, "task has no assignees")

        now = self.clock()
        old_approval = task.approval_status
        transitions: list[Transition] = []

        if decision is Decision.APPROVE:
            for assignment in task.assignments:
                if assignment.individual_stage is not TaskStage.DONE:
                    state_machine.advance_assignment_stage(assignment, TaskStage.DONE, now)
                if assignment.approval is not ApprovalState.APPROVED:
                    state_machine.approve_assignment(assignment, actor.id, now)
            if task.stage is not TaskStage.DONE:
                transitions.append(state_machine.advance_stage(task, TaskStage.DONE, now))
            transitions.append(
                state_machine.set_status(task, TaskStatus.APPROVED, actor.id, now, reason)
            )
            action = EventAction.TASK_APPROVED
            description = f"Task approved by {actor.name}"
        else:
            for assignment in task.assignments:
                state_machine.reject_assignment(assignment, actor.id, now, reason)
            transitions.append(
                state_machine.set_status(task, TaskStatus.REJECTED, actor.id, now, reason)
            )
            action = EventAction.TASK_REJECTED
            description = f"Task rejected by {actor.name}"
            if reason:
                description = f"{description} (Reason: {reason})"

        if metadata.get("via_token"):
            description = f"{description} via email link"

        task.approval_status = decision.outcome
        task.approval_date = now
        aggregator.reconcile(task, now)

        events = [
            build_event(
                task,
                action,
                actor.id,
                now,
                description,
                transition=Transition("approval_status", old_approval, decision.outcome),
                metadata=metadata,
            )
        ]
        events.extend(
            stage_events(task, transitions, actor.id, now, f"task {decision.outcome.value}", ("stage",))
        )
        logger.info(f"Task {task.task_id} {decision.outcome.value} by {actor.id}")
        return events
