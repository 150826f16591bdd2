"""Recipient derivation for domain events."""

from typing import Iterable
from uuid import UUID

from taskgate.models import DomainEvent, EventAction, Task, TaskStage

TITLES: dict[EventAction, str] = {
    EventAction.TASK_CREATED: "Task created",
    EventAction.TASK_ASSIGNED: "New task assigned",
    EventAction.STAGE_CHANGED: "Task progress updated",
    EventAction.STATUS_CHANGED: "Task status changed",
    EventAction.TASK_APPROVED: "Task approved",
    EventAction.TASK_REJECTED: "Task rejected",
    EventAction.INDIVIDUAL_APPROVAL_UPDATED: "Your work was reviewed",
    EventAction.REMARK_ADDED: "New remark",
    EventAction.TASK_TRANSFERRED: "Task transferred",
    EventAction.APPROVAL_LINKS_ISSUED: "Approval requested",
    EventAction.APPROVAL_REMINDER: "Task awaiting your approval",
}


def _unique(ids: Iterable[UUID | None], exclude: UUID | None) -> list[UUID]:
    seen: list[UUID] = []
    for candidate in ids:
        if candidate is None or candidate == exclude or candidate in seen:
            continue
        seen.append(candidate)
    return seen


def recipients_for(task: Task, event: DomainEvent) -> list[UUID]:
    """Who hears about `event`. The acting actor is never among them."""
    action = event.action
    metadata = event.metadata
    targets: list[UUID | None]

    if action is EventAction.TASK_ASSIGNED:
        targets = list(metadata.get("new_assignees", []))
    elif action is EventAction.STAGE_CHANGED:
        if event.new_value == TaskStage.DONE.value:
            targets = [task.created_by, *task.assignee_ids]
        elif task.is_group_task:
            targets = list(task.assignee_ids)
        else:
            targets = []
    elif action in (
        EventAction.STATUS_CHANGED,
        EventAction.TASK_APPROVED,
        EventAction.TASK_REJECTED,
    ):
        targets = list(task.assignee_ids)
    elif action is EventAction.INDIVIDUAL_APPROVAL_UPDATED:
        targets = [event.assignee_id]
    elif action is EventAction.REMARK_ADDED:
        targets = [task.created_by] if metadata.get("from_assignee") else list(task.assignee_ids)
    elif action is EventAction.TASK_TRANSFERRED:
        targets = [event.assignee_id, task.created_by]
    elif action is EventAction.APPROVAL_LINKS_ISSUED:
        targets = [metadata.get("approver_id")]
    elif action is EventAction.APPROVAL_REMINDER:
        targets = [task.created_by]
    else:
        targets = []

    return _unique(targets, exclude=event.actor_id)


def render_message(task: Task, event: DomainEvent) -> tuple[str, str]:
    """Title and body for one notification."""
    title = f"{TITLES.get(event.action, 'Task update')}: {task.title}"
    return title[:200], (event.description or title)[:1000]
