"""Domain event construction helpers."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from taskgate.engine.state_machine import Transition
from taskgate.models import DomainEvent, EventAction, Task


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def build_event(
    task: Task,
    action: EventAction,
    actor_id: Optional[UUID],
    now: datetime,
    description: str,
    transition: Optional[Transition] = None,
    assignee_id: Optional[UUID] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> DomainEvent:
    return DomainEvent(
        task_id=task.task_id,
        action=action,
        actor_id=actor_id,
        field=transition.field if transition else None,
        old_value=_plain(transition.old) if transition else None,
        new_value=_plain(transition.new) if transition else None,
        description=description,
        assignee_id=assignee_id,
        timestamp=now,
        metadata=metadata or {},
    )


def stage_events(
    task: Task,
    transitions: list[Transition],
    actor_id: Optional[UUID],
    now: datetime,
    cause: str,
    fields: tuple[str, ...] = ("stage", "status"),
) -> list[DomainEvent]:
    """Events for the parent-level stage/status changes in `transitions`."""
    events = []
    for transition in _flatten(transitions):
        if not transition.changed or transition.field not in fields:
            continue
        if transition.field == "stage":
            action = EventAction.STAGE_CHANGED
        elif transition.field == "status":
            action = EventAction.STATUS_CHANGED
        else:
            continue
        events.append(
            build_event(
                task,
                action,
                actor_id,
                now,
                f"{transition.field.capitalize()} changed from "
                f"{_plain(transition.old)} to {_plain(transition.new)} ({cause})",
                transition=transition,
            )
        )
    return events


def _flatten(transitions: list[Transition]) -> list[Transition]:
    flat: list[Transition] = []
    for transition in transitions:
        flat.append(transition)
        flat.extend(_flatten(list(transition.coupled)))
    return flat
