"""Database repositories for TaskGate entities."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.db.tables import (
    ActorTable,
    NotificationTable,
    TaskHistoryTable,
    TaskTable,
)
from taskgate.engine.errors import VersionConflict
from taskgate.models import (
    Actor,
    DomainEvent,
    Notification,
    Task,
    TaskStage,
    TaskStatus,
)

_EMBEDDED = ("assignments", "tokens", "remarks", "transfer_history")


class TaskRepository:
    """Repository for task operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, task: Task) -> Task:
        """Insert a new task at version 0."""
        row = TaskTable(**self._model_to_values(task))
        row.task_id = task.task_id
        row.version = 0
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def get(self, task_id: UUID) -> Task | None:
        """Get a task by ID."""
        result = await self.session.execute(
            select(TaskTable).where(TaskTable.task_id == task_id)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def save(self, task: Task, expected_version: int) -> Task:
        """Write `task` only if nobody else saved it since `expected_version`.

        Raises VersionConflict when the stored version moved on.
        """
        new_version = expected_version + 1
        values = self._model_to_values(task)
        values["version"] = new_version

        result = await self.session.execute(
            update(TaskTable)
            .where(
                TaskTable.task_id == task.task_id,
                TaskTable.version == expected_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise VersionConflict(str(task.task_id), expected_version)

        return task.model_copy(update={"version": new_version})

    async def list(
        self,
        created_by: UUID | None = None,
        status: TaskStatus | None = None,
        limit: int = 50,
        cursor: str | None = None,
    ) -> tuple[list[Task], str | None]:
        """List tasks with optional filtering, newest first."""
        query = select(TaskTable)

        if created_by:
            query = query.where(TaskTable.created_by == created_by)
        if status:
            query = query.where(TaskTable.status == status)

        if cursor:
            cursor_time = datetime.fromisoformat(cursor)
            query = query.where(TaskTable.created_at < cursor_time)

        query = query.order_by(TaskTable.created_at.desc()).limit(limit + 1)

        result = await self.session.execute(query)
        rows = list(result.scalars().all())

        next_cursor = None
        if len(rows) > limit:
            rows = rows[:limit]
            next_cursor = rows[-1].created_at.isoformat()

        return [self._row_to_model(r) for r in rows], next_cursor

    async def find_stale_approvals(
        self,
        completed_before: datetime,
        reminded_before: datetime,
        limit: int = 50,
    ) -> list[Task]:
        """Tasks reported done but still undecided, and not reminded recently."""
        query = (
            select(TaskTable)
            .where(
                and_(
                    TaskTable.stage == TaskStage.DONE,
                    TaskTable.status.not_in([TaskStatus.APPROVED, TaskStatus.REJECTED]),
                    TaskTable.completed_at.is_not(None),
                    TaskTable.completed_at <= completed_before,
                    or_(
                        TaskTable.last_reminder_sent.is_(None),
                        TaskTable.last_reminder_sent <= reminded_before,
                    ),
                )
            )
            .order_by(TaskTable.completed_at)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._row_to_model(r) for r in result.scalars().all()]

    def _model_to_values(self, task: Task) -> dict[str, Any]:
        values: dict[str, Any] = {
            name: getattr(task, name)
            for name in Task.model_fields
            if name not in ("task_id", "version", *_EMBEDDED)
        }
        for name in _EMBEDDED:
            values[name] = [item.model_dump(mode="json") for item in getattr(task, name)]
        return values

    def _row_to_model(self, row: TaskTable) -> Task:
        values = {column.key: getattr(row, column.key) for column in TaskTable.__table__.columns}
        return Task.model_validate(values)


class HistoryRepository:
    """Append-only task history."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, event: DomainEvent) -> None:
        payload = event.model_dump(mode="json")
        self.session.add(
            TaskHistoryTable(
                event_id=event.event_id,
                task_id=event.task_id,
                action=event.action,
                actor_id=event.actor_id,
                field=event.field,
                old_value=payload["old_value"],
                new_value=payload["new_value"],
                description=event.description,
                assignee_id=event.assignee_id,
                created_at=event.timestamp,
            )
        )
        await self.session.flush()

    async def list(self, task_id: UUID) -> list[DomainEvent]:
        result = await self.session.execute(
            select(TaskHistoryTable)
            .where(TaskHistoryTable.task_id == task_id)
            .order_by(TaskHistoryTable.seq)
        )
        return [
            DomainEvent(
                event_id=row.event_id,
                task_id=row.task_id,
                action=row.action,
                actor_id=row.actor_id,
                field=row.field,
                old_value=row.old_value,
                new_value=row.new_value,
                description=row.description,
                assignee_id=row.assignee_id,
                timestamp=row.created_at,
            )
            for row in result.scalars().all()
        ]


class NotificationRepository:
    """Repository for per-recipient notifications."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def exists(self, event_id: UUID, recipient_id: UUID) -> bool:
        result = await self.session.execute(
            select(NotificationTable.notification_id).where(
                NotificationTable.event_id == event_id,
                NotificationTable.recipient_id == recipient_id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def create(self, notification: Notification) -> Notification | None:
        """Insert a notification; returns None if this event already reached the recipient.

        A unique-constraint race rolls the session back, so callers use one
        session per recipient.
        """
        if await self.exists(notification.event_id, notification.recipient_id):
            return None
        row = NotificationTable(**notification.model_dump())
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            return None
        return self._row_to_model(row)

    async def record_email(
        self,
        notification_id: UUID,
        sent: bool,
        error: str | None = None,
    ) -> None:
        await self.session.execute(
            update(NotificationTable)
            .where(NotificationTable.notification_id == notification_id)
            .values(email_sent=sent, email_error=error)
        )

    async def list(
        self,
        recipient_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[Notification]:
        query = select(NotificationTable).where(NotificationTable.recipient_id == recipient_id)
        if unread_only:
            query = query.where(NotificationTable.read_at.is_(None))
        query = query.order_by(NotificationTable.created_at.desc()).limit(limit)
        result = await self.session.execute(query)
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def list_for_event(self, event_id: UUID) -> list[Notification]:
        result = await self.session.execute(
            select(NotificationTable).where(NotificationTable.event_id == event_id)
        )
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def mark_read(self, notification_id: UUID, recipient_id: UUID, now: datetime) -> bool:
        result = await self.session.execute(
            update(NotificationTable)
            .where(
                NotificationTable.notification_id == notification_id,
                NotificationTable.recipient_id == recipient_id,
                NotificationTable.read_at.is_(None),
            )
            .values(read_at=now)
        )
        return result.rowcount == 1

    def _row_to_model(self, row: NotificationTable) -> Notification:
        return Notification(
            notification_id=row.notification_id,
            event_id=row.event_id,
            recipient_id=row.recipient_id,
            task_id=row.task_id,
            type=row.type,
            title=row.title,
            message=row.message,
            created_at=row.created_at,
            read_at=row.read_at,
            email_sent=row.email_sent,
            email_error=row.email_error,
        )


class ActorRepository:
    """Identity collaborator: actors by id."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, actor_id: UUID) -> Actor | None:
        row = await self.session.get(ActorTable, actor_id)
        return self._row_to_model(row) if row else None

    async def get_many(self, actor_ids: list[UUID]) -> dict[UUID, Actor]:
        if not actor_ids:
            return {}
        result = await self.session.execute(
            select(ActorTable).where(ActorTable.actor_id.in_(actor_ids))
        )
        return {row.actor_id: self._row_to_model(row) for row in result.scalars().all()}

    async def create(self, actor: Actor) -> Actor:
        row = ActorTable(
            actor_id=actor.id,
            name=actor.name,
            email=actor.email,
            role=actor.role,
            department_id=actor.department_id,
            is_active=actor.is_active,
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    def _row_to_model(self, row: ActorTable) -> Actor:
        return Actor(
            id=row.actor_id,
            name=row.name,
            email=row.email,
            role=row.role,
            department_id=row.department_id,
            is_active=row.is_active,
        )
