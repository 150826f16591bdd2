"""TaskGate core engine - canonical task lifecycle operations."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Optional
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskgate.config import settings
from taskgate.db.base import async_session_factory
from taskgate.db.repositories import (
    ActorRepository,
    HistoryRepository,
    NotificationRepository,
    TaskRepository,
)
from taskgate.engine import aggregator, state_machine
from taskgate.engine.approval import ApprovalWorkflow, authorize_decision
from taskgate.engine.errors import (
    ActorNotFound,
    AlreadyFinalized,
    AssignmentNotFound,
    ConcurrentUpdateError,
    IllegalTransition,
    InvalidAssignees,
    NotAuthorized,
    PersistenceUnavailable,
    TaskNotFound,
    TokenError,
    ValidationError,
    VersionConflict,
)
from taskgate.engine.events import build_event, stage_events
from taskgate.engine.locks import TaskLockRegistry
from taskgate.engine.state_machine import Transition
from taskgate.engine.tokens import ApprovalLinks, CapabilityTokenService, TokenClaims
from taskgate.models import (
    Actor,
    ActorRole,
    ApprovalFlow,
    ApprovalState,
    Assignment,
    Decision,
    DomainEvent,
    EventAction,
    Notification,
    Remark,
    RemarkCategory,
    Task,
    TaskPriority,
    TaskStage,
    TaskStatus,
    TransferRecord,
)
from taskgate.observability.metrics import metrics
from taskgate.utils.time import Clock, ensure_utc, utc_now

logger = logging.getLogger(__name__)

Mutator = Callable[[Task], list[DomainEvent]]

# Statuses from which the first reported progress moves a task to in_progress
_STARTABLE = (TaskStatus.CREATED, TaskStatus.ASSIGNED, TaskStatus.TRANSFERRED, TaskStatus.PENDING)


@dataclass(frozen=True)
class RedeemedLink:
    """Outcome of an email-link redemption, for the confirmation page."""

    task: Task
    claims: TokenClaims


def is_due_for_reminder(
    task: Task,
    now: datetime,
    threshold_seconds: int,
    repeat_seconds: int,
) -> bool:
    """Done but undecided for `threshold_seconds`, and not reminded within `repeat_seconds`."""
    if task.stage is not TaskStage.DONE or task.status in TaskStatus.decided_states():
        return False
    if task.completed_at is None or task.completed_at > now - timedelta(seconds=threshold_seconds):
        return False
    return task.last_reminder_sent is None or task.last_reminder_sent <= now - timedelta(
        seconds=repeat_seconds
    )


def _can_manage(task: Task, actor: Actor) -> bool:
    if actor.id == task.created_by:
        return True
    if actor.role in (ActorRole.ADMIN, ActorRole.SUPER_ADMIN):
        return True
    return actor.role is ActorRole.HOD and (
        task.department_id is None or actor.department_id == task.department_id
    )


def _require_manager(task: Task, actor: Actor) -> None:
    if not actor.is_active or not _can_manage(task, actor):
        raise NotAuthorized("Only the task creator, a department head or an admin may do this")


def _require_open(task: Task) -> None:
    if task.status is TaskStatus.APPROVED or task.approval_status is ApprovalState.APPROVED:
        raise AlreadyFinalized(str(task.task_id))


class TaskGateEngine:
    """
    Canonical TaskGate operations.

    Every mutation of a task runs as a serialized read-modify-write: the
    per-task lock orders callers in this process and the version column
    catches writers elsewhere. A version conflict re-runs the mutation
    against fresh state. Domain events are written to history in the same
    transaction and handed to the notification dispatcher after commit.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        dispatcher=None,
        tokens: Optional[CapabilityTokenService] = None,
        clock: Clock = utc_now,
        locks: Optional[TaskLockRegistry] = None,
        max_update_retries: Optional[int] = None,
    ):
        self.session_factory = session_factory or async_session_factory
        self.dispatcher = dispatcher
        self.clock = clock
        self.tokens = tokens or CapabilityTokenService(clock=clock)
        self.workflow = ApprovalWorkflow(clock)
        self.locks = locks or TaskLockRegistry()
        self.max_update_retries = (
            settings.max_update_retries if max_update_retries is None else max_update_retries
        )

    # =========================================================================
    # Plumbing
    # =========================================================================

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Persistence failure: {e}", exc_info=True)
            raise PersistenceUnavailable(str(e)) from e

    async def _mutate(self, task_id: UUID, mutator: Mutator) -> tuple[Task, list[DomainEvent]]:
        """Apply `mutator` to the stored task under the task lock and commit.

        The mutator edits the task in place and returns its events. Any
        exception it raises aborts the whole update; nothing is saved.
        """
        attempt = 0
        async with self.locks.hold(task_id):
            while True:
                attempt += 1
                try:
                    async with self._session() as session:
                        tasks = TaskRepository(session)
                        task = await tasks.get(task_id)
                        if task is None:
                            raise TaskNotFound(str(task_id))

                        expected_version = task.version
                        events = mutator(task)
                        if not events:
                            saved = task
                            break
                        saved = await tasks.save(task, expected_version)

                        history = HistoryRepository(session)
                        for event in events:
                            await history.append(event)
                        await session.commit()
                    break
                except VersionConflict:
                    metrics.inc_counter("task.version_conflict")
                    if attempt > self.max_update_retries:
                        raise ConcurrentUpdateError(str(task_id), attempt)
                    logger.info(f"Version conflict on task {task_id}, retrying (attempt {attempt})")

        for event in events:
            metrics.inc_counter("task.event", action=event.action.value)
        await self._dispatch(saved, events)
        return saved, events

    async def _dispatch(self, task: Task, events: list[DomainEvent]) -> None:
        if not self.dispatcher or not events:
            return
        try:
            await self.dispatcher.dispatch(task, events)
        except Exception as e:
            # Committed state is authoritative; notifications are best effort
            logger.error(f"Notification dispatch failed for task {task.task_id}: {e}", exc_info=True)
            metrics.inc_counter("notification.dispatch_failed")

    async def get_actor(self, actor_id: UUID) -> Actor:
        async with self._session() as session:
            actor = await ActorRepository(session).get(actor_id)
        if actor is None:
            raise ActorNotFound(str(actor_id))
        return actor

    async def create_actor(self, actor: Actor) -> Actor:
        async with self._session() as session:
            created = await ActorRepository(session).create(actor)
            await session.commit()
        return created

    async def _resolve_assignees(self, assignee_ids: list[UUID]) -> dict[UUID, Actor]:
        if not assignee_ids:
            raise InvalidAssignees("At least one assignee is required")
        if len(set(assignee_ids)) != len(assignee_ids):
            raise InvalidAssignees("Assignee list contains duplicates")

        async with self._session() as session:
            found = await ActorRepository(session).get_many(assignee_ids)

        missing = [str(a) for a in assignee_ids if a not in found]
        if missing:
            raise InvalidAssignees(f"Unknown assignees: {', '.join(missing)}")
        inactive = [str(a) for a in assignee_ids if not found[a].is_active]
        if inactive:
            raise InvalidAssignees(f"Inactive assignees: {', '.join(inactive)}")
        return found

    # =========================================================================
    # Task operations
    # =========================================================================

    async def create_task(
        self,
        creator: Actor,
        title: str,
        description: str = "",
        priority: TaskPriority | str = TaskPriority.MEDIUM,
        start_date: Optional[datetime] = None,
        deadline: Optional[datetime] = None,
        department_id: Optional[UUID] = None,
        assignee_ids: Optional[list[UUID]] = None,
        force_group: bool = False,
    ) -> Task:
        """Create a task, optionally assigning it in the same step."""
        if not title or not title.strip():
            raise ValidationError("Task title is required")
        try:
            priority = TaskPriority(priority)
        except ValueError as e:
            raise ValidationError(f"Invalid priority: {priority!r}") from e
        if assignee_ids:
            await self._resolve_assignees(assignee_ids)

        now = self.clock()
        start = ensure_utc(start_date) or now
        deadline = ensure_utc(deadline)
        if deadline is not None and deadline < start:
            raise ValidationError("Deadline must not be before the start date")

        task = Task(
            task_id=uuid4(),
            title=title.strip(),
            description=description,
            priority=priority,
            department_id=department_id or creator.department_id,
            start_date=start,
            deadline=deadline,
            created_by=creator.id,
            force_group=force_group,
            created_at=now,
            updated_at=now,
        )
        events = [
            build_event(task, EventAction.TASK_CREATED, creator.id, now, f"Task created by {creator.name}")
        ]
        if assignee_ids:
            events.append(self._apply_assignment(task, assignee_ids, creator, now))

        async with self._session() as session:
            created = await TaskRepository(session).create(task)
            history = HistoryRepository(session)
            for event in events:
                await history.append(event)
            await session.commit()

        metrics.inc_counter("task.created")
        logger.info(f"Task {created.task_id} created by {creator.id}")
        await self._dispatch(created, events)
        return created

    def _apply_assignment(
        self,
        task: Task,
        assignee_ids: list[UUID],
        actor: Actor,
        now: datetime,
    ) -> DomainEvent:
        """Replace the assignee set, keeping the records of retained assignees."""
        old_ids = task.assignee_ids
        kept = {a.assignee_id: a for a in task.assignments}
        task.assignments = [
            kept.get(assignee_id) or Assignment(assignee_id=assignee_id, assigned_at=now)
            for assignee_id in assignee_ids
        ]
        task.refresh_group_flag()
        if task.status is TaskStatus.CREATED:
            task.status = TaskStatus.ASSIGNED
        task.updated_at = now

        added = [a for a in assignee_ids if a not in kept]
        return build_event(
            task,
            EventAction.TASK_ASSIGNED,
            actor.id,
            now,
            f"Task assigned to {len(assignee_ids)} assignee(s) by {actor.name}",
            transition=Transition(
                "assignees", [str(a) for a in old_ids], [str(a) for a in assignee_ids]
            ),
            metadata={"new_assignees": added},
        )

    async def assign(self, task_id: UUID, assignee_ids: list[UUID], actor: Actor) -> Task:
        """Set the task's assignees."""
        await self._resolve_assignees(assignee_ids)

        def mutate(task: Task) -> list[DomainEvent]:
            _require_manager(task, actor)
            _require_open(task)
            now = self.clock()
            events = [self._apply_assignment(task, assignee_ids, actor, now)]
            events.extend(
                stage_events(task, aggregator.reconcile(task, now), actor.id, now, "reassignment")
            )
            return events

        task, _ = await self._mutate(task_id, mutate)
        return task

    async def report_stage(
        self,
        task_id: UUID,
        new_stage: TaskStage | str,
        actor: Actor,
    ) -> Task:
        """Report progress.

        On a group task an assignee moves their own assignment and the parent
        is re-derived. On a single-assignee task the assignee (or the creator)
        moves the task itself. Reaching done never changes status.
        """
        stage = state_machine.coerce_stage(new_stage)

        def mutate(task: Task) -> list[DomainEvent]:
            if task.status is TaskStatus.APPROVED:
                raise IllegalTransition(task.stage.value, stage.value, "task is already approved")

            is_assignee = task.is_assignee(actor.id)
            if not is_assignee and not _can_manage(task, actor):
                raise NotAuthorized("Only assignees, the creator or escalated roles may report progress")

            if task.is_group_task:
                if not is_assignee:
                    raise IllegalTransition(
                        task.stage.value, stage.value, "group task stage follows its assignees"
                    )
                return self._report_individual(task, stage, actor)
            return self._report_whole_task(task, stage, actor)

        task, _ = await self._mutate(task_id, mutate)
        return task

    def _report_individual(self, task: Task, stage: TaskStage, actor: Actor) -> list[DomainEvent]:
        now = self.clock()
        assignment = task.find_assignment(actor.id)
        change = state_machine.advance_assignment_stage(assignment, stage, now)
        task.updated_at = now

        events = [
            build_event(
                task,
                EventAction.STAGE_CHANGED,
                actor.id,
                now,
                f"{actor.name} moved their work from {change.old.value} to {change.new.value}",
                transition=change,
                assignee_id=actor.id,
            )
        ]
        transitions: list[Transition] = []
        if task.status in _STARTABLE or task.status is TaskStatus.REJECTED:
            transitions.append(
                state_machine.set_status(task, TaskStatus.IN_PROGRESS, actor.id, now)
            )
        transitions.extend(aggregator.reconcile(task, now))
        events.extend(stage_events(task, transitions, actor.id, now, "group progress"))

        if stage is TaskStage.DONE:
            events.extend(self._auto_issue_links(task, actor, now, assignee_scope=actor.id))
        return events

    def _report_whole_task(self, task: Task, stage: TaskStage, actor: Actor) -> list[DomainEvent]:
        now = self.clock()
        transitions: list[Transition] = []

        if task.status is TaskStatus.REJECTED:
            # Revising rejected work: back to in_progress, which resets the stage to pending
            transitions.append(
                state_machine.set_status(task, TaskStatus.IN_PROGRESS, actor.id, now)
            )

        lone = task.assignments[0] if task.assignments else None
        task_moves = task.stage is not stage or stage is TaskStage.DONE
        lone_moves = lone is not None and (
            lone.individual_stage is not stage or stage is TaskStage.DONE
        )
        if not (task_moves or lone_moves or transitions):
            raise IllegalTransition(
                task.stage.value, stage.value, "cannot move to an earlier or equal stage"
            )

        if task_moves:
            transitions.append(state_machine.advance_stage(task, stage, now))
        if lone_moves:
            state_machine.advance_assignment_stage(lone, stage, now)
        if task.status in _STARTABLE:
            transitions.append(
                state_machine.set_status(task, TaskStatus.IN_PROGRESS, actor.id, now)
            )

        events = stage_events(task, transitions, actor.id, now, f"reported by {actor.name}")
        if stage is TaskStage.DONE:
            events.extend(self._auto_issue_links(task, actor, now))
        return events

    def _auto_issue_links(
        self,
        task: Task,
        actor: Actor,
        now: datetime,
        assignee_scope: Optional[UUID] = None,
    ) -> list[DomainEvent]:
        """Offer the creator approve/reject links for freshly completed work."""
        if not settings.auto_issue_approval_links or actor.id == task.created_by:
            return []
        if assignee_scope is None and task.is_assignee(task.created_by):
            return []
        if assignee_scope == task.created_by:
            return []
        links = self.tokens.issue_pair(task, task.created_by, assignee_scope=assignee_scope)
        return [self._links_event(task, links, task.created_by, actor.id, now)]

    def _links_event(
        self,
        task: Task,
        links: ApprovalLinks,
        approver_id: UUID,
        actor_id: Optional[UUID],
        now: datetime,
    ) -> DomainEvent:
        target = f"work of assignee {links.assignee_scope}" if links.assignee_scope else "task"
        return build_event(
            task,
            EventAction.APPROVAL_LINKS_ISSUED,
            actor_id,
            now,
            f"Approval links issued to {approver_id} for {target}",
            assignee_id=links.assignee_scope,
            metadata={
                "approver_id": approver_id,
                "links": links.urls(settings.public_base_url),
                "expires_at": links.expires_at,
            },
        )

    async def decide_approval(
        self,
        task_id: UUID,
        decision: Decision | str,
        actor: Actor,
        assignee_scope: Optional[UUID] = None,
        reason: Optional[str] = None,
    ) -> Task:
        """Approve or reject as an authenticated actor."""
        try:
            decision = Decision(decision)
        except ValueError as e:
            raise ValidationError(f"Invalid decision: {decision!r}") from e

        def mutate(task: Task) -> list[DomainEvent]:
            return self.workflow.apply(task, decision, actor, assignee_scope, reason)

        task, _ = await self._mutate(task_id, mutate)
        metrics.inc_counter("approval.decision", outcome=decision.outcome.value, via="session")
        return task

    async def issue_approval_links(
        self,
        task_id: UUID,
        approver_id: UUID,
        assignee_scope: Optional[UUID] = None,
        ttl_seconds: Optional[int] = None,
        requested_by: Optional[Actor] = None,
    ) -> ApprovalLinks:
        """Issue an approve/reject token pair for `approver_id`."""
        approver = await self.get_actor(approver_id)
        issued: list[ApprovalLinks] = []

        def mutate(task: Task) -> list[DomainEvent]:
            _require_open(task)
            if requested_by is not None:
                _require_manager(task, requested_by)
            if assignee_scope is not None and task.find_assignment(assignee_scope) is None:
                raise AssignmentNotFound(str(task_id), str(assignee_scope))
            authorize_decision(task, approver, assignee_scope)

            now = self.clock()
            links = self.tokens.issue_pair(
                task, approver.id, ttl_seconds=ttl_seconds, assignee_scope=assignee_scope
            )
            task.updated_at = now
            issued.append(links)
            return [
                self._links_event(
                    task, links, approver.id, requested_by.id if requested_by else None, now
                )
            ]

        await self._mutate(task_id, mutate)
        metrics.inc_counter("token.issued", amount=2)
        return issued[-1]

    async def redeem_approval_link(
        self,
        token: str,
        flow: Optional[ApprovalFlow] = None,
    ) -> RedeemedLink:
        """Apply the decision a capability token carries, exactly once.

        Verification happens before any state is touched; the used flag and
        the decision are then written in one serialized update.
        """
        try:
            claims = self.tokens.verify(token, flow)
            approver = await self.get_actor(claims.actor_id)

            def mutate(task: Task) -> list[DomainEvent]:
                if task.task_id != claims.task_id:
                    raise TaskNotFound(str(claims.task_id))
                self.tokens.consume(task, token, claims)
                return self.workflow.apply(
                    task,
                    claims.action,
                    approver,
                    assignee_scope=claims.assignee_scope,
                    via_token=True,
                )

            task, _ = await self._mutate(claims.task_id, mutate)
        except TokenError as e:
            metrics.inc_counter("token.redemption", outcome=e.code)
            raise

        metrics.inc_counter("token.redemption", outcome="applied")
        logger.info(f"Approval link {claims.token_id} redeemed for task {task.task_id}")
        return RedeemedLink(task=task, claims=claims)

    async def update_status(
        self,
        task_id: UUID,
        status: TaskStatus | str,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> Task:
        """Set a non-decision status. Approval and rejection go through decide_approval."""
        requested = state_machine.coerce_status(status)
        if requested in TaskStatus.decided_states():
            raise IllegalTransition(
                "*", requested.value, "approve or reject through the approval workflow"
            )

        def mutate(task: Task) -> list[DomainEvent]:
            _require_manager(task, actor)
            _require_open(task)
            now = self.clock()
            transitions = [state_machine.set_status(task, requested, actor.id, now, reason)]
            transitions.extend(aggregator.reconcile(task, now))
            cause = f"set by {actor.name}" + (f": {reason}" if reason else "")
            return stage_events(task, transitions, actor.id, now, cause)

        task, _ = await self._mutate(task_id, mutate)
        return task

    async def add_remark(
        self,
        task_id: UUID,
        text: str,
        actor: Actor,
        category: Optional[RemarkCategory | str] = None,
    ) -> Task:
        if not text or not text.strip():
            raise ValidationError("Remark text is required")
        if category is not None:
            try:
                category = RemarkCategory(category)
            except ValueError as e:
                raise ValidationError(f"Invalid remark category: {category!r}") from e

        def mutate(task: Task) -> list[DomainEvent]:
            is_assignee = task.is_assignee(actor.id)
            if not is_assignee and not _can_manage(task, actor):
                raise NotAuthorized("Only the creator, assignees or escalated roles may add remarks")

            now = self.clock()
            if category is not None:
                kind = category
            elif actor.id == task.created_by:
                kind = RemarkCategory.CREATOR
            elif is_assignee:
                kind = RemarkCategory.ASSIGNEE
            else:
                kind = RemarkCategory.GENERAL

            task.remarks.append(
                Remark(text=text.strip(), author_id=actor.id, category=kind, created_at=now)
            )
            task.updated_at = now
            return [
                build_event(
                    task,
                    EventAction.REMARK_ADDED,
                    actor.id,
                    now,
                    f"{actor.name} added a remark",
                    transition=Transition("remarks", None, text.strip()),
                    metadata={"from_assignee": is_assignee and actor.id != task.created_by},
                )
            ]

        task, _ = await self._mutate(task_id, mutate)
        return task

    async def transfer(
        self,
        task_id: UUID,
        from_assignee: UUID,
        to_assignee: UUID,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> Task:
        """Hand one assignee's work to someone else."""
        if from_assignee == to_assignee:
            raise InvalidAssignees("Cannot transfer a task to the same assignee")
        await self._resolve_assignees([to_assignee])

        def mutate(task: Task) -> list[DomainEvent]:
            _require_manager(task, actor)
            _require_open(task)
            if task.find_assignment(from_assignee) is None:
                raise AssignmentNotFound(str(task_id), str(from_assignee))
            if task.is_assignee(to_assignee):
                raise InvalidAssignees(f"{to_assignee} is already assigned to this task")

            now = self.clock()
            task.assignments = [
                Assignment(assignee_id=to_assignee, assigned_at=now)
                if a.assignee_id == from_assignee
                else a
                for a in task.assignments
            ]
            task.transfer_history.append(
                TransferRecord(
                    from_assignee=from_assignee,
                    to_assignee=to_assignee,
                    reason=reason,
                    transferred_at=now,
                    approved_by=actor.id,
                )
            )
            task.refresh_group_flag()

            transitions = [state_machine.set_status(task, TaskStatus.TRANSFERRED, actor.id, now)]
            transitions.extend(aggregator.reconcile(task, now))

            events = [
                build_event(
                    task,
                    EventAction.TASK_TRANSFERRED,
                    actor.id,
                    now,
                    f"Transferred from {from_assignee} to {to_assignee}"
                    + (f" (Reason: {reason})" if reason else ""),
                    transition=Transition("assignee", from_assignee, to_assignee),
                    assignee_id=to_assignee,
                )
            ]
            events.extend(stage_events(task, transitions, actor.id, now, "transfer", ("stage",)))
            return events

        task, _ = await self._mutate(task_id, mutate)
        return task

    # =========================================================================
    # Reminders
    # =========================================================================

    async def find_reminder_candidates(self, now: datetime, limit: int) -> list[Task]:
        async with self._session() as session:
            return await TaskRepository(session).find_stale_approvals(
                completed_before=now - timedelta(seconds=settings.reminder_threshold_seconds),
                reminded_before=now - timedelta(seconds=settings.reminder_repeat_seconds),
                limit=limit,
            )

    async def record_reminder(self, task_id: UUID) -> Optional[DomainEvent]:
        """Emit an approval reminder and stamp the task, if it is still due."""
        sent: list[DomainEvent] = []

        def mutate(task: Task) -> list[DomainEvent]:
            sent.clear()
            now = self.clock()
            if not is_due_for_reminder(
                task, now, settings.reminder_threshold_seconds, settings.reminder_repeat_seconds
            ):
                return []
            old = task.last_reminder_sent
            task.last_reminder_sent = now
            event = build_event(
                task,
                EventAction.APPROVAL_REMINDER,
                None,
                now,
                f"Task '{task.title}' has been awaiting approval since {task.completed_at.isoformat()}",
                transition=Transition("last_reminder_sent", old, now),
            )
            sent.append(event)
            return [event]

        await self._mutate(task_id, mutate)
        return sent[0] if sent else None

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_task(self, task_id: UUID) -> Task:
        async with self._session() as session:
            task = await TaskRepository(session).get(task_id)
        if task is None:
            raise TaskNotFound(str(task_id))
        return task

    async def list_tasks(
        self,
        created_by: Optional[UUID] = None,
        status: Optional[TaskStatus] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> tuple[list[Task], Optional[str]]:
        limit = min(limit or settings.default_list_limit, settings.max_list_limit)
        async with self._session() as session:
            return await TaskRepository(session).list(
                created_by=created_by, status=status, limit=limit, cursor=cursor
            )

    async def list_history(self, task_id: UUID) -> list[DomainEvent]:
        async with self._session() as session:
            if await TaskRepository(session).get(task_id) is None:
                raise TaskNotFound(str(task_id))
            return await HistoryRepository(session).list(task_id)

    async def list_notifications(
        self,
        recipient_id: UUID,
        unread_only: bool = False,
        limit: Optional[int] = None,
    ) -> list[Notification]:
        limit = min(limit or settings.default_list_limit, settings.max_list_limit)
        async with self._session() as session:
            return await NotificationRepository(session).list(
                recipient_id, unread_only=unread_only, limit=limit
            )

    async def mark_notification_read(self, notification_id: UUID, recipient_id: UUID) -> bool:
        async with self._session() as session:
            updated = await NotificationRepository(session).mark_read(
                notification_id, recipient_id, self.clock()
            )
            await session.commit()
        return updated
