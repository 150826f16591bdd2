"""REST API router."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from taskgate import __version__
from taskgate.api.deps import (
    get_current_actor,
    get_engine,
    get_sweeper,
    to_http_error,
    verify_api_key,
)
from taskgate.api.schemas import (
    ApprovalLinksResponse,
    AssignRequest,
    CreateTaskRequest,
    DecisionRequest,
    HealthResponse,
    HistoryResponse,
    IssueLinksRequest,
    ListTasksResponse,
    MarkReadResponse,
    NotificationListResponse,
    ReminderSweepResponse,
    RemarkRequest,
    ReportStageRequest,
    TaskResponse,
    TransferRequest,
    UpdateStatusRequest,
)
from taskgate.config import settings
from taskgate.engine.core import TaskGateEngine
from taskgate.engine.errors import TaskGateError
from taskgate.models import Actor, ActorRole, TaskStatus
from taskgate.tasks.sweep import ReminderSweeper

router = APIRouter(prefix="/v1", dependencies=[Depends(verify_api_key)])


# ============================================================================
# Health
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


# ============================================================================
# Tasks
# ============================================================================


@router.post("/tasks", response_model=TaskResponse, status_code=201)
async def create_task(
    request: CreateTaskRequest,
    actor: Actor = Depends(get_current_actor),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Create a task, optionally assigning it."""
    try:
        task = await engine.create_task(
            creator=actor,
            title=request.title,
            description=request.description,
            priority=request.priority,
            start_date=request.start_date,
            deadline=request.deadline,
            department_id=request.department_id,
            assignee_ids=request.assignee_ids or None,
            force_group=request.force_group,
        )
    except TaskGateError as e:
        raise to_http_error(e)
    return TaskResponse.from_task(task)


@router.get("/tasks", response_model=ListTasksResponse)
async def list_tasks(
    status: Optional[str] = Query(None),
    created_by: Optional[UUID] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=200),
    cursor: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    engine: TaskGateEngine = Depends(get_engine),
):
    """List tasks with optional filtering."""
    try:
        status_filter = TaskStatus(status) if status else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")

    tasks, next_cursor = await engine.list_tasks(
        created_by=created_by,
        status=status_filter,
        limit=limit,
        cursor=cursor,
    )
    return ListTasksResponse(
        tasks=[TaskResponse.from_task(t).task for t in tasks],
        next_cursor=next_cursor,
    )


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Get a task by ID."""
    try:
        return TaskResponse.from_task(await engine.get_task(task_id))
    except TaskGateError as e:
        raise to_http_error(e)


@router.post("/tasks/{task_id}/assign", response_model=TaskResponse)
async def assign_task(
    task_id: UUID,
    request: AssignRequest,
    actor: Actor = Depends(get_current_actor),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Set the task's assignees."""
    try:
        task = await engine.assign(task_id, request.assignee_ids, actor)
    except TaskGateError as e:
        raise to_http_error(e)
    return TaskResponse.from_task(task)


@router.post("/tasks/{task_id}/stage", response_model=TaskResponse)
async def report_stage(
    task_id: UUID,
    request: ReportStageRequest,
    actor: Actor = Depends(get_current_actor),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Report progress on a task (or on the caller's own assignment)."""
    try:
        task = await engine.report_stage(task_id, request.stage, actor)
    except TaskGateError as e:
        raise to_http_error(e)
    return TaskResponse.from_task(task)


@router.post("/tasks/{task_id}/decision", response_model=TaskResponse)
async def decide_approval(
    task_id: UUID,
    request: DecisionRequest,
    actor: Actor = Depends(get_current_actor),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Approve or reject completed work."""
    try:
        task = await engine.decide_approval(
            task_id,
            request.decision,
            actor,
            assignee_scope=request.assignee_id,
            reason=request.reason,
        )
    except TaskGateError as e:
        raise to_http_error(e)
    return TaskResponse.from_task(task)


@router.post("/tasks/{task_id}/approval-links", response_model=ApprovalLinksResponse)
async def issue_approval_links(
    task_id: UUID,
    request: IssueLinksRequest,
    actor: Actor = Depends(get_current_actor),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Issue an approve/reject link pair for an approver."""
    try:
        links = await engine.issue_approval_links(
            task_id,
            request.approver_id,
            assignee_scope=request.assignee_id,
            ttl_seconds=request.ttl_seconds,
            requested_by=actor,
        )
    except TaskGateError as e:
        raise to_http_error(e)
    return ApprovalLinksResponse.from_links(links, settings.public_base_url)


@router.post("/tasks/{task_id}/status", response_model=TaskResponse)
async def update_status(
    task_id: UUID,
    request: UpdateStatusRequest,
    actor: Actor = Depends(get_current_actor),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Set a non-decision status."""
    try:
        task = await engine.update_status(task_id, request.status, actor, request.reason)
    except TaskGateError as e:
        raise to_http_error(e)
    return TaskResponse.from_task(task)


@router.post("/tasks/{task_id}/remarks", response_model=TaskResponse)
async def add_remark(
    task_id: UUID,
    request: RemarkRequest,
    actor: Actor = Depends(get_current_actor),
    engine: TaskGateEngine = Depends(get_engine),
):
    try:
        task = await engine.add_remark(task_id, request.text, actor, request.category)
    except TaskGateError as e:
        raise to_http_error(e)
    return TaskResponse.from_task(task)


@router.post("/tasks/{task_id}/transfer", response_model=TaskResponse)
async def transfer_task(
    task_id: UUID,
    request: TransferRequest,
    actor: Actor = Depends(get_current_actor),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Hand one assignee's work to someone else."""
    try:
        task = await engine.transfer(
            task_id,
            request.from_assignee,
            request.to_assignee,
            actor,
            reason=request.reason,
        )
    except TaskGateError as e:
        raise to_http_error(e)
    return TaskResponse.from_task(task)


@router.get("/tasks/{task_id}/history", response_model=HistoryResponse)
async def list_history(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Append-only history of a task."""
    try:
        return HistoryResponse(events=await engine.list_history(task_id))
    except TaskGateError as e:
        raise to_http_error(e)


# ============================================================================
# Notifications
# ============================================================================


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = Query(False),
    limit: Optional[int] = Query(None, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    engine: TaskGateEngine = Depends(get_engine),
):
    """The caller's notifications, newest first."""
    notifications = await engine.list_notifications(actor.id, unread_only=unread_only, limit=limit)
    return NotificationListResponse(notifications=notifications)


@router.post("/notifications/{notification_id}/read", response_model=MarkReadResponse)
async def mark_notification_read(
    notification_id: UUID,
    actor: Actor = Depends(get_current_actor),
    engine: TaskGateEngine = Depends(get_engine),
):
    updated = await engine.mark_notification_read(notification_id, actor.id)
    return MarkReadResponse(notification_id=notification_id, updated=updated)


# ============================================================================
# Reminders
# ============================================================================


@router.post("/reminders/run", response_model=ReminderSweepResponse)
async def run_reminder_sweep(
    actor: Actor = Depends(get_current_actor),
    sweeper: ReminderSweeper = Depends(get_sweeper),
):
    """Run one reminder sweep now."""
    if actor.role not in (ActorRole.ADMIN, ActorRole.SUPER_ADMIN):
        raise HTTPException(status_code=403, detail="Only administrators may trigger a sweep")
    try:
        reminders = await sweeper.run_once()
    except TaskGateError as e:
        raise to_http_error(e)
    return ReminderSweepResponse(
        reminders_sent=len(reminders),
        task_ids=[event.task_id for event in reminders],
    )
