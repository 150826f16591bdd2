"""Email-link approval pages.

These endpoints are opened from an email client by a person, not called by
an API client, so every outcome is a small HTML page rather than JSON. The
token itself is the credential; no API key or actor header is required.
"""

import logging
from html import escape

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from taskgate.api.deps import get_engine
from taskgate.engine.core import RedeemedLink, TaskGateEngine
from taskgate.engine.errors import (
    ActorNotFound,
    AlreadyFinalized,
    AssignmentNotFound,
    NotAuthorized,
    TaskGateError,
    TaskNotFound,
    TokenAlreadyUsed,
    TokenExpired,
)
from taskgate.models import ApprovalFlow, Decision

logger = logging.getLogger("taskgate.api.email")

router = APIRouter(prefix="/email-approval", tags=["email-approval"])

_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title>
<style>
body {{ font-family: Arial, sans-serif; background: #f5f5f5; margin: 0; padding: 40px 16px; }}
.card {{ max-width: 560px; margin: 0 auto; background: #fff; border-radius: 8px;
        padding: 32px; border-top: 6px solid {color}; }}
h1 {{ font-size: 22px; margin-top: 0; color: {color}; }}
p {{ color: #333; line-height: 1.5; }}
</style></head>
<body><div class="card"><h1>{title}</h1>{body}</div></body>
</html>"""

_GREEN = "#2e7d32"
_RED = "#c62828"
_AMBER = "#ef6c00"
_GREY = "#546e7a"


def render_page(title: str, paragraphs: list[str], color: str, status_code: int = 200) -> HTMLResponse:
    body = "".join(f"<p>{escape(p)}</p>" for p in paragraphs)
    return HTMLResponse(
        _PAGE.format(title=escape(title), body=body, color=color),
        status_code=status_code,
    )


def success_page(result: RedeemedLink) -> HTMLResponse:
    task = result.task
    approved = result.claims.action is Decision.APPROVE
    if result.claims.assignee_scope is not None:
        subject = f"The assignee's work on \"{task.title}\""
    else:
        subject = f"The task \"{task.title}\""
    verb = "approved" if approved else "rejected"
    paragraphs = [f"{subject} has been {verb}."]
    if not approved:
        paragraphs.append("The work has been returned to the assignee for revision.")
    paragraphs.append(f"Current task status: {task.status.value}.")
    return render_page(
        "Task approved" if approved else "Task rejected",
        paragraphs,
        _GREEN if approved else _RED,
    )


def error_page(error: TaskGateError) -> HTMLResponse:
    if isinstance(error, (TokenAlreadyUsed, AlreadyFinalized)):
        return render_page(
            "Already processed",
            ["This approval link has already been used, or the task has already been decided."],
            _GREY,
            409,
        )
    if isinstance(error, TokenExpired):
        return render_page(
            "Link expired",
            ["This approval link has expired. Please sign in to review the task."],
            _AMBER,
            410,
        )
    if isinstance(error, NotAuthorized):
        return render_page(
            "Not authorized",
            ["You are not allowed to approve or reject this task."],
            _RED,
            403,
        )
    if isinstance(error, (TaskNotFound, ActorNotFound, AssignmentNotFound)):
        return render_page(
            "Task not found",
            ["The task or assignment behind this link no longer exists."],
            _GREY,
            404,
        )
    if error.retryable:
        return render_page(
            "Temporarily unavailable",
            ["We could not process this link right now. Please try again in a moment."],
            _AMBER,
            503,
        )
    return render_page(
        "Invalid link",
        ["This approval link is not valid. Please sign in to review the task."],
        _RED,
        400,
    )


async def _redeem(token: str, flow: ApprovalFlow, engine: TaskGateEngine) -> HTMLResponse:
    try:
        result = await engine.redeem_approval_link(token, flow)
    except TaskGateError as e:
        logger.info(f"Approval link refused ({e.code}): {e.message}")
        return error_page(e)
    return success_page(result)


@router.get("/individual/{token}", response_class=HTMLResponse)
async def redeem_assignee_link(token: str, engine: TaskGateEngine = Depends(get_engine)):
    """Approve or reject one assignee's work from an email link."""
    return await _redeem(token, ApprovalFlow.ASSIGNEE, engine)


@router.get("/{token}", response_class=HTMLResponse)
async def redeem_task_link(token: str, engine: TaskGateEngine = Depends(get_engine)):
    """Approve or reject a whole task from an email link."""
    return await _redeem(token, ApprovalFlow.TASK, engine)
