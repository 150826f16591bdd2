"""API dependencies."""

import logging
import secrets
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request

from taskgate.config import Environment, settings
from taskgate.engine.core import TaskGateEngine
from taskgate.engine.errors import (
    ActorNotFound,
    AlreadyFinalized,
    AssignmentNotFound,
    ConcurrentUpdateError,
    NotAuthorized,
    TaskGateError,
    TaskNotFound,
    TokenExpired,
    TokenError,
    ValidationError,
)
from taskgate.models import Actor
from taskgate.tasks.sweep import ReminderSweeper

logger = logging.getLogger("taskgate.api")


def error_status(error: TaskGateError) -> int:
    """HTTP status for a domain error."""
    if error.retryable:
        return 503
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotAuthorized):
        return 403
    if isinstance(error, (TaskNotFound, ActorNotFound, AssignmentNotFound)):
        return 404
    if isinstance(error, TokenExpired):
        return 410
    if isinstance(error, TokenError):
        return 400
    if isinstance(error, (AlreadyFinalized, ConcurrentUpdateError)):
        return 409
    return 400


def to_http_error(error: TaskGateError) -> HTTPException:
    return HTTPException(
        status_code=error_status(error),
        detail={"code": error.code, "message": error.message},
    )


async def verify_api_key(
    authorization: str | None = Header(None),
    x_api_key: str | None = Header(None, alias="X-API-Key"),
) -> None:
    """
    Verify the shared API key.

    Fails closed: without a configured key every request is rejected unless
    insecure dev mode is explicitly enabled in development.
    """
    if settings.allow_insecure_dev and settings.env == Environment.DEVELOPMENT:
        return

    api_key = None
    if authorization and authorization.startswith("Bearer "):
        api_key = authorization[7:]
    elif x_api_key:
        api_key = x_api_key

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing authorization. Use Authorization: Bearer <key> or X-API-Key header",
        )

    if not settings.api_key:
        logger.error("SECURITY VIOLATION: No API key configured. Set TASKGATE_API_KEY.")
        raise HTTPException(
            status_code=503,
            detail="Server misconfigured: authentication not properly initialized",
        )

    if not secrets.compare_digest(api_key, settings.api_key):
        raise HTTPException(status_code=401, detail="Invalid API key")


def validate_auth_config() -> None:
    """
    Refuse to start with an insecure configuration outside development.

    Raises:
        RuntimeError: If configuration is insecure for the current environment
    """
    if settings.allow_insecure_dev and settings.env != Environment.DEVELOPMENT:
        raise RuntimeError(
            f"SECURITY ERROR: allow_insecure_dev=true is only permitted in development. "
            f"Current environment: {settings.env.value}. "
            f"Set TASKGATE_ALLOW_INSECURE_DEV=false for {settings.env.value}."
        )

    if settings.allow_insecure_dev:
        logger.warning("Running in INSECURE DEV MODE: API authentication is disabled")
    else:
        logger.info(f"Authentication enabled: shared API key for {settings.env.value}")


def get_engine(request: Request) -> TaskGateEngine:
    return request.app.state.engine


def get_sweeper(request: Request) -> ReminderSweeper:
    return request.app.state.sweeper


async def get_current_actor(
    x_actor_id: str | None = Header(None, alias="X-Actor-ID"),
    engine: TaskGateEngine = Depends(get_engine),
) -> Actor:
    """Resolve the acting user from the X-Actor-ID header."""
    if not x_actor_id:
        raise HTTPException(status_code=401, detail="Missing X-Actor-ID header")
    try:
        actor_id = UUID(x_actor_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid actor ID format")

    try:
        actor = await engine.get_actor(actor_id)
    except ActorNotFound:
        raise HTTPException(status_code=401, detail="Unknown actor")
    except TaskGateError as e:
        raise to_http_error(e)

    if not actor.is_active:
        raise HTTPException(status_code=403, detail="Actor account is inactive")
    return actor
