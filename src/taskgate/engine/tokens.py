"""Capability tokens for the email-link approve/reject flow.

A token is a signed JWT naming one task, one approver, one action and,
optionally, one assignee. The signature proves authenticity; the `used` flag
on the task's audit entry proves single use. The two are never conflated:
a perfectly valid signature is still refused once its audit entry is used.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from jose import JWTError, jwt

from taskgate.config import settings
from taskgate.engine.errors import (
    TokenAlreadyUsed,
    TokenExpired,
    TokenInvalid,
    TokenScopeMismatch,
)
from taskgate.models import ApprovalFlow, Decision, Task, TokenRecord
from taskgate.utils.time import Clock, utc_now

TOKEN_TYPE = "email_approval"


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a capability token."""

    token_id: UUID
    task_id: UUID
    actor_id: UUID
    action: Decision
    assignee_scope: Optional[UUID]
    issued_at: datetime
    expires_at: datetime

    @property
    def flow(self) -> ApprovalFlow:
        return ApprovalFlow.ASSIGNEE if self.assignee_scope else ApprovalFlow.TASK


@dataclass(frozen=True)
class ApprovalLinks:
    """An approve/reject pair offered together in one notification."""

    approve_token: str
    reject_token: str
    expires_at: datetime
    assignee_scope: Optional[UUID] = None

    def urls(self, base_url: str) -> dict[str, str]:
        prefix = "/email-approval/individual" if self.assignee_scope else "/email-approval"
        base = base_url.rstrip("/")
        return {
            "approve": f"{base}{prefix}/{self.approve_token}",
            "reject": f"{base}{prefix}/{self.reject_token}",
        }


def token_digest(token: str) -> str:
    """Digest stored in the audit entry in place of the raw token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class CapabilityTokenService:
    """Issues and verifies task-scoped approve/reject tokens."""

    def __init__(
        self,
        secret: str | None = None,
        algorithm: str | None = None,
        default_ttl_seconds: int | None = None,
        clock: Clock = utc_now,
    ):
        self.secret = secret or settings.approval_token_secret
        self.algorithm = algorithm or settings.approval_token_algorithm
        self.default_ttl_seconds = (
            settings.approval_token_ttl_seconds
            if default_ttl_seconds is None
            else default_ttl_seconds
        )
        self.clock = clock

    def issue(
        self,
        task: Task,
        actor_id: UUID,
        action: Decision,
        ttl_seconds: int | None = None,
        assignee_scope: UUID | None = None,
    ) -> str:
        """Sign a token and append its audit entry (used=False) to the task."""
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        issued_ts = int(self.clock().timestamp())
        expires_ts = issued_ts + ttl
        token_id = uuid4()

        claims = {
            "typ": TOKEN_TYPE,
            "jti": str(token_id),
            "task_id": str(task.task_id),
            "actor_id": str(actor_id),
            "action": action.value,
            "iat": issued_ts,
            "exp": expires_ts,
        }
        if assignee_scope:
            claims["assignee_scope"] = str(assignee_scope)

        token = jwt.encode(claims, self.secret, algorithm=self.algorithm)

        task.tokens.append(
            TokenRecord(
                token_id=token_id,
                token_hash=token_digest(token),
                actor_id=actor_id,
                assignee_scope=assignee_scope,
                action=action,
                issued_at=datetime.fromtimestamp(issued_ts, timezone.utc),
                expires_at=datetime.fromtimestamp(expires_ts, timezone.utc),
            )
        )
        return token

    def issue_pair(
        self,
        task: Task,
        actor_id: UUID,
        ttl_seconds: int | None = None,
        assignee_scope: UUID | None = None,
    ) -> ApprovalLinks:
        """Issue approve and reject tokens together."""
        approve = self.issue(task, actor_id, Decision.APPROVE, ttl_seconds, assignee_scope)
        reject = self.issue(task, actor_id, Decision.REJECT, ttl_seconds, assignee_scope)
        return ApprovalLinks(
            approve_token=approve,
            reject_token=reject,
            expires_at=task.tokens[-1].expires_at,
            assignee_scope=assignee_scope,
        )

    def verify(self, token: str, flow: ApprovalFlow | None = None) -> TokenClaims:
        """Check signature, expiry and (optionally) the flow the caller is on.

        Raises TokenInvalid, TokenExpired or TokenScopeMismatch. Pure: touches
        no task state.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_aud": False},
            )
        except JWTError as exc:
            raise TokenInvalid(f"Invalid approval token: {exc}") from exc

        if payload.get("typ") != TOKEN_TYPE:
            raise TokenInvalid("Invalid token type")

        try:
            scope = payload.get("assignee_scope")
            claims = TokenClaims(
                token_id=UUID(payload["jti"]),
                task_id=UUID(payload["task_id"]),
                actor_id=UUID(payload["actor_id"]),
                action=Decision(payload["action"]),
                assignee_scope=UUID(scope) if scope else None,
                issued_at=datetime.fromtimestamp(int(payload["iat"]), timezone.utc),
                expires_at=datetime.fromtimestamp(int(payload["exp"]), timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenInvalid("Malformed approval token") from exc

        if self.clock() >= claims.expires_at:
            raise TokenExpired()

        if flow is not None and flow is not claims.flow:
            raise TokenScopeMismatch(claims.flow.value, flow.value)

        return claims

    def consume(self, task: Task, token: str, claims: TokenClaims) -> TokenRecord:
        """Mark the token's audit entry used on this (unsaved) task copy.

        Must run inside the same serialized update that applies the token's
        effect, so an aborted update also discards the used flag.
        """
        record = task.find_token(token_digest(token))
        if record is None or record.token_id != claims.token_id:
            raise TokenInvalid("Approval token was not issued for this task")
        if record.used:
            raise TokenAlreadyUsed()
        if record.assignee_scope != claims.assignee_scope or record.action is not claims.action:
            raise TokenInvalid("Approval token does not match its issuance record")

        record.used = True
        record.used_at = self.clock()
        return record

