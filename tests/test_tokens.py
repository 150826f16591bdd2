"""
Capability token tests.
"""

from uuid import uuid4

import pytest
from jose import jwt

from taskgate.engine.errors import (
    TokenAlreadyUsed,
    TokenExpired,
    TokenInvalid,
    TokenScopeMismatch,
)
from taskgate.engine.tokens import CapabilityTokenService, token_digest
from taskgate.models import ApprovalFlow, Decision

from factories import FrozenClock, build_task


@pytest.fixture
def service(clock):
    return CapabilityTokenService(secret="unit-test-key", default_ttl_seconds=3600, clock=clock)


def test_issue_records_digest_not_raw_token(service, clock):
    approver = uuid4()
    task = build_task(uuid4(), [uuid4()])

    token = service.issue(task, approver, Decision.APPROVE)

    record = task.tokens[0]
    assert record.token_hash == token_digest(token)
    assert token not in record.model_dump_json()
    assert record.used is False
    assert record.actor_id == approver
    assert record.flow is ApprovalFlow.TASK
    assert (record.expires_at - record.issued_at).total_seconds() == 3600


def test_pair_offers_both_actions(service):
    task = build_task(uuid4(), [uuid4(), uuid4()])
    scope = task.assignments[1].assignee_id

    links = service.issue_pair(task, task.created_by, assignee_scope=scope)

    assert [r.action for r in task.tokens] == [Decision.APPROVE, Decision.REJECT]
    assert all(r.assignee_scope == scope for r in task.tokens)
    urls = links.urls("https://tasks.example.com/")
    assert urls["approve"] == f"https://tasks.example.com/email-approval/individual/{links.approve_token}"
    assert urls["reject"].endswith(links.reject_token)


def test_verify_round_trips_claims(service):
    task = build_task(uuid4(), [uuid4()])
    approver = uuid4()
    token = service.issue(task, approver, Decision.REJECT)

    claims = service.verify(token, ApprovalFlow.TASK)

    assert claims.task_id == task.task_id
    assert claims.actor_id == approver
    assert claims.action is Decision.REJECT
    assert claims.assignee_scope is None
    assert claims.token_id == task.tokens[0].token_id


def test_tampered_or_foreign_tokens_are_invalid(service):
    task = build_task(uuid4(), [uuid4()])
    token = service.issue(task, uuid4(), Decision.APPROVE)

    # Signature of one token over the claims of another
    header, _, signature = token.split(".")
    other_claims = service.issue(build_task(uuid4(), [uuid4()]), uuid4(), Decision.APPROVE).split(".")[1]
    with pytest.raises(TokenInvalid):
        service.verify(".".join([header, other_claims, signature]))

    other = CapabilityTokenService(secret="another-key", clock=service.clock)
    with pytest.raises(TokenInvalid):
        other.verify(token)

    wrong_type = jwt.encode({"typ": "session", "jti": str(uuid4())}, "unit-test-key", algorithm="HS256")
    with pytest.raises(TokenInvalid):
        service.verify(wrong_type)


def test_expiry_uses_injected_clock(service, clock):
    task = build_task(uuid4(), [uuid4()])
    token = service.issue(task, uuid4(), Decision.APPROVE, ttl_seconds=60)

    clock.advance(seconds=59)
    service.verify(token)

    clock.advance(seconds=1)
    with pytest.raises(TokenExpired):
        service.verify(token)


def test_zero_ttl_is_expired_immediately():
    clock = FrozenClock()
    service = CapabilityTokenService(secret="unit-test-key", clock=clock)
    task = build_task(uuid4(), [uuid4()])

    token = service.issue(task, uuid4(), Decision.APPROVE, ttl_seconds=0)

    with pytest.raises(TokenExpired):
        service.verify(token)


def test_flow_scoping(service):
    task = build_task(uuid4(), [uuid4(), uuid4()])
    task_token = service.issue(task, task.created_by, Decision.APPROVE)
    scoped_token = service.issue(
        task, task.created_by, Decision.APPROVE, assignee_scope=task.assignments[0].assignee_id
    )

    with pytest.raises(TokenScopeMismatch):
        service.verify(task_token, ApprovalFlow.ASSIGNEE)
    with pytest.raises(TokenScopeMismatch):
        service.verify(scoped_token, ApprovalFlow.TASK)

    assert service.verify(scoped_token, ApprovalFlow.ASSIGNEE).flow is ApprovalFlow.ASSIGNEE


def test_consume_is_single_use(service, clock):
    task = build_task(uuid4(), [uuid4()])
    token = service.issue(task, uuid4(), Decision.APPROVE)
    claims = service.verify(token)

    record = service.consume(task, token, claims)
    assert record.used is True
    assert record.used_at == clock()

    with pytest.raises(TokenAlreadyUsed):
        service.consume(task, token, claims)


def test_consume_rejects_tokens_issued_for_another_task(service):
    first = build_task(uuid4(), [uuid4()])
    second = build_task(uuid4(), [uuid4()])
    token = service.issue(first, uuid4(), Decision.APPROVE)

    with pytest.raises(TokenInvalid):
        service.consume(second, token, service.verify(token))
