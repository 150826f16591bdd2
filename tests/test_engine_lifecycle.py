"""
Engine lifecycle tests against a real (SQLite) database.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from taskgate.engine.errors import (
    AlreadyFinalized,
    AssignmentNotFound,
    IllegalTransition,
    InvalidAssignees,
    NotAuthorized,
    TaskNotFound,
    TokenAlreadyUsed,
    TokenExpired,
    TokenScopeMismatch,
    ValidationError,
)
from taskgate.models import (
    ApprovalFlow,
    ApprovalState,
    Decision,
    EventAction,
    RemarkCategory,
    TaskStage,
    TaskStatus,
)

from factories import make_actor


async def _single(engine, actors):
    return await engine.create_task(
        actors.creator, "Prepare budget", assignee_ids=[actors.alice.id]
    )


async def _group(engine, actors):
    return await engine.create_task(
        actors.creator, "Office move", assignee_ids=[actors.alice.id, actors.bob.id]
    )


class TestCreateAndAssign:
    @pytest.mark.asyncio
    async def test_create_without_assignees(self, engine, actors, clock):
        task = await engine.create_task(actors.creator, "  Draft memo  ", priority="high")

        assert task.title == "Draft memo"
        assert task.status is TaskStatus.CREATED
        assert task.stage is TaskStage.NOT_STARTED
        assert task.department_id == actors.department
        assert task.start_date == clock()
        assert task.version == 0

        history = await engine.list_history(task.task_id)
        assert [e.action for e in history] == [EventAction.TASK_CREATED]

    @pytest.mark.asyncio
    async def test_create_with_assignees(self, engine, actors):
        task = await _group(engine, actors)

        assert task.status is TaskStatus.ASSIGNED
        assert task.is_group_task is True
        assert task.assignee_ids == [actors.alice.id, actors.bob.id]

    @pytest.mark.asyncio
    async def test_force_group_with_one_assignee(self, engine, actors):
        task = await engine.create_task(
            actors.creator, "Solo group", assignee_ids=[actors.alice.id], force_group=True
        )
        assert task.is_group_task is True

    @pytest.mark.asyncio
    async def test_create_validation(self, engine, actors, clock):
        with pytest.raises(ValidationError):
            await engine.create_task(actors.creator, "   ")
        with pytest.raises(ValidationError):
            await engine.create_task(actors.creator, "x", priority="whenever")
        with pytest.raises(ValidationError):
            await engine.create_task(actors.creator, "x", deadline=clock() - timedelta(days=1))

    @pytest.mark.asyncio
    async def test_naive_dates_are_treated_as_utc(self, engine, actors):
        task = await engine.create_task(
            actors.creator,
            "Mixed clocks",
            start_date=datetime(2026, 1, 1),
            deadline=datetime(2026, 2, 1, tzinfo=timezone.utc),
        )

        assert task.start_date == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert task.start_date.tzinfo is not None
        assert task.deadline == datetime(2026, 2, 1, tzinfo=timezone.utc)

        with pytest.raises(ValidationError):
            await engine.create_task(
                actors.creator,
                "Backwards",
                start_date=datetime(2026, 3, 1),
                deadline=datetime(2026, 2, 1, tzinfo=timezone.utc),
            )

    @pytest.mark.asyncio
    async def test_assignee_validation(self, engine, actors):
        retired = make_actor("Retired", is_active=False)
        await engine.create_actor(retired)

        for bad in ([actors.alice.id, actors.alice.id], [uuid4()], [retired.id]):
            with pytest.raises(InvalidAssignees):
                await engine.create_task(actors.creator, "x", assignee_ids=bad)

        task = await engine.create_task(actors.creator, "y")
        with pytest.raises(InvalidAssignees):
            await engine.assign(task.task_id, [], actors.creator)

    @pytest.mark.asyncio
    async def test_assign_keeps_records_of_retained_assignees(self, engine, actors):
        task = await _group(engine, actors)
        await engine.report_stage(task.task_id, TaskStage.PENDING, actors.alice)

        task = await engine.assign(task.task_id, [actors.alice.id, actors.carol.id], actors.creator)

        assert task.assignee_ids == [actors.alice.id, actors.carol.id]
        assert task.find_assignment(actors.alice.id).individual_stage is TaskStage.PENDING
        assert task.find_assignment(actors.carol.id).individual_stage is TaskStage.NOT_STARTED

    @pytest.mark.asyncio
    async def test_only_managers_assign(self, engine, actors):
        task = await engine.create_task(actors.creator, "x")
        with pytest.raises(NotAuthorized):
            await engine.assign(task.task_id, [actors.bob.id], actors.alice)
        with pytest.raises(NotAuthorized):
            await engine.assign(task.task_id, [actors.bob.id], actors.other_hod)
        await engine.assign(task.task_id, [actors.bob.id], actors.hod)

    @pytest.mark.asyncio
    async def test_unknown_task(self, engine, actors):
        with pytest.raises(TaskNotFound):
            await engine.get_task(uuid4())
        with pytest.raises(TaskNotFound):
            await engine.report_stage(uuid4(), TaskStage.DONE, actors.alice)


class TestScenarios:
    @pytest.mark.asyncio
    async def test_single_assignee_approved_by_link(self, engine, actors):
        task = await _single(engine, actors)
        task = await engine.report_stage(task.task_id, TaskStage.DONE, actors.alice)
        assert task.stage is TaskStage.DONE
        assert task.status is TaskStatus.IN_PROGRESS
        # Completion offered the creator a link pair automatically
        assert len(task.tokens) == 2

        links = await engine.issue_approval_links(task.task_id, actors.creator.id)
        result = await engine.redeem_approval_link(links.approve_token, ApprovalFlow.TASK)

        task = result.task
        assert task.status is TaskStatus.APPROVED
        assert task.stage is TaskStage.DONE
        assert task.approved_at is not None
        assert task.approved_by == actors.creator.id
        used = [r for r in task.tokens if r.used]
        assert len(used) == 1 and used[0].action is Decision.APPROVE

        with pytest.raises(TokenAlreadyUsed):
            await engine.redeem_approval_link(links.approve_token, ApprovalFlow.TASK)

        # The sibling reject link is now moot
        with pytest.raises(AlreadyFinalized):
            await engine.redeem_approval_link(links.reject_token, ApprovalFlow.TASK)
        stored = await engine.get_task(task.task_id)
        assert sum(r.used for r in stored.tokens) == 1

    @pytest.mark.asyncio
    async def test_group_rejection_blocks_closing_then_revision_closes(self, engine, actors):
        creator, alice, bob = actors.creator, actors.alice, actors.bob
        task = await _group(engine, actors)

        await engine.report_stage(task.task_id, TaskStage.DONE, alice)
        await engine.decide_approval(task.task_id, Decision.APPROVE, creator, assignee_scope=alice.id)
        task = await engine.report_stage(task.task_id, TaskStage.DONE, bob)
        assert task.stage is TaskStage.DONE

        task = await engine.decide_approval(
            task.task_id, Decision.REJECT, creator, assignee_scope=bob.id, reason="wrong floor plan"
        )

        assert task.status is TaskStatus.IN_PROGRESS
        assert task.stage is TaskStage.PENDING
        assert task.find_assignment(bob.id).individual_stage is TaskStage.PENDING
        assert task.find_assignment(bob.id).approval is ApprovalState.REJECTED
        assert task.find_assignment(alice.id).approval is ApprovalState.APPROVED

        # Bob revises and is approved; the group closes
        task = await engine.report_stage(task.task_id, TaskStage.DONE, bob)
        assert task.find_assignment(bob.id).approval is ApprovalState.PENDING
        task = await engine.decide_approval(task.task_id, Decision.APPROVE, creator, assignee_scope=bob.id)

        assert task.status is TaskStatus.APPROVED
        assert task.stage is TaskStage.DONE
        assert task.approved_by == creator.id

        actions = [e.action for e in await engine.list_history(task.task_id)]
        assert actions.count(EventAction.INDIVIDUAL_APPROVAL_UPDATED) == 3
        assert actions[-1] is EventAction.TASK_APPROVED

    @pytest.mark.asyncio
    async def test_expired_link_changes_nothing(self, engine, actors, clock):
        task = await _single(engine, actors)
        task = await engine.report_stage(task.task_id, TaskStage.DONE, actors.alice)
        links = await engine.issue_approval_links(task.task_id, actors.creator.id, ttl_seconds=0)
        before = await engine.get_task(task.task_id)

        clock.advance(seconds=1)
        with pytest.raises(TokenExpired):
            await engine.redeem_approval_link(links.approve_token)

        after = await engine.get_task(task.task_id)
        assert after.version == before.version
        assert after.status is TaskStatus.IN_PROGRESS
        assert not any(r.used for r in after.tokens)

    @pytest.mark.asyncio
    async def test_assignee_cannot_approve_own_work(self, engine, actors):
        task = await _group(engine, actors)
        task = await engine.report_stage(task.task_id, TaskStage.DONE, actors.alice)

        with pytest.raises(NotAuthorized):
            await engine.decide_approval(
                task.task_id, Decision.APPROVE, actors.alice, assignee_scope=actors.alice.id
            )

        after = await engine.get_task(task.task_id)
        assert after.version == task.version
        assert after.find_assignment(actors.alice.id).approval is ApprovalState.PENDING


class TestProgress:
    @pytest.mark.asyncio
    async def test_first_progress_starts_the_task(self, engine, actors):
        task = await _single(engine, actors)
        task = await engine.report_stage(task.task_id, "pending", actors.alice)

        assert task.status is TaskStatus.IN_PROGRESS
        assert task.stage is TaskStage.PENDING
        assert task.assignments[0].individual_stage is TaskStage.PENDING

    @pytest.mark.asyncio
    async def test_stage_cannot_move_backwards(self, engine, actors):
        task = await _single(engine, actors)
        await engine.report_stage(task.task_id, TaskStage.PENDING, actors.alice)

        with pytest.raises(IllegalTransition):
            await engine.report_stage(task.task_id, TaskStage.NOT_STARTED, actors.alice)
        with pytest.raises(ValidationError):
            await engine.report_stage(task.task_id, "finished", actors.alice)

    @pytest.mark.asyncio
    async def test_outsiders_cannot_report(self, engine, actors):
        task = await _single(engine, actors)
        with pytest.raises(NotAuthorized):
            await engine.report_stage(task.task_id, TaskStage.DONE, actors.carol)

    @pytest.mark.asyncio
    async def test_group_stage_follows_assignees(self, engine, actors):
        task = await _group(engine, actors)
        with pytest.raises(IllegalTransition):
            await engine.report_stage(task.task_id, TaskStage.DONE, actors.creator)

        task = await engine.report_stage(task.task_id, TaskStage.DONE, actors.alice)
        assert task.stage is TaskStage.PENDING
        assert task.status is TaskStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_rejected_work_can_be_revised(self, engine, actors):
        task = await _single(engine, actors)
        await engine.report_stage(task.task_id, TaskStage.DONE, actors.alice)
        task = await engine.decide_approval(task.task_id, "reject", actors.creator, reason="incomplete")
        assert task.status is TaskStatus.REJECTED
        assert task.stage is TaskStage.PENDING

        task = await engine.report_stage(task.task_id, TaskStage.DONE, actors.alice)
        assert task.status is TaskStatus.IN_PROGRESS
        assert task.stage is TaskStage.DONE
        assert task.assignments[0].approval is ApprovalState.PENDING

        task = await engine.decide_approval(task.task_id, "approve", actors.creator)
        assert task.status is TaskStatus.APPROVED
        assert task.approval_status is ApprovalState.APPROVED

    @pytest.mark.asyncio
    async def test_approved_task_is_frozen(self, engine, actors):
        task = await _single(engine, actors)
        await engine.report_stage(task.task_id, TaskStage.DONE, actors.alice)
        await engine.decide_approval(task.task_id, Decision.APPROVE, actors.hod)

        with pytest.raises(IllegalTransition):
            await engine.report_stage(task.task_id, TaskStage.DONE, actors.alice)
        with pytest.raises(AlreadyFinalized):
            await engine.decide_approval(task.task_id, Decision.REJECT, actors.creator)
        with pytest.raises(AlreadyFinalized):
            await engine.update_status(task.task_id, TaskStatus.IN_PROGRESS, actors.creator)
        with pytest.raises(AlreadyFinalized):
            await engine.issue_approval_links(task.task_id, actors.creator.id)

    @pytest.mark.asyncio
    async def test_no_links_when_creator_completes_their_own_work(self, engine, actors):
        task = await engine.create_task(actors.creator, "Self", assignee_ids=[actors.creator.id])
        task = await engine.report_stage(task.task_id, TaskStage.DONE, actors.creator)
        assert task.tokens == []


class TestApprovalLinks:
    @pytest.mark.asyncio
    async def test_scoped_links_use_the_assignee_flow(self, engine, actors):
        task = await _group(engine, actors)
        await engine.report_stage(task.task_id, TaskStage.DONE, actors.alice)

        links = await engine.issue_approval_links(
            task.task_id, actors.hod.id, assignee_scope=actors.alice.id, requested_by=actors.creator
        )

        with pytest.raises(TokenScopeMismatch):
            await engine.redeem_approval_link(links.approve_token, ApprovalFlow.TASK)

        result = await engine.redeem_approval_link(links.approve_token, ApprovalFlow.ASSIGNEE)
        assert result.claims.assignee_scope == actors.alice.id
        assert result.task.find_assignment(actors.alice.id).approval is ApprovalState.APPROVED
        assert result.task.status is TaskStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_links_only_for_authorized_approvers(self, engine, actors):
        task = await _group(engine, actors)

        with pytest.raises(NotAuthorized):
            await engine.issue_approval_links(task.task_id, actors.carol.id)
        with pytest.raises(NotAuthorized):
            await engine.issue_approval_links(task.task_id, actors.alice.id, assignee_scope=actors.alice.id)
        with pytest.raises(AssignmentNotFound):
            await engine.issue_approval_links(task.task_id, actors.creator.id, assignee_scope=actors.carol.id)
        with pytest.raises(NotAuthorized):
            await engine.issue_approval_links(
                task.task_id, actors.creator.id, requested_by=actors.carol
            )

    @pytest.mark.asyncio
    async def test_reject_link_returns_work(self, engine, actors):
        task = await _single(engine, actors)
        await engine.report_stage(task.task_id, TaskStage.DONE, actors.alice)
        links = await engine.issue_approval_links(task.task_id, actors.creator.id)

        result = await engine.redeem_approval_link(links.reject_token)

        assert result.task.status is TaskStatus.REJECTED
        assert result.task.stage is TaskStage.PENDING
        history = await engine.list_history(task.task_id)
        assert any("via email link" in e.description for e in history)


class TestStatusRemarksTransfer:
    @pytest.mark.asyncio
    async def test_update_status(self, engine, actors):
        task = await _single(engine, actors)

        task = await engine.update_status(task.task_id, "pending", actors.creator, reason="waiting on vendor")
        assert task.status is TaskStatus.PENDING

        with pytest.raises(IllegalTransition):
            await engine.update_status(task.task_id, TaskStatus.APPROVED, actors.creator)
        with pytest.raises(ValidationError):
            await engine.update_status(task.task_id, "archived", actors.creator)
        with pytest.raises(NotAuthorized):
            await engine.update_status(task.task_id, "in_progress", actors.alice)

        history = await engine.list_history(task.task_id)
        assert history[-1].action is EventAction.STATUS_CHANGED
        assert "waiting on vendor" in history[-1].description

    @pytest.mark.asyncio
    async def test_completed_status_cannot_hide_a_rejected_member(self, engine, actors):
        creator, alice, bob = actors.creator, actors.alice, actors.bob
        task = await _group(engine, actors)
        await engine.report_stage(task.task_id, TaskStage.DONE, alice)
        await engine.report_stage(task.task_id, TaskStage.DONE, bob)
        await engine.decide_approval(task.task_id, Decision.REJECT, creator, assignee_scope=bob.id)

        task = await engine.update_status(task.task_id, TaskStatus.COMPLETED, creator)

        assert task.status is TaskStatus.IN_PROGRESS
        assert task.stage is TaskStage.PENDING
        assert task.find_assignment(bob.id).approval is ApprovalState.REJECTED
        stored = await engine.get_task(task.task_id)
        assert stored.status is TaskStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_remark_categories(self, engine, actors):
        task = await _single(engine, actors)

        task = await engine.add_remark(task.task_id, "Please include Q3", actors.creator)
        task = await engine.add_remark(task.task_id, "Will do", actors.alice)
        task = await engine.add_remark(task.task_id, "FYI", actors.hod)
        task = await engine.add_remark(task.task_id, "Noted", actors.alice, category="general")

        assert [r.category for r in task.remarks] == [
            RemarkCategory.CREATOR,
            RemarkCategory.ASSIGNEE,
            RemarkCategory.GENERAL,
            RemarkCategory.GENERAL,
        ]
        with pytest.raises(NotAuthorized):
            await engine.add_remark(task.task_id, "hello", actors.carol)
        with pytest.raises(ValidationError):
            await engine.add_remark(task.task_id, "  ", actors.alice)

    @pytest.mark.asyncio
    async def test_transfer(self, engine, actors):
        task = await _single(engine, actors)
        await engine.report_stage(task.task_id, TaskStage.PENDING, actors.alice)

        task = await engine.transfer(
            task.task_id, actors.alice.id, actors.carol.id, actors.creator, reason="Alice on leave"
        )

        assert task.assignee_ids == [actors.carol.id]
        assert task.assignments[0].individual_stage is TaskStage.NOT_STARTED
        assert task.status is TaskStatus.TRANSFERRED
        record = task.transfer_history[0]
        assert (record.from_assignee, record.to_assignee) == (actors.alice.id, actors.carol.id)
        assert record.approved_by == actors.creator.id

        with pytest.raises(AssignmentNotFound):
            await engine.transfer(task.task_id, actors.alice.id, actors.bob.id, actors.creator)
        with pytest.raises(InvalidAssignees):
            await engine.transfer(task.task_id, actors.carol.id, actors.carol.id, actors.creator)
        with pytest.raises(NotAuthorized):
            await engine.transfer(task.task_id, actors.carol.id, actors.bob.id, actors.carol)

        # New assignee picks the work up
        task = await engine.report_stage(task.task_id, TaskStage.PENDING, actors.carol)
        assert task.status is TaskStatus.IN_PROGRESS


class TestReads:
    @pytest.mark.asyncio
    async def test_list_tasks_pages_and_filters(self, engine, actors, clock):
        for i in range(3):
            await engine.create_task(actors.creator, f"Task {i}")
            clock.advance(minutes=1)
        await engine.create_task(actors.hod, "Other creator")

        page, cursor = await engine.list_tasks(created_by=actors.creator.id, limit=2)
        assert len(page) == 2
        assert cursor is not None
        rest, cursor = await engine.list_tasks(created_by=actors.creator.id, limit=2, cursor=cursor)
        assert len(rest) == 1
        assert cursor is None
        assert {t.title for t in page + rest} == {"Task 0", "Task 1", "Task 2"}

        created, _ = await engine.list_tasks(status=TaskStatus.CREATED)
        assert len(created) == 4

    @pytest.mark.asyncio
    async def test_history_is_ordered_and_complete(self, engine, actors):
        task = await _single(engine, actors)
        await engine.report_stage(task.task_id, TaskStage.DONE, actors.alice)

        actions = [e.action for e in await engine.list_history(task.task_id)]

        assert actions[:2] == [EventAction.TASK_CREATED, EventAction.TASK_ASSIGNED]
        assert EventAction.STAGE_CHANGED in actions
        assert EventAction.STATUS_CHANGED in actions
        assert actions[-1] is EventAction.APPROVAL_LINKS_ISSUED
