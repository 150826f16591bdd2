"""
Metrics registry tests.
"""

import pytest

from taskgate.engine.errors import TokenAlreadyUsed
from taskgate.models import TaskStage
from taskgate.observability.metrics import MetricsRegistry, metrics


def test_labelled_counters_are_independent():
    registry = MetricsRegistry()
    registry.inc_counter("token.redemption", outcome="applied")
    registry.inc_counter("token.redemption", outcome="applied")
    registry.inc_counter("token.redemption", outcome="TOKEN_EXPIRED")

    assert registry.counter_value("token.redemption", outcome="applied") == 2
    assert registry.counter_value("token.redemption", outcome="TOKEN_EXPIRED") == 1
    assert registry.counter_value("token.redemption") == 0
    assert "token.redemption{outcome=applied}" in registry.snapshot()["counters"]


def test_timer_records_histogram():
    registry = MetricsRegistry()
    with registry.timer("reminder.sweep_ms"):
        pass

    summary = registry.snapshot()["histograms"]["reminder.sweep_ms"]
    assert summary["count"] == 1
    assert summary["min"] >= 0

    registry.reset()
    assert registry.snapshot() == {"counters": {}, "gauges": {}, "histograms": {}}


@pytest.mark.asyncio
async def test_redemption_outcomes_are_counted(engine, actors):
    task = await engine.create_task(actors.creator, "Counted", assignee_ids=[actors.alice.id])
    await engine.report_stage(task.task_id, TaskStage.DONE, actors.alice)
    links = await engine.issue_approval_links(task.task_id, actors.creator.id)
    applied = metrics.counter_value("token.redemption", outcome="applied")
    reused = metrics.counter_value("token.redemption", outcome="TOKEN_ALREADY_USED")

    await engine.redeem_approval_link(links.approve_token)
    with pytest.raises(TokenAlreadyUsed):
        await engine.redeem_approval_link(links.approve_token)

    assert metrics.counter_value("token.redemption", outcome="applied") == applied + 1
    assert metrics.counter_value("token.redemption", outcome="TOKEN_ALREADY_USED") == reused + 1


@pytest.mark.asyncio
async def test_database_queries_are_timed(engine, actors):
    before = metrics.counter_value("db.query.count")

    await engine.create_task(actors.creator, "Timed")

    assert metrics.counter_value("db.query.count") > before
    assert metrics.snapshot()["histograms"]["db.query.duration_ms"]["count"] >= 1
