"""Approval reminder sweep background task."""

import asyncio
import logging
from typing import Optional

from taskgate.config import settings
from taskgate.engine.core import TaskGateEngine
from taskgate.models import DomainEvent
from taskgate.observability.metrics import metrics

logger = logging.getLogger("taskgate.sweep")


class ReminderSweeper:
    """
    Periodically reminds creators about completed work still awaiting approval.

    Selection: stage done, status neither approved nor rejected, completed at
    least `reminder_threshold_hours` ago, and not reminded in the last
    `reminder_repeat_hours`. Each candidate is re-checked under its task lock
    before it is stamped, so overlapping sweeps never double-remind.

    `stop()` lets an in-flight sweep finish its batch before returning.
    """

    def __init__(
        self,
        engine: TaskGateEngine,
        interval_seconds: Optional[float] = None,
        batch_size: Optional[int] = None,
    ):
        self.engine = engine
        self.interval_seconds = interval_seconds or settings.reminder_interval_seconds
        self.batch_size = batch_size or settings.reminder_batch_size
        self._task: Optional[asyncio.Task] = None
        self._shutdown: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> list[DomainEvent]:
        """One sweep. Returns the reminder events emitted."""
        now = self.engine.clock()
        reminders: list[DomainEvent] = []

        with metrics.timer("reminder.sweep_ms"):
            candidates = await self.engine.find_reminder_candidates(now, self.batch_size)
            for task in candidates:
                try:
                    event = await self.engine.record_reminder(task.task_id)
                except Exception as e:
                    metrics.inc_counter("reminder.failed")
                    logger.error(f"Reminder for task {task.task_id} failed: {e}", exc_info=True)
                    continue
                if event is not None:
                    reminders.append(event)

        metrics.inc_counter("reminder.sent", amount=len(reminders))
        if reminders:
            logger.info(f"Sent {len(reminders)} approval reminder(s)")
        return reminders

    async def _loop(self) -> None:
        logger.info(f"Reminder sweep loop started (interval: {self.interval_seconds}s)")

        while not self._shutdown.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Reminder sweep error: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Reminder sweep loop stopped")

    def start(self) -> None:
        """Start the sweep loop on the running event loop."""
        if self.running:
            return
        self._shutdown = asyncio.Event()
        self._task = asyncio.create_task(self._loop())

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Signal shutdown and wait for an in-flight sweep to finish."""
        if self._shutdown:
            self._shutdown.set()

        if self._task:
            timeout = settings.reminder_stop_timeout_seconds if timeout is None else timeout
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Reminder sweep did not stop gracefully, cancelling")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass

        self._task = None
        self._shutdown = None
