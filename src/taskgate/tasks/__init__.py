"""Background tasks."""

from taskgate.tasks.sweep import ReminderSweeper

__all__ = ["ReminderSweeper"]
