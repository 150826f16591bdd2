"""Notification dispatch."""

from taskgate.notifications.dispatcher import NotificationDispatcher
from taskgate.notifications.rules import recipients_for

__all__ = ["NotificationDispatcher", "recipients_for"]
