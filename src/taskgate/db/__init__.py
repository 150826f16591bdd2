"""TaskGate database layer."""

from taskgate.db.base import Base, init_db, make_engine
from taskgate.db.tables import (
    ActorTable,
    NotificationTable,
    TaskHistoryTable,
    TaskTable,
)

__all__ = [
    "ActorTable",
    "Base",
    "NotificationTable",
    "TaskHistoryTable",
    "TaskTable",
    "init_db",
    "make_engine",
]
