"""TaskGate engine - lifecycle state machine, approvals and capability tokens."""

from taskgate.engine.errors import (
    AlreadyFinalized,
    IllegalTransition,
    NotAuthorized,
    TaskGateError,
    TaskNotFound,
    TokenError,
)

__all__ = [
    "AlreadyFinalized",
    "IllegalTransition",
    "NotAuthorized",
    "TaskGateError",
    "TaskNotFound",
    "TokenError",
]
