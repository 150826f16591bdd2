"""TaskGate HTTP API."""

from taskgate.api.email_approval import router as email_approval_router
from taskgate.api.router import router

__all__ = ["email_approval_router", "router"]
