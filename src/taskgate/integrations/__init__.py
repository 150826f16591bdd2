"""External service integrations."""

from taskgate.integrations.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerOpen,
    CircuitState,
)
from taskgate.integrations.mail_relay import MailRelayClient, MailRelayError

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerOpen",
    "CircuitState",
    "MailRelayClient",
    "MailRelayError",
]
