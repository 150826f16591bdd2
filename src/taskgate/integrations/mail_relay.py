"""Outbound email through an HTTP mail relay."""

import logging
from typing import Any, Optional

import httpx

from taskgate.config import settings
from taskgate.integrations.circuit_breaker import CircuitBreaker, CircuitBreakerConfig

logger = logging.getLogger(__name__)


class MailRelayError(Exception):
    """The relay refused or failed to accept a message."""


class MailRelayClient:
    """
    Posts email payloads to the configured relay.

    Without an endpoint every send is skipped (returns False), which is the
    normal state in development and tests.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint if endpoint is not None else settings.mail_relay_endpoint
        self.api_key = api_key if api_key is not None else settings.mail_relay_api_key
        self.timeout_seconds = timeout_seconds or settings.mail_relay_timeout_seconds
        self._transport = transport
        self._circuit_breaker: Optional[CircuitBreaker] = None

        if settings.mail_relay_circuit_breaker_enabled:
            self._circuit_breaker = CircuitBreaker(
                "mail_relay",
                CircuitBreakerConfig(
                    failure_threshold=settings.mail_relay_circuit_breaker_failure_threshold,
                    timeout_seconds=settings.mail_relay_circuit_breaker_timeout_seconds,
                    half_open_max_calls=settings.mail_relay_circuit_breaker_half_open_max_calls,
                    success_threshold=settings.mail_relay_circuit_breaker_success_threshold,
                ),
            )

    @property
    def enabled(self) -> bool:
        return bool(self.endpoint)

    async def send(self, to: str, subject: str, text: str, html: Optional[str] = None) -> bool:
        """Send one message. Returns False when no relay is configured.

        Raises MailRelayError (or CircuitBreakerOpen) when delivery fails.
        """
        if not self.enabled:
            return False

        payload: dict[str, Any] = {"to": to, "subject": subject, "text": text}
        if html:
            payload["html"] = html

        if self._circuit_breaker:
            await self._circuit_breaker.call(self._post, payload)
        else:
            await self._post(payload)
        return True

    async def _post(self, payload: dict[str, Any]) -> None:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(
            timeout=self.timeout_seconds, transport=self._transport
        ) as client:
            try:
                response = await client.post(self.endpoint, json=payload, headers=headers)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise MailRelayError(f"mail relay rejected message: {e}") from e
