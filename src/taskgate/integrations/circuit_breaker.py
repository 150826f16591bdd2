"""Circuit breaker guarding calls to the mail relay."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from taskgate.utils.time import Clock, utc_now

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # calls pass through
    OPEN = "open"  # calls fail fast
    HALF_OPEN = "half_open"  # probing for recovery


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    timeout_seconds: int = 60
    half_open_max_calls: int = 3
    success_threshold: int = 2


class CircuitBreakerOpen(Exception):
    """Raised instead of calling a service whose circuit is open."""

    def __init__(self, service_name: str, retry_after: int):
        self.service_name = service_name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker open for {service_name}, retry after {retry_after}s")


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    CLOSED -> OPEN after `failure_threshold` failures in a row.
    OPEN -> HALF_OPEN once `timeout_seconds` have passed.
    HALF_OPEN -> CLOSED after `success_threshold` successes, or back to OPEN
    on any failure. At most `half_open_max_calls` probes run while half-open.
    """

    def __init__(self, name: str, config: CircuitBreakerConfig, clock: Clock = utc_now):
        self.name = name
        self.config = config
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._half_open_calls = 0
        self._opened_at: Optional[datetime] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    async def call(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Await `func(*args, **kwargs)` unless the circuit is open.

        Raises:
            CircuitBreakerOpen: the circuit is open or the half-open probe budget is spent
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                if self._elapsed_since_open() < self.config.timeout_seconds:
                    raise CircuitBreakerOpen(self.name, self._retry_after())
                self._enter(CircuitState.HALF_OPEN)

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.config.half_open_max_calls:
                    raise CircuitBreakerOpen(self.name, self._retry_after())
                self._half_open_calls += 1

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            await self._record_failure(e)
            raise
        await self._record_success()
        return result

    async def reset(self) -> None:
        async with self._lock:
            self._enter(CircuitState.CLOSED)

    async def _record_success(self) -> None:
        async with self._lock:
            self._failures = 0
            self._successes += 1
            if (
                self._state == CircuitState.HALF_OPEN
                and self._successes >= self.config.success_threshold
            ):
                self._enter(CircuitState.CLOSED)

    async def _record_failure(self, error: Exception) -> None:
        async with self._lock:
            self._successes = 0
            self._failures += 1
            logger.warning(
                f"Circuit {self.name} failure "
                f"({self._failures}/{self.config.failure_threshold}): {error}"
            )
            if self._state == CircuitState.HALF_OPEN or (
                self._state == CircuitState.CLOSED
                and self._failures >= self.config.failure_threshold
            ):
                self._enter(CircuitState.OPEN)

    def _enter(self, state: CircuitState) -> None:
        self._state = state
        self._successes = 0
        self._half_open_calls = 0
        if state == CircuitState.OPEN:
            self._opened_at = self._clock()
            logger.error(f"Circuit {self.name} opened")
        else:
            self._failures = 0
            if state == CircuitState.CLOSED:
                self._opened_at = None
            logger.info(f"Circuit {self.name} is now {state.value}")

    def _elapsed_since_open(self) -> float:
        if self._opened_at is None:
            return float("inf")
        return (self._clock() - self._opened_at).total_seconds()

    def _retry_after(self) -> int:
        return int(max(0.0, self.config.timeout_seconds - self._elapsed_since_open()))
