"""
Failure handling shared by the outbound clients (Alpha Vantage, LLM).

Two mechanisms, used together:

* ``CircuitBreaker``: after ``failure_threshold`` consecutive failures every
  call fails fast with CircuitOpenError until ``recovery_timeout`` has passed;
  then one probe call is let through and its outcome closes or re-opens it.
* ``transport_retrying``: tenacity policy that retries network failures with
  jittered exponential backoff. Provider payloads (rate-limit notes, error
  messages) are valid HTTP responses and never retried here.

Typical use::

    await breaker.guard()
    try:
        async for attempt in transport_retrying(max_attempts=3):
            with attempt:
                response = await http.get(url)
    except httpx.HTTPError as e:
        breaker.record_failure(e)
        raise
    breaker.record_success()
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from finora.core.exceptions import ExternalServiceError
from finora.core.logging import get_logger

logger = get_logger("resilience")

TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    asyncio.TimeoutError,
    ConnectionError,
)


class CircuitOpenError(ExternalServiceError):
    """The upstream is failing; the call was not attempted."""

    error_code = "CIRCUIT_OPEN"

    def __init__(self, service: str, retry_in: float):
        super().__init__(
            message=f"{service} is temporarily unavailable, retry in {retry_in:.0f}s",
            details={"service": service, "retry_in_seconds": round(retry_in, 1)},
        )
        self.service = service


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    name: str = "circuit"

    _failures: int = field(default=0, init=False)
    _opened_at: float | None = field(default=None, init=False)

    @property
    def state(self) -> CircuitState:
        if self._opened_at is None:
            return CircuitState.CLOSED
        if time.monotonic() - self._opened_at >= self.recovery_timeout:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    @property
    def is_closed(self) -> bool:
        return self.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    async def guard(self) -> None:
        """Raise CircuitOpenError while open; HALF_OPEN lets the probe through."""
        state = self.state
        if state == CircuitState.OPEN:
            elapsed = time.monotonic() - (self._opened_at or 0.0)
            raise CircuitOpenError(self.name, max(0.0, self.recovery_timeout - elapsed))
        if state == CircuitState.HALF_OPEN:
            logger.info(f"[{self.name}] probing after {self._failures} failures")

    def record_success(self) -> None:
        if self._opened_at is not None:
            logger.info(f"[{self.name}] circuit closed")
        self._failures = 0
        self._opened_at = None

    def record_failure(self, error: BaseException | None = None) -> None:
        self._failures += 1
        if self._failures < self.failure_threshold:
            logger.debug(f"[{self.name}] failure {self._failures}/{self.failure_threshold}: {error!r}")
            return
        if self._opened_at is None:
            logger.warning(f"[{self.name}] circuit opened after {self._failures} failures")
        # A failed probe restarts the recovery window
        self._opened_at = time.monotonic()


def transport_retrying(
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 8.0,
) -> AsyncRetrying:
    """tenacity policy for network-level failures only."""
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential_jitter(initial=initial_delay, max=max_delay, jitter=0.5),
        retry=retry_if_exception_type(TRANSPORT_ERRORS),
        reraise=True,
    )
