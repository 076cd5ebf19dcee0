"""
Circuit breaker for calls to external services.

States:
- CLOSED: normal operation, calls go through
- OPEN: too many consecutive failures, calls are rejected immediately
- HALF_OPEN: after the open period a few probe calls are let through; enough
  successes close the circuit again, one failure reopens it

Only failures that say something about the health of the remote service
should trip the breaker. ``call()`` takes an ``is_failure`` predicate so that,
for example, a 404 from the provider counts as a healthy response.
"""

import asyncio
import functools
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenError(Exception):
    """Raised instead of calling the remote service while the circuit is open."""

    def __init__(self, name: str, retry_after: Optional[float] = None):
        super().__init__(f"Circuit breaker '{name}' is open")
        self.name = name
        self.retry_after = retry_after


def _always_failure(error: BaseException) -> bool:
    return True


class CircuitBreaker:
    """
    Async-safe circuit breaker.

    Usage:
        cb = CircuitBreaker(name="partner-center", failure_threshold=5, open_seconds=30)

        result = await cb.call(client.get, url, is_failure=is_transient)

        @cb.protect
        async def call_external_service():
            ...
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        open_seconds: float = 30.0,
        half_open_success_threshold: int = 2,
        half_open_max_requests: int = 3,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            name: Identifier used in logs and metrics.
            failure_threshold: Consecutive failures that open the circuit.
            open_seconds: Time spent OPEN before probing in HALF_OPEN.
            half_open_success_threshold: Probe successes needed to close.
            half_open_max_requests: Concurrent probes allowed in HALF_OPEN.
            logger: Optional logger.
            clock: Monotonic clock, replaceable in tests.
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.open_seconds = open_seconds
        self.half_open_success_threshold = half_open_success_threshold
        self.half_open_max_requests = half_open_max_requests
        self.logger = logger or logging.getLogger(f"{__name__}.{name}")
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._open_until = 0.0
        self._half_open_requests = 0
        self._lock = asyncio.Lock()

        self._total_requests = 0
        self._total_successes = 0
        self._total_failures = 0
        self._total_rejects = 0
        self._last_state_change: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self._state == CircuitState.HALF_OPEN

    async def allow_request(self) -> bool:
        """
        Returns:
            True if a call may proceed, False if it must be rejected.
        """
        async with self._lock:
            self._total_requests += 1

            if self._state == CircuitState.OPEN:
                if self._clock() < self._open_until:
                    self._total_rejects += 1
                    return False
                self._transition(CircuitState.HALF_OPEN)

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_requests >= self.half_open_max_requests:
                    self._total_rejects += 1
                    return False
                self._half_open_requests += 1

            return True

    async def record_success(self) -> None:
        async with self._lock:
            self._total_successes += 1

            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.half_open_success_threshold:
                    self._transition(CircuitState.CLOSED)
            else:
                self._failure_count = 0

    async def record_failure(self, reason: str = "unknown") -> None:
        async with self._lock:
            self._total_failures += 1
            self._failure_count += 1

            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN, reason)
            elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._transition(CircuitState.OPEN, reason)

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        is_failure: Callable[[BaseException], bool] = _always_failure,
        **kwargs: Any,
    ) -> T:
        """
        Call ``func`` through the breaker.

        Exceptions are always re-raised; ``is_failure`` only decides whether
        they count against the circuit.

        Raises:
            CircuitBreakerOpenError: The circuit rejected the call.
        """
        if not await self.allow_request():
            raise CircuitBreakerOpenError(self.name, self.seconds_until_half_open())

        try:
            result = await func(*args, **kwargs)
        except Exception as error:
            if is_failure(error):
                await self.record_failure(str(error))
            else:
                await self.record_success()
            raise

        await self.record_success()
        return result

    def protect(self, func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Decorator form of ``call()`` counting every exception as a failure."""

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await self.call(func, *args, **kwargs)

        return wrapper

    def seconds_until_half_open(self) -> Optional[float]:
        if self._state != CircuitState.OPEN:
            return None
        return max(0.0, self._open_until - self._clock())

    def _transition(self, new_state: CircuitState, reason: Optional[str] = None) -> None:
        old_state = self._state
        self._state = new_state
        self._failure_count = 0
        self._success_count = 0
        self._half_open_requests = 0
        self._last_state_change = self._clock()

        if new_state == CircuitState.OPEN:
            self._open_until = self._clock() + self.open_seconds
            self.logger.warning(
                f"🚨 Circuit breaker '{self.name}': {old_state.value} -> OPEN",
                extra={"circuit_breaker": self.name, "reason": reason, "open_seconds": self.open_seconds},
            )
        else:
            self.logger.info(
                f"🔄 Circuit breaker '{self.name}': {old_state.value} -> {new_state.value.upper()}",
                extra={"circuit_breaker": self.name},
            )

    def get_metrics(self) -> Dict[str, Any]:
        now = self._clock()
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "total_requests": self._total_requests,
            "total_successes": self._total_successes,
            "total_failures": self._total_failures,
            "total_rejects": self._total_rejects,
            "failure_threshold": self.failure_threshold,
            "open_seconds": self.open_seconds,
            "time_in_state": now - self._last_state_change if self._last_state_change is not None else None,
            "seconds_until_half_open": self.seconds_until_half_open(),
        }

    async def reset(self) -> None:
        """Force the circuit back to CLOSED."""
        async with self._lock:
            self._transition(CircuitState.CLOSED)
            self._open_until = 0.0
