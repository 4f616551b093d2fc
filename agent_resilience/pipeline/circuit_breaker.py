"""Circuit Breaker: per-endpoint failure isolation.

Implements the circuit breaker pattern per named endpoint:
  - CLOSED: normal operation, calls pass through
  - OPEN: too many failures, calls are rejected immediately
  - HALF_OPEN: testing recovery with a bounded number of probe calls

Transitions:
  CLOSED --(failure_threshold consecutive failures)--> OPEN
  OPEN --(reset_timeout elapsed, on next call)--> HALF_OPEN
  HALF_OPEN --(any failure)--> OPEN
  HALF_OPEN --(half_open_max_calls successes)--> CLOSED

State is read and written without an ``await`` in between, so breakers are
safe to share between tasks on one event loop without locks.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from typing import Any, TypeVar

from agent_resilience.core.config import Settings, settings
from agent_resilience.core.metrics import CIRCUIT_REJECTIONS, CIRCUIT_TRANSITIONS
from agent_resilience.pipeline.errors import DomainError, ErrorCode, Severity

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Defaults
FAILURE_THRESHOLD = 5  # Consecutive failures to open circuit
RESET_TIMEOUT = 30.0  # Seconds before trying half-open
HALF_OPEN_MAX_CALLS = 3  # Probe calls admitted (and successes needed) in half-open state


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Rejecting requests
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitBreaker:
    """A single named circuit.

    Usage:
        breaker = CircuitBreaker("agents-api")
        result = await breaker.call(lambda: client.get("/agents"))
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = FAILURE_THRESHOLD,
        reset_timeout: float = RESET_TIMEOUT,
        half_open_max_calls: int = HALF_OPEN_MAX_CALLS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.half_open_calls = 0
        self.last_failure_time: float | None = None

    async def call(self, operation: Callable[[], Awaitable[T]], context: Mapping[str, Any] | None = None) -> T:
        """Run ``operation`` through the breaker.

        ``context`` is merged into the rejection error, e.g. a correlation id.

        Raises:
            DomainError: SERVICE_UNAVAILABLE if the circuit rejects the call.
                Any error raised by the operation is re-raised unchanged.
        """
        self._admit(context)
        try:
            result = await operation()
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _admit(self, context: Mapping[str, Any] | None = None) -> None:
        if self.state == CircuitState.OPEN:
            if self._clock() - (self.last_failure_time or 0.0) >= self.reset_timeout:
                self._transition(CircuitState.HALF_OPEN)
                self.half_open_calls = 0
                self.success_count = 0
            else:
                self._reject(f"Circuit breaker is open for {self.name}", context)

        if self.state == CircuitState.HALF_OPEN:
            if self.half_open_calls >= self.half_open_max_calls:
                self._reject(f"Circuit breaker is half-open for {self.name}", context)
            self.half_open_calls += 1

    def _reject(self, message: str, context: Mapping[str, Any] | None = None) -> None:
        CIRCUIT_REJECTIONS.labels(circuit=self.name).inc()
        raise DomainError(
            ErrorCode.SERVICE_UNAVAILABLE,
            message,
            hint="Service is temporarily unavailable, try again later",
            retryable=True,
            severity=Severity.HIGH,
            context={**(context or {}), "circuit": self.name, "state": self.state.value},
        )

    def _on_success(self) -> None:
        self.failure_count = 0
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.half_open_max_calls:
                self._transition(CircuitState.CLOSED)
                self.success_count = 0
                self.half_open_calls = 0

    def _on_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
        elif self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            self._transition(CircuitState.OPEN)

    def _transition(self, state: CircuitState) -> None:
        previous = self.state
        self.state = state
        CIRCUIT_TRANSITIONS.labels(circuit=self.name, state=state.value).inc()
        if state == CircuitState.OPEN:
            logger.warning(
                "Circuit %s OPENED from %s after %d failures",
                self.name,
                previous.value,
                self.failure_count,
                extra={"circuit": self.name},
            )
        else:
            logger.info("Circuit %s %s -> %s", self.name, previous.value, state.value, extra={"circuit": self.name})

    def get_state(self) -> dict:
        """Get the current state of the circuit."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": self.last_failure_time,
        }

    def reset(self) -> None:
        """Manually reset the circuit to CLOSED."""
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.half_open_calls = 0
        logger.info("Circuit %s manually RESET", self.name)


class CircuitBreakerRegistry:
    """Lazily created breakers keyed by name.

    Breakers live as long as the registry; they never share counters.
    """

    def __init__(self, config: Settings | None = None, clock: Callable[[], float] = time.monotonic):
        config = config or settings
        self._defaults: dict[str, Any] = {
            "failure_threshold": config.breaker_failure_threshold,
            "reset_timeout": config.breaker_reset_timeout,
            "half_open_max_calls": config.breaker_half_open_max_calls,
        }
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str, **options: Any) -> CircuitBreaker:
        """Return the breaker for ``name``, creating it on first use.

        ``options`` only apply when the breaker is created.
        """
        if name not in self._breakers:
            kwargs = {**self._defaults, **options}
            kwargs.setdefault("clock", self._clock)
            self._breakers[name] = CircuitBreaker(name, **kwargs)
        return self._breakers[name]

    def get_all_states(self) -> list[dict]:
        """Get circuit states for all known breakers."""
        return [breaker.get_state() for breaker in self._breakers.values()]

    def reset(self, name: str) -> None:
        if name in self._breakers:
            self._breakers[name].reset()

    def __contains__(self, name: object) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)
