"""Bounded retry with exponential backoff and jitter.

Backoff strategy:
  delay = min(base * multiplier^attempt, max_delay)
  jitter = delay * 0.25 * uniform(-1, 1)
  result = max(0, delay + jitter)

Attempts within one retry sequence are strictly sequential. A delay that has
started always runs to completion before the next attempt is made.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from agent_resilience.core.config import Settings, settings
from agent_resilience.core.metrics import RETRY_ATTEMPTS
from agent_resilience.pipeline.errors import DomainError, ErrorCode, normalize_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_RATIO = 0.25

DEFAULT_RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})
DEFAULT_RETRYABLE_CODES = frozenset(
    {
        ErrorCode.RATE_LIMITED,
        ErrorCode.SERVICE_UNAVAILABLE,
        ErrorCode.GATEWAY_TIMEOUT,
        ErrorCode.NETWORK_ERROR,
    }
)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration. Delays are in seconds."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    retryable_statuses: frozenset[int] = field(default=DEFAULT_RETRYABLE_STATUSES)
    retryable_codes: frozenset[ErrorCode] = field(default=DEFAULT_RETRYABLE_CODES)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        # Accept any iterable from callers but keep the policy hashable
        object.__setattr__(self, "retryable_statuses", frozenset(self.retryable_statuses))
        object.__setattr__(self, "retryable_codes", frozenset(ErrorCode(c) for c in self.retryable_codes))

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> RetryPolicy:
        config = config or settings
        return cls(
            max_retries=config.retry_max_retries,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
            backoff_multiplier=config.retry_backoff_multiplier,
        )

    def with_overrides(self, **overrides: Any) -> RetryPolicy:
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **overrides)

    def should_retry(self, error: DomainError, attempt: int) -> bool:
        if attempt >= self.max_retries:
            return False
        return (
            error.retryable
            or error.status in self.retryable_statuses
            or error.code in self.retryable_codes
        )


def calculate_backoff(attempt: int, policy: RetryPolicy, rng: random.Random | None = None) -> float:
    """Delay in seconds before retry number ``attempt + 1`` (attempt is 0-based)."""
    rng = rng or random
    delay = min(policy.base_delay * (policy.backoff_multiplier**attempt), policy.max_delay)
    jitter = delay * JITTER_RATIO * rng.uniform(-1.0, 1.0)
    return max(0.0, delay + jitter)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rng: random.Random | None = None,
) -> T:
    """Run ``operation`` up to ``policy.max_retries + 1`` times.

    Raises the normalized DomainError of the last attempt once the error is
    not retryable or retries are exhausted. Cancellation is not caught.
    """
    policy = policy or RetryPolicy()
    last_error: DomainError | None = None

    for attempt in range(policy.max_retries + 1):
        try:
            return await operation()
        except Exception as exc:
            last_error = normalize_error(exc)
            if not policy.should_retry(last_error, attempt):
                if last_error is exc:
                    raise
                raise last_error from exc

        delay = calculate_backoff(attempt, policy, rng)
        RETRY_ATTEMPTS.labels(code=last_error.code.value).inc()
        logger.info(
            "Retry %d/%d after %s, waiting %.2fs",
            attempt + 1,
            policy.max_retries,
            last_error.code.value,
            delay,
        )
        await sleep(delay)

    raise last_error
