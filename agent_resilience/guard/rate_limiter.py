"""Sliding-window rate limiter: per-key request timestamps.

Tracks the timestamps of allowed requests for each key. On every check,
timestamps older than the window are pruned, the request is allowed if fewer
than ``limit`` remain, and only allowed requests are recorded. Rejected
attempts therefore never count against the next window.

Keys that go quiet are removed by an opportunistic global cleanup that runs
on a small random sample of checks.
"""

from __future__ import annotations

import logging
import random
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from agent_resilience.core.metrics import RATE_LIMIT_DECISIONS

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_WINDOW = 60.0  # seconds
CLEANUP_PROBABILITY = 0.01


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single rate limit check."""

    allowed: bool
    remaining: int
    reset_at: float  # Clock time when the oldest counted request leaves the window
    limit: int


class SlidingWindowRateLimiter:
    """Per-key sliding window limiter.

    Usage:
        limiter = SlidingWindowRateLimiter()

        result = limiter.check("user:42:generate", limit=5, window=60.0)
        if not result.allowed:
            # Reject, tell the user when to come back
            ...
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[], float] = random.random,
        cleanup_probability: float = CLEANUP_PROBABILITY,
    ):
        self._clock = clock
        self._rng = rng
        self.cleanup_probability = cleanup_probability
        self._windows: dict[str, deque[float]] = {}

    @staticmethod
    def _prune(timestamps: deque[float], cutoff: float) -> None:
        """Remove timestamps at or before ``cutoff``."""
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()

    def check(self, key: str, limit: int = DEFAULT_LIMIT, window: float = DEFAULT_WINDOW) -> RateLimitResult:
        """Check (and, if allowed, record) a request for ``key``."""
        now = self._clock()
        timestamps = self._windows.setdefault(key, deque())
        self._prune(timestamps, now - window)

        count = len(timestamps)
        allowed = count < limit
        if allowed:
            timestamps.append(now)

        RATE_LIMIT_DECISIONS.labels(allowed=str(allowed).lower()).inc()
        if not allowed:
            logger.debug("Rate limit hit for %s (%d/%d in %.1fs)", key, count, limit, window)

        if self._rng() < self.cleanup_probability:
            self.cleanup(window)

        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, limit - count - (1 if allowed else 0)),
            reset_at=timestamps[0] + window if timestamps else now + window,
            limit=limit,
        )

    def cleanup(self, max_age: float = DEFAULT_WINDOW) -> int:
        """Prune every window and drop keys with no recent requests.

        Returns the number of keys removed.
        """
        cutoff = self._clock() - max_age
        removed = 0
        for key in list(self._windows):
            timestamps = self._windows[key]
            self._prune(timestamps, cutoff)
            if not timestamps:
                del self._windows[key]
                removed += 1
        return removed

    def reset(self, key: str) -> None:
        self._windows.pop(key, None)

    def get_stats(self, key: str) -> dict:
        """Get current window stats for a key without recording a request."""
        timestamps = self._windows.get(key, ())
        return {
            "key": key,
            "count": len(timestamps),
            "oldest": timestamps[0] if timestamps else None,
        }

    def __len__(self) -> int:
        return len(self._windows)
