"""Request deduplication: concurrent identical calls share one execution.

The first caller for a key starts the operation as a task; later callers for
the same key await that task instead of starting their own. Once the task
settles (success or failure) the key is kept for ``ttl`` seconds and then
dropped, so later calls run the operation again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from agent_resilience.core.metrics import DEDUPE_HITS

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL = 5.0


class RequestDeduplicator:
    """Registry of in-flight operations keyed by a caller-chosen dedupe key."""

    def __init__(self, default_ttl: float = DEFAULT_TTL):
        self.default_ttl = default_ttl
        self._pending: dict[str, asyncio.Task] = {}

    async def run(
        self,
        key: str,
        operation: Callable[[], Awaitable[T]],
        ttl: float | None = None,
    ) -> T:
        """Run ``operation`` unless an execution for ``key`` is already pending.

        Every caller awaits the shared task through ``asyncio.shield``, so a
        cancelled caller never cancels the work other callers are waiting on.
        """
        task = self._pending.get(key)
        if task is not None:
            DEDUPE_HITS.inc()
            logger.debug("Joining in-flight request %s", key)
            return await asyncio.shield(task)

        task = asyncio.ensure_future(operation())
        self._pending[key] = task
        ttl = self.default_ttl if ttl is None else ttl
        task.add_done_callback(lambda done: self._schedule_eviction(key, done, ttl))
        return await asyncio.shield(task)

    def _schedule_eviction(self, key: str, task: asyncio.Task, ttl: float) -> None:
        if not task.cancelled():
            # Mark the exception as retrieved even if every caller went away
            task.exception()
        asyncio.get_running_loop().call_later(ttl, self._evict, key, task)

    def _evict(self, key: str, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
            logger.debug("Evicted settled request %s", key)

    def pending_keys(self) -> list[str]:
        return list(self._pending)

    def clear(self) -> int:
        """Drop all entries. In-flight tasks keep running. Returns count of cleared entries."""
        count = len(self._pending)
        self._pending.clear()
        return count

    def __contains__(self, key: Any) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)
