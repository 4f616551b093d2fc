"""Correlation ID shared by every request an orchestrator issues.

One id per context (a browsing session, a worker process), not per request.
Call ``reset()`` at navigation or job boundaries to start a new trace group.
"""

from __future__ import annotations

import logging
import time
import uuid

import httpx

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


def generate_correlation_id() -> str:
    return f"cid_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class CorrelationContext:
    """Lazily generated, replaceable correlation id."""

    def __init__(self, correlation_id: str | None = None):
        self._correlation_id = correlation_id

    def get(self) -> str:
        if self._correlation_id is None:
            self._correlation_id = generate_correlation_id()
        return self._correlation_id

    def reset(self) -> str:
        self._correlation_id = generate_correlation_id()
        logger.debug("Correlation id reset to %s", self._correlation_id)
        return self._correlation_id

    def headers(self) -> dict[str, str]:
        """Headers to attach to outbound requests."""
        return {CORRELATION_HEADER: self.get()}

    async def inject_header(self, request: httpx.Request) -> None:
        """httpx request event hook.

        Usage:
            client = httpx.AsyncClient(event_hooks={"request": [correlation.inject_header]})
        """
        request.headers[CORRELATION_HEADER] = self.get()
