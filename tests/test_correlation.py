"""Tests for correlation id propagation."""

from __future__ import annotations

import re

import httpx
import pytest

from agent_resilience.pipeline.correlation import (
    CORRELATION_HEADER,
    CorrelationContext,
    generate_correlation_id,
)

CID_PATTERN = re.compile(r"cid_\d+_[0-9a-f]{9}")


class TestCorrelationContext:
    def test_id_format(self):
        assert CID_PATTERN.fullmatch(generate_correlation_id())

    def test_get_is_memoised(self):
        ctx = CorrelationContext()
        assert ctx.get() == ctx.get()

    def test_reset_replaces_id(self):
        ctx = CorrelationContext("cid_1_abcdef012")
        new_id = ctx.reset()
        assert new_id != "cid_1_abcdef012"
        assert ctx.get() == new_id

    def test_contexts_are_independent(self):
        assert CorrelationContext().get() != CorrelationContext().get()

    def test_headers(self):
        ctx = CorrelationContext("cid_1_abcdef012")
        assert ctx.headers() == {"X-Correlation-ID": "cid_1_abcdef012"}

    @pytest.mark.asyncio
    async def test_inject_header(self):
        ctx = CorrelationContext("cid_1_abcdef012")
        request = httpx.Request("GET", "https://api.example.com/agents")
        await ctx.inject_header(request)
        assert request.headers[CORRELATION_HEADER] == "cid_1_abcdef012"

    @pytest.mark.asyncio
    async def test_inject_header_as_event_hook(self):
        ctx = CorrelationContext("cid_1_abcdef012")
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["cid"] = request.headers.get(CORRELATION_HEADER)
            return httpx.Response(200, json={"ok": True})

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            event_hooks={"request": [ctx.inject_header]},
        ) as client:
            await client.get("https://api.example.com/agents")

        assert seen["cid"] == "cid_1_abcdef012"
