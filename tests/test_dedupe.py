"""Tests for request deduplication."""

from __future__ import annotations

import asyncio

import pytest

from agent_resilience.pipeline.dedupe import RequestDeduplicator


class SlowOperation:
    """Counts invocations and resolves once released."""

    def __init__(self, result="ok", error: Exception | None = None):
        self.calls = 0
        self.release = asyncio.Event()
        self.result = result
        self.error = error

    async def __call__(self):
        self.calls += 1
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.result


class TestRequestDeduplicator:
    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_execution(self):
        dedupe = RequestDeduplicator(default_ttl=0.01)
        operation = SlowOperation(result=["agent-1"])

        first = asyncio.create_task(dedupe.run("agents:list", operation))
        second = asyncio.create_task(dedupe.run("agents:list", operation))
        await asyncio.sleep(0)
        assert "agents:list" in dedupe

        operation.release.set()
        results = await asyncio.gather(first, second)

        assert operation.calls == 1
        assert results == [["agent-1"], ["agent-1"]]

    @pytest.mark.asyncio
    async def test_shared_failure(self):
        dedupe = RequestDeduplicator(default_ttl=0.01)
        operation = SlowOperation(error=RuntimeError("boom"))

        first = asyncio.create_task(dedupe.run("k", operation))
        second = asyncio.create_task(dedupe.run("k", operation))
        await asyncio.sleep(0)
        operation.release.set()

        results = await asyncio.gather(first, second, return_exceptions=True)
        assert operation.calls == 1
        assert all(isinstance(r, RuntimeError) for r in results)
        assert results[0] is results[1]

    @pytest.mark.asyncio
    async def test_different_keys_run_separately(self):
        dedupe = RequestDeduplicator(default_ttl=0.01)
        operation = SlowOperation()
        operation.release.set()

        await asyncio.gather(dedupe.run("a", operation), dedupe.run("b", operation))
        assert operation.calls == 2

    @pytest.mark.asyncio
    async def test_runs_again_after_ttl(self):
        dedupe = RequestDeduplicator(default_ttl=0.01)
        operation = SlowOperation()
        operation.release.set()

        await dedupe.run("k", operation)
        assert "k" in dedupe
        await asyncio.sleep(0.05)
        assert "k" not in dedupe

        await dedupe.run("k", operation)
        assert operation.calls == 2

    @pytest.mark.asyncio
    async def test_settled_result_shared_within_ttl(self):
        dedupe = RequestDeduplicator(default_ttl=10.0)
        operation = SlowOperation()
        operation.release.set()

        await dedupe.run("k", operation)
        await dedupe.run("k", operation)
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_shared_work(self):
        dedupe = RequestDeduplicator(default_ttl=0.01)
        operation = SlowOperation(result="done")

        first = asyncio.create_task(dedupe.run("k", operation))
        second = asyncio.create_task(dedupe.run("k", operation))
        await asyncio.sleep(0)

        first.cancel()
        await asyncio.sleep(0)
        operation.release.set()

        assert await second == "done"
        assert first.cancelled()

    @pytest.mark.asyncio
    async def test_clear(self):
        dedupe = RequestDeduplicator(default_ttl=10.0)
        operation = SlowOperation()
        operation.release.set()
        await dedupe.run("a", operation)
        await dedupe.run("b", operation)

        assert sorted(dedupe.pending_keys()) == ["a", "b"]
        assert dedupe.clear() == 2
        assert len(dedupe) == 0
