"""Tests for the per-endpoint circuit breaker."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from agent_resilience.core.config import Settings
from agent_resilience.pipeline.circuit_breaker import (
    FAILURE_THRESHOLD,
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)
from agent_resilience.pipeline.errors import DomainError, ErrorCode, Severity


async def fail_times(breaker: CircuitBreaker, count: int) -> None:
    operation = AsyncMock(side_effect=RuntimeError("upstream down"))
    for _ in range(count):
        with pytest.raises(RuntimeError):
            await breaker.call(operation)


class TestCircuitBreaker:
    @pytest.fixture
    def cb(self, clock):
        return CircuitBreaker("agents-api", failure_threshold=5, reset_timeout=30.0, half_open_max_calls=3, clock=clock)

    def test_initial_state_closed(self, cb):
        state = cb.get_state()
        assert state == {
            "name": "agents-api",
            "state": "closed",
            "failure_count": 0,
            "last_failure_time": None,
        }

    @pytest.mark.asyncio
    async def test_success_passes_through(self, cb):
        assert await cb.call(AsyncMock(return_value=42)) == 42
        assert cb.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_success_resets_failures(self, cb):
        await fail_times(cb, 3)
        await cb.call(AsyncMock(return_value="ok"))
        assert cb.failure_count == 0
        await fail_times(cb, 4)
        assert cb.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, cb):
        await fail_times(cb, FAILURE_THRESHOLD - 1)
        assert cb.state == CircuitState.CLOSED
        await fail_times(cb, 1)
        assert cb.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_open_rejects_without_invoking(self, cb):
        await fail_times(cb, FAILURE_THRESHOLD)
        operation = AsyncMock(return_value="ok")

        with pytest.raises(DomainError) as exc_info:
            await cb.call(operation)

        operation.assert_not_awaited()
        error = exc_info.value
        assert error.code == ErrorCode.SERVICE_UNAVAILABLE
        assert error.retryable is True
        assert error.severity == Severity.HIGH
        assert error.context["circuit"] == "agents-api"

    @pytest.mark.asyncio
    async def test_half_open_after_timeout(self, cb, clock):
        await fail_times(cb, FAILURE_THRESHOLD)
        clock.advance(29.0)
        with pytest.raises(DomainError):
            await cb.call(AsyncMock(return_value="ok"))

        clock.advance(1.0)
        assert await cb.call(AsyncMock(return_value="ok")) == "ok"
        assert cb.state == CircuitState.HALF_OPEN

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, cb, clock):
        await fail_times(cb, FAILURE_THRESHOLD)
        clock.advance(30.0)
        await fail_times(cb, 1)
        assert cb.state == CircuitState.OPEN
        assert cb.last_failure_time == clock.now

        # The reset timeout restarts from the half-open failure
        with pytest.raises(DomainError):
            await cb.call(AsyncMock(return_value="ok"))

    @pytest.mark.asyncio
    async def test_half_open_successes_close(self, cb, clock):
        await fail_times(cb, FAILURE_THRESHOLD)
        clock.advance(30.0)
        operation = AsyncMock(return_value="ok")
        for _ in range(3):
            await cb.call(operation)
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    @pytest.mark.asyncio
    async def test_half_open_limits_probe_calls(self, clock):
        cb = CircuitBreaker("slow-api", failure_threshold=1, reset_timeout=1.0, half_open_max_calls=2, clock=clock)
        await fail_times(cb, 1)
        clock.advance(1.0)

        cb._admit()
        cb._admit()
        with pytest.raises(DomainError) as exc_info:
            cb._admit()
        assert exc_info.value.context["state"] == "half_open"

    @pytest.mark.asyncio
    async def test_rejection_carries_caller_context(self, cb):
        await fail_times(cb, FAILURE_THRESHOLD)
        with pytest.raises(DomainError) as exc_info:
            await cb.call(AsyncMock(return_value="ok"), {"correlation_id": "cid_1_abcdef012"})

        context = exc_info.value.context
        assert context["correlation_id"] == "cid_1_abcdef012"
        assert context["circuit"] == "agents-api"
        assert context["state"] == "open"

    @pytest.mark.asyncio
    async def test_reset(self, cb):
        await fail_times(cb, FAILURE_THRESHOLD)
        cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert await cb.call(AsyncMock(return_value="ok")) == "ok"


class TestCircuitBreakerRegistry:
    def test_lazy_creation_with_settings_defaults(self, clock):
        config = Settings(_env_file=None, breaker_failure_threshold=2, breaker_reset_timeout=5.0)
        registry = CircuitBreakerRegistry(config, clock=clock)
        assert "agents-api" not in registry

        breaker = registry.get("agents-api")
        assert breaker.failure_threshold == 2
        assert breaker.reset_timeout == 5.0
        assert registry.get("agents-api") is breaker
        assert len(registry) == 1

    def test_overrides_apply_on_creation(self):
        registry = CircuitBreakerRegistry(Settings(_env_file=None))
        breaker = registry.get("ai-api", failure_threshold=10)
        assert breaker.failure_threshold == 10

    @pytest.mark.asyncio
    async def test_breakers_are_independent(self, clock):
        registry = CircuitBreakerRegistry(Settings(_env_file=None, breaker_failure_threshold=1), clock=clock)
        await fail_times(registry.get("a"), 1)
        assert registry.get("a").state == CircuitState.OPEN
        assert registry.get("b").state == CircuitState.CLOSED

        states = {s["name"]: s["state"] for s in registry.get_all_states()}
        assert states == {"a": "open", "b": "closed"}

        registry.reset("a")
        assert registry.get("a").state == CircuitState.CLOSED
