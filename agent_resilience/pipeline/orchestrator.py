"""Request Orchestrator: composes the pipeline around a single operation.

Main entry point for executing remote calls:
  1. Normalizes any failure of the raw operation into a DomainError
  2. Gates each attempt through the named Circuit Breaker
  3. Retries retryable failures with exponential backoff
  4. Shares one execution between concurrent calls with the same dedupe key
  5. Logs and reports terminal failures through the notifier

Composition (innermost first):
  operation -> normalize -> circuit breaker -> retry -> dedupe

Dedupe wraps retry, so duplicate callers share one retry sequence. The breaker
sits inside retry, so every attempt is breaker-gated and the circuit can open
in the middle of a retry sequence.

Usage:
    orchestrator = create_orchestrator()

    agents = await orchestrator.request(
        lambda: client.get("/agents"),
        circuit_breaker_name="agents-api",
        dedupe_key="agents:list",
    )
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from agent_resilience.core.config import Settings, settings
from agent_resilience.guard.rate_limiter import RateLimitResult, SlidingWindowRateLimiter
from agent_resilience.pipeline.circuit_breaker import CircuitBreakerRegistry
from agent_resilience.pipeline.correlation import CorrelationContext
from agent_resilience.pipeline.dedupe import RequestDeduplicator
from agent_resilience.pipeline.errors import normalize_error
from agent_resilience.pipeline.notifier import LoggingNotifier, Notifier, handle_error
from agent_resilience.pipeline.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]


class RequestOrchestrator:
    """Composition root owning all shared pipeline state.

    Holds:
      - CircuitBreakerRegistry: per-endpoint breakers
      - RequestDeduplicator: in-flight requests by dedupe key
      - CorrelationContext: trace id attached to every error
      - SlidingWindowRateLimiter: per-key client-side limits
      - Notifier: user-facing error sink

    Independent orchestrators never share state.
    """

    def __init__(
        self,
        config: Settings | None = None,
        notifier: Notifier | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        deduplicator: RequestDeduplicator | None = None,
        correlation: CorrelationContext | None = None,
        rate_limiter: SlidingWindowRateLimiter | None = None,
    ):
        self.config = config or settings
        self.notifier = notifier or LoggingNotifier()
        self.breakers = breakers or CircuitBreakerRegistry(self.config)
        self.deduplicator = deduplicator or RequestDeduplicator(default_ttl=self.config.dedupe_ttl)
        self.correlation = correlation or CorrelationContext()
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            cleanup_probability=self.config.rate_limit_cleanup_probability,
        )
        self.retry_policy = RetryPolicy.from_settings(self.config)

    def _resolve_policy(self, retry_config: RetryPolicy | Mapping[str, Any] | None) -> RetryPolicy:
        if retry_config is None:
            return self.retry_policy
        if isinstance(retry_config, RetryPolicy):
            return retry_config
        return self.retry_policy.with_overrides(**retry_config)

    def build(
        self,
        operation: Operation,
        *,
        retry: bool = True,
        retry_config: RetryPolicy | Mapping[str, Any] | None = None,
        circuit_breaker_name: str | None = None,
        dedupe_key: str | None = None,
        dedupe_ttl: float | None = None,
    ) -> Operation:
        """Wrap ``operation`` in the pipeline without running it."""
        correlation_id = self.correlation.get()

        async def normalized():
            try:
                return await operation()
            except Exception as exc:
                error = normalize_error(exc, {"correlation_id": correlation_id})
                if error is exc:
                    raise
                raise error from exc

        executor = normalized

        if circuit_breaker_name:
            breaker = self.breakers.get(circuit_breaker_name)
            gated = executor

            async def executor():
                return await breaker.call(gated, {"correlation_id": correlation_id})

        if retry:
            policy = self._resolve_policy(retry_config)
            attempt = executor

            async def executor():
                return await with_retry(attempt, policy)

        if dedupe_key:
            shared = executor

            async def executor():
                return await self.deduplicator.run(dedupe_key, shared, ttl=dedupe_ttl)

        return executor

    async def request(
        self,
        operation: Operation,
        *,
        retry: bool = True,
        retry_config: RetryPolicy | Mapping[str, Any] | None = None,
        circuit_breaker_name: str | None = None,
        dedupe_key: str | None = None,
        dedupe_ttl: float | None = None,
        silent: bool = False,
    ) -> Any:
        """Execute ``operation`` through the full pipeline.

        Returns the operation's result.

        Raises:
            DomainError: after retries are exhausted, for non-retryable
                failures and for open-circuit rejections. The error has been
                logged and, unless ``silent``, reported to the notifier.
        """
        executor = self.build(
            operation,
            retry=retry,
            retry_config=retry_config,
            circuit_breaker_name=circuit_breaker_name,
            dedupe_key=dedupe_key,
            dedupe_ttl=dedupe_ttl,
        )
        try:
            return await executor()
        except Exception as exc:
            error = handle_error(
                exc,
                self.notifier,
                silent=silent,
                context={"correlation_id": self.correlation.get()},
                duration=self.config.toast_duration,
                critical_duration=self.config.toast_critical_duration,
            )
            if error is exc:
                raise
            raise error from exc

    def check_rate_limit(self, key: str, limit: int | None = None, window: float | None = None) -> RateLimitResult:
        """Sliding-window check against this orchestrator's limiter."""
        return self.rate_limiter.check(
            key,
            limit=self.config.rate_limit_default_limit if limit is None else limit,
            window=self.config.rate_limit_default_window if window is None else window,
        )

    def get_status(self) -> dict:
        """Get a snapshot of the pipeline's shared state."""
        return {
            "correlation_id": self.correlation.get(),
            "circuits": self.breakers.get_all_states(),
            "pending_requests": self.deduplicator.pending_keys(),
            "rate_limited_keys": len(self.rate_limiter),
        }


def create_orchestrator(notifier: Notifier | None = None, config: Settings | None = None) -> RequestOrchestrator:
    """Build an orchestrator from application settings."""
    config = config or settings
    logger.debug("Creating request orchestrator (env=%s)", config.app_env)
    return RequestOrchestrator(config=config, notifier=notifier)


async def api_request(orchestrator: RequestOrchestrator, operation: Operation, **options: Any) -> Any:
    """Functional form of ``RequestOrchestrator.request``."""
    return await orchestrator.request(operation, **options)
