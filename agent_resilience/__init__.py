"""Client-side resilience pipeline and input/output guard for agent dashboards."""

from agent_resilience.guard.rate_limiter import RateLimitResult, SlidingWindowRateLimiter
from agent_resilience.guard.sanitize import (
    InjectionReport,
    RiskLevel,
    Threat,
    detect_prompt_injection,
    sanitize_html,
    sanitize_input,
    sanitize_prompt_input,
)
from agent_resilience.guard.schema import (
    Schema,
    ValidationIssue,
    ValidationResult,
    validate,
    validate_agent_config,
    validate_workflow_name,
)
from agent_resilience.pipeline.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry, CircuitState
from agent_resilience.pipeline.correlation import CorrelationContext
from agent_resilience.pipeline.dedupe import RequestDeduplicator
from agent_resilience.pipeline.errors import DomainError, ErrorCode, Severity, normalize_error
from agent_resilience.pipeline.notifier import LoggingNotifier, Notifier, RecordingNotifier, handle_error
from agent_resilience.pipeline.orchestrator import RequestOrchestrator, api_request, create_orchestrator
from agent_resilience.pipeline.retry import RetryPolicy, calculate_backoff, with_retry

__version__ = "1.0.0"

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "CorrelationContext",
    "DomainError",
    "ErrorCode",
    "InjectionReport",
    "LoggingNotifier",
    "Notifier",
    "RateLimitResult",
    "RecordingNotifier",
    "RequestDeduplicator",
    "RequestOrchestrator",
    "RetryPolicy",
    "RiskLevel",
    "Schema",
    "Severity",
    "SlidingWindowRateLimiter",
    "Threat",
    "ValidationIssue",
    "ValidationResult",
    "api_request",
    "calculate_backoff",
    "create_orchestrator",
    "detect_prompt_injection",
    "handle_error",
    "normalize_error",
    "sanitize_html",
    "sanitize_input",
    "sanitize_prompt_input",
    "validate",
    "validate_agent_config",
    "validate_workflow_name",
    "with_retry",
]
