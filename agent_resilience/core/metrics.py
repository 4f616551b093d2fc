"""Prometheus metrics for the resilience pipeline."""

from prometheus_client import REGISTRY, Counter, Info, generate_latest

# --- Metrics ---

APP_INFO = Info("agent_resilience", "Resilience pipeline build info")
APP_INFO.info({"version": "1.0.0", "name": "agent_resilience"})

RETRY_ATTEMPTS = Counter(
    "resilience_retry_attempts_total",
    "Retries scheduled after a retryable failure",
    ["code"],
)

CIRCUIT_TRANSITIONS = Counter(
    "resilience_circuit_transitions_total",
    "Circuit breaker state transitions",
    ["circuit", "state"],
)

CIRCUIT_REJECTIONS = Counter(
    "resilience_circuit_rejections_total",
    "Calls rejected without invoking the operation",
    ["circuit"],
)

DEDUPE_HITS = Counter(
    "resilience_dedupe_hits_total",
    "Calls that joined an in-flight request instead of starting a new one",
)

RATE_LIMIT_DECISIONS = Counter(
    "resilience_rate_limit_decisions_total",
    "Sliding-window rate limit checks",
    ["allowed"],
)

ERRORS_SURFACED = Counter(
    "resilience_errors_total",
    "Terminal errors surfaced to callers",
    ["code", "severity"],
)


def metrics_text() -> str:
    """Render all metrics in the Prometheus text exposition format."""
    return generate_latest(REGISTRY).decode("utf-8")
