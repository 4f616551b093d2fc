"""Request Resilience Pipeline.

Wraps opaque async operations with:
  - Error taxonomy & normalization (DomainError)
  - Retry with exponential backoff and jitter
  - Per-endpoint Circuit Breaker
  - Request Deduplication for concurrent identical calls
  - Correlation ID propagation
  - Orchestrator composing all of the above
"""
