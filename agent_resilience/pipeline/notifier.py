"""Terminal error reporting: structured log line plus a user-facing notification.

The notifier is the only UI-facing surface of the pipeline. Applications plug
in their own sink (a toast queue, a websocket push); the default just logs.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from agent_resilience.core.metrics import ERRORS_SURFACED
from agent_resilience.pipeline.errors import DomainError, Severity, normalize_error

logger = logging.getLogger(__name__)

DEFAULT_DURATION = 4.0
CRITICAL_DURATION = 10.0


class Notifier(Protocol):
    def __call__(self, message: str, severity: Severity, duration: float) -> None: ...


class LoggingNotifier:
    """Default sink: writes notifications to the ``agent_resilience.notifications`` logger."""

    def __init__(self, name: str = "agent_resilience.notifications"):
        self._logger = logging.getLogger(name)

    def __call__(self, message: str, severity: Severity, duration: float) -> None:
        self._logger.warning("[%s] %s", severity.value, message, extra={"severity": severity.value})


@dataclass
class Notification:
    message: str
    severity: Severity
    duration: float
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class RecordingNotifier:
    """Keeps notifications in memory for UIs that poll, and for tests."""

    def __init__(self):
        self.notifications: list[Notification] = []

    def __call__(self, message: str, severity: Severity, duration: float) -> None:
        self.notifications.append(Notification(message=message, severity=severity, duration=duration))

    def clear(self) -> int:
        count = len(self.notifications)
        self.notifications.clear()
        return count


def handle_error(
    error: Any,
    notifier: Notifier | None = None,
    *,
    silent: bool = False,
    context: Mapping[str, Any] | None = None,
    duration: float = DEFAULT_DURATION,
    critical_duration: float = CRITICAL_DURATION,
) -> DomainError:
    """Log a terminal failure and notify the user unless ``silent``.

    Severity HIGH and above log at ERROR, everything else at WARNING.
    CRITICAL notifications stay on screen for ``critical_duration``.
    """
    normalized = normalize_error(error, context)
    extra = {
        "code": normalized.code.value,
        "severity": normalized.severity.value,
        "trace_id": normalized.trace_id,
        "retryable": normalized.retryable,
        "correlation_id": normalized.context.get("correlation_id"),
    }
    ERRORS_SURFACED.labels(code=normalized.code.value, severity=normalized.severity.value).inc()

    level = logging.ERROR if normalized.severity.at_least(Severity.HIGH) else logging.WARNING
    logger.log(
        level,
        "Request failed: %s %s (retryable=%s)",
        normalized.code.value,
        normalized.message,
        normalized.retryable,
        extra=extra,
    )

    if not silent:
        notifier = notifier or LoggingNotifier()
        notifier(
            normalized.display_message,
            normalized.severity,
            critical_duration if normalized.severity == Severity.CRITICAL else duration,
        )

    return normalized
