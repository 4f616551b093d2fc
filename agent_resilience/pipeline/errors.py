"""Error taxonomy and normalization.

Every failure that crosses a pipeline boundary is a DomainError. Raw failures
(httpx errors and responses, arbitrary exceptions, cancellations, dict-shaped
error payloads) are converted once, as close to the failing call as possible,
and the attached ``retryable`` flag is trusted downstream.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any

import httpx


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ErrorCode(str, Enum):
    """Closed set of error codes understood by callers."""

    # Auth
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    SESSION_EXPIRED = "SESSION_EXPIRED"

    # Resource
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    GONE = "GONE"

    # Input
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_FORMAT = "INVALID_FORMAT"
    MISSING_REQUIRED = "MISSING_REQUIRED"

    # Rate / quota
    RATE_LIMITED = "RATE_LIMITED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"

    # Server
    SERVER_ERROR = "SERVER_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    GATEWAY_TIMEOUT = "GATEWAY_TIMEOUT"

    # Client
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    ABORTED = "ABORTED"

    # AI provider
    AI_PROVIDER_ERROR = "AI_PROVIDER_ERROR"
    AI_RATE_LIMITED = "AI_RATE_LIMITED"
    AI_CONTENT_FILTERED = "AI_CONTENT_FILTERED"
    AI_CONTEXT_TOO_LONG = "AI_CONTEXT_TOO_LONG"

    @classmethod
    def parse(cls, value: Any) -> ErrorCode | None:
        """Return the matching code, or None for anything outside the taxonomy."""
        try:
            return cls(value)
        except ValueError:
            return None


class Severity(str, Enum):
    """Error severity, ordered low < medium < high < critical."""

    LOW = "low"  # Informational, self-recovering
    MEDIUM = "medium"  # User-facing, needs attention
    HIGH = "high"  # Service degradation
    CRITICAL = "critical"  # Service outage

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def at_least(self, other: Severity | str) -> bool:
        return self.rank >= Severity(other).rank


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


# ---------------------------------------------------------------------------
# DomainError
# ---------------------------------------------------------------------------


class DomainError(Exception):
    """The single normalized error representation used across the pipeline.

    Attributes are fixed at construction; assigning to them afterwards raises
    AttributeError. ``context`` is a read-only mapping.
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool = False,
        trace_id: str | None = None,
        status: int | None = None,
        severity: Severity | str = Severity.MEDIUM,
        context: Mapping[str, Any] | None = None,
        timestamp: datetime | None = None,
    ):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.hint = hint
        self.retryable = retryable
        self.trace_id = trace_id
        self.status = status
        self.severity = Severity(severity)
        self.timestamp = timestamp or datetime.now(timezone.utc)
        self.context = MappingProxyType(dict(context or {}))
        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        # Dunder attributes (__traceback__, __cause__, __notes__) stay writable for the interpreter
        if self.__dict__.get("_frozen") and not name.startswith("__"):
            raise AttributeError(f"{type(self).__name__} is immutable; cannot set {name!r}")
        super().__setattr__(name, value)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code.value!r}, message={self.message!r}, "
            f"status={self.status!r}, retryable={self.retryable!r})"
        )

    @property
    def display_message(self) -> str:
        """Message shown to users: message plus hint when one exists."""
        if self.hint:
            return f"{self.message}. {self.hint}"
        return self.message

    def to_dict(self) -> dict:
        """Serialize to the fixed JSON-compatible shape."""
        return {
            "name": type(self).__name__,
            "code": self.code.value,
            "message": self.message,
            "hint": self.hint,
            "retryable": self.retryable,
            "trace_id": self.trace_id,
            "status": self.status,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
        }


# ---------------------------------------------------------------------------
# Status mapping
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatusMapping:
    """Default classification for an HTTP-like status code."""

    code: ErrorCode
    message: str
    retryable: bool = False
    severity: Severity = Severity.MEDIUM


STATUS_TO_ERROR: dict[int, StatusMapping] = {
    400: StatusMapping(ErrorCode.VALIDATION_ERROR, "Invalid request", severity=Severity.LOW),
    401: StatusMapping(ErrorCode.UNAUTHORIZED, "Authentication required"),
    403: StatusMapping(ErrorCode.FORBIDDEN, "Permission denied"),
    404: StatusMapping(ErrorCode.NOT_FOUND, "Resource not found", severity=Severity.LOW),
    409: StatusMapping(ErrorCode.CONFLICT, "Resource conflict"),
    410: StatusMapping(ErrorCode.GONE, "Resource no longer available", severity=Severity.LOW),
    422: StatusMapping(ErrorCode.VALIDATION_ERROR, "Invalid input", severity=Severity.LOW),
    429: StatusMapping(ErrorCode.RATE_LIMITED, "Too many requests", retryable=True),
    500: StatusMapping(ErrorCode.SERVER_ERROR, "Server error", retryable=True, severity=Severity.HIGH),
    502: StatusMapping(ErrorCode.SERVICE_UNAVAILABLE, "Service unavailable", retryable=True, severity=Severity.HIGH),
    503: StatusMapping(
        ErrorCode.SERVICE_UNAVAILABLE,
        "Service temporarily unavailable",
        retryable=True,
        severity=Severity.HIGH,
    ),
    504: StatusMapping(ErrorCode.GATEWAY_TIMEOUT, "Gateway timeout", retryable=True, severity=Severity.HIGH),
}

_UNMAPPED_SERVER = StatusMapping(ErrorCode.SERVER_ERROR, "Unexpected error", retryable=True, severity=Severity.HIGH)
_UNMAPPED_CLIENT = StatusMapping(ErrorCode.SERVER_ERROR, "Unexpected error", retryable=False, severity=Severity.MEDIUM)


def mapping_for_status(status: int) -> StatusMapping:
    """Table entry for a status, falling back to the 5xx / non-5xx defaults."""
    mapping = STATUS_TO_ERROR.get(status)
    if mapping is not None:
        return mapping
    return _UNMAPPED_SERVER if status >= 500 else _UNMAPPED_CLIENT


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize_error(raw: Any, context: Mapping[str, Any] | None = None) -> DomainError:
    """Convert any failure into a DomainError.

    A DomainError is returned unchanged. Cancellations become ABORTED, failures
    without a status become NETWORK_ERROR, and anything carrying a status is
    classified by STATUS_TO_ERROR with server-supplied body fields taking
    precedence over the table.
    """
    if isinstance(raw, DomainError):
        return raw

    if isinstance(raw, asyncio.CancelledError):
        return DomainError(
            ErrorCode.ABORTED,
            "Request was cancelled",
            retryable=False,
            severity=Severity.LOW,
            context=context,
        )

    status, body, headers = _extract_failure(raw)

    if status is None:
        return DomainError(
            ErrorCode.NETWORK_ERROR,
            "Network connection failed",
            hint="Check your internet connection",
            retryable=True,
            severity=Severity.HIGH,
            context=context,
        )

    mapping = mapping_for_status(status)
    server_retryable = body.get("retryable")

    return DomainError(
        ErrorCode.parse(body.get("code")) or mapping.code,
        body.get("message") or mapping.message,
        hint=body.get("hint") or None,
        retryable=mapping.retryable if server_retryable is None else bool(server_retryable),
        trace_id=body.get("trace_id") or _header(headers, "x-trace-id"),
        status=status,
        severity=mapping.severity,
        context=context,
    )


def _extract_failure(raw: Any) -> tuple[int | None, Mapping[str, Any], Any]:
    """Pull (status, body, headers) out of whatever shape the failure has."""
    if isinstance(raw, Mapping):
        status = raw.get("status") or raw.get("status_code")
        body = raw.get("data") or raw.get("body")
        headers = raw.get("headers")
    else:
        if isinstance(raw, httpx.Response):
            response = raw
        else:
            response = getattr(raw, "response", None)

        if response is not None:
            status = getattr(response, "status_code", None) or getattr(response, "status", None)
            body = _response_body(response)
            headers = getattr(response, "headers", None)
        else:
            status = getattr(raw, "status_code", None) or getattr(raw, "status", None)
            body = getattr(raw, "data", None) or getattr(raw, "body", None)
            headers = getattr(raw, "headers", None)

    if not isinstance(body, Mapping):
        body = {}
    return _coerce_status(status), body, headers or {}


def _response_body(response: Any) -> Any:
    if isinstance(response, httpx.Response):
        try:
            return response.json()
        except (ValueError, httpx.ResponseNotRead):
            # Non-JSON body, or a streamed response whose body was never read
            return None
    return getattr(response, "data", None) or getattr(response, "body", None)


def _coerce_status(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _header(headers: Any, name: str) -> str | None:
    if isinstance(headers, httpx.Headers):
        return headers.get(name)
    if isinstance(headers, Mapping):
        for key, value in headers.items():
            if isinstance(key, str) and key.lower() == name:
                return value
    return None
