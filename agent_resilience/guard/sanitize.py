"""Output escaping, input sanitization and prompt-injection heuristics.

``sanitize_html`` escapes each character exactly once per call. It is NOT
idempotent: escaping already-escaped text encodes the ampersands again, so
callers must escape a value exactly once, right before display.

``detect_prompt_injection`` is best-effort classification against a fixed
signature list. It never blocks anything and false negatives are expected.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# HTML escaping
# ---------------------------------------------------------------------------

HTML_ENTITIES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
    "`": "&#x60;",
    "=": "&#x3D;",
}

_HTML_TABLE = str.maketrans(HTML_ENTITIES)
_TAG_PATTERN = re.compile(r"<[^>]*>")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_html(value: Any) -> Any:
    """Escape HTML-significant characters. Non-strings are returned unchanged."""
    if not isinstance(value, str):
        return value
    return value.translate(_HTML_TABLE)


def strip_html(value: str) -> str:
    """Remove anything that looks like a tag."""
    return _TAG_PATTERN.sub("", value)


def sanitize_input(
    value: Any,
    *,
    trim: bool = True,
    escape_html: bool = True,
    normalize_unicode: bool = False,
    max_length: int | None = None,
) -> Any:
    """Sanitize a string, or every string key and value inside lists and dicts."""
    options = {
        "trim": trim,
        "escape_html": escape_html,
        "normalize_unicode": normalize_unicode,
        "max_length": max_length,
    }

    if isinstance(value, str):
        sanitized = value.strip() if trim else value
        if escape_html:
            sanitized = sanitize_html(sanitized)
        sanitized = sanitized.replace("\0", "")
        if normalize_unicode:
            sanitized = unicodedata.normalize("NFC", sanitized)
        if max_length is not None and len(sanitized) > max_length:
            sanitized = sanitized[:max_length]
        return sanitized

    if isinstance(value, (list, tuple)):
        return [sanitize_input(item, **options) for item in value]

    if isinstance(value, dict):
        return {sanitize_input(key, **options): sanitize_input(item, **options) for key, item in value.items()}

    return value


def sanitize_prompt_input(value: Any, *, escape_markdown: bool = False, max_length: int = 10_000) -> Any:
    """Prepare free text for inclusion in an LLM prompt.

    Drops control characters, collapses whitespace, optionally strips
    markdown structure, and truncates with a trailing ellipsis.
    """
    if not isinstance(value, str):
        return value

    sanitized = _CONTROL_CHARS.sub("", value)
    sanitized = re.sub(r"\s+", " ", sanitized).strip()

    if escape_markdown:
        sanitized = re.sub(r"^#+\s", "", sanitized, flags=re.MULTILINE)
        sanitized = re.sub(r"^>\s", "", sanitized, flags=re.MULTILINE)
        sanitized = re.sub(r"^-\s", "• ", sanitized, flags=re.MULTILINE)
        sanitized = sanitized.replace("**", "").replace("__", "")

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "..."
    return sanitized


# ---------------------------------------------------------------------------
# Prompt injection
# ---------------------------------------------------------------------------


class RiskLevel(str, Enum):
    NONE = "none"
    LOW = "low"  # 1-2 threats
    HIGH = "high"  # more than 2 threats


@dataclass(frozen=True)
class Threat:
    category: str
    pattern: str
    match: str


@dataclass(frozen=True)
class InjectionReport:
    safe: bool
    threats: list[Threat] = field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.NONE


# Evaluated in order; each signature contributes at most one threat
INJECTION_SIGNATURES: list[tuple[str, re.Pattern]] = [
    ("instruction_override", re.compile(r"ignore\s+(previous|all|above|prior)\s+(instructions?|prompts?|rules?)", re.I)),
    ("instruction_override", re.compile(r"disregard\s+(previous|all|above|prior)", re.I)),
    ("instruction_override", re.compile(r"forget\s+(everything|all|previous)", re.I)),
    ("role_hijack", re.compile(r"you\s+are\s+(now|actually)\s+(a|an)\b", re.I)),
    ("role_hijack", re.compile(r"pretend\s+(to\s+be|you're)", re.I)),
    ("role_hijack", re.compile(r"act\s+as\s+(if\s+you're|a)\b", re.I)),
    ("role_hijack", re.compile(r"roleplay\s+as", re.I)),
    ("prompt_extraction", re.compile(r"what\s+(is|are)\s+your\s+(instructions?|rules?|system\s+prompt)", re.I)),
    ("prompt_extraction", re.compile(r"show\s+(me\s+)?your\s+(system\s+)?prompt", re.I)),
    ("prompt_extraction", re.compile(r"reveal\s+(your\s+)?instructions", re.I)),
    ("jailbreak", re.compile(r"do\s+anything\s+now", re.I)),
    ("jailbreak", re.compile(r"developer\s+mode", re.I)),
    ("jailbreak", re.compile(r"jailbreak", re.I)),
    ("jailbreak", re.compile(r"bypass\s+(restrictions?|filters?|safety)", re.I)),
    ("script_injection", re.compile(r"<\s*script[^>]*>", re.I)),
    ("script_injection", re.compile(r"javascript\s*:", re.I)),
    ("script_injection", re.compile(r"on(error|load|click)\s*=", re.I)),
    ("sql_injection", re.compile(r"\b(union|select|insert|update|delete|drop|alter)\b.*\b(from|into|table|database)\b", re.I)),
    ("sql_injection", re.compile(r"--|/\*")),
    ("template_injection", re.compile(r"\{\{.*\}\}")),
    ("template_injection", re.compile(r"\$\{.*\}")),
]

SPECIAL_CHAR_THRESHOLD = 10
_SPECIAL_CHARS = re.compile(r"[<>{}\[\]]")
_BASE64_RUN = re.compile(r"[A-Za-z0-9+/]{40,}={0,2}")


def detect_prompt_injection(value: Any) -> InjectionReport:
    """Classify input against known injection signatures and heuristics."""
    if not isinstance(value, str):
        return InjectionReport(safe=True)

    threats: list[Threat] = []
    for category, pattern in INJECTION_SIGNATURES:
        found = pattern.search(value)
        if found:
            threats.append(Threat(category=category, pattern=pattern.pattern, match=found.group(0)))

    if len(_SPECIAL_CHARS.findall(value)) > SPECIAL_CHAR_THRESHOLD:
        threats.append(
            Threat(
                category="obfuscation",
                pattern="excessive_special_chars",
                match="Multiple special characters detected",
            )
        )

    if _BASE64_RUN.search(value):
        threats.append(
            Threat(
                category="obfuscation",
                pattern="base64_payload",
                match="Potential encoded payload detected",
            )
        )

    if not threats:
        risk = RiskLevel.NONE
    elif len(threats) <= 2:
        risk = RiskLevel.LOW
    else:
        risk = RiskLevel.HIGH

    return InjectionReport(safe=not threats, threats=threats, risk_level=risk)


# ---------------------------------------------------------------------------
# Secrets & PII
# ---------------------------------------------------------------------------

REDACTED = "***REDACTED***"

SECRET_PATTERNS = [
    re.compile(r"(?:api[_-]?key|apikey)[\s:=]+['\"]?([a-zA-Z0-9_\-]{32,})['\"]?", re.I),
    re.compile(r"(?:secret[_-]?key|secretkey)[\s:=]+['\"]?([a-zA-Z0-9_\-]{32,})['\"]?", re.I),
    re.compile(r"(?:access[_-]?token|accesstoken)[\s:=]+['\"]?([a-zA-Z0-9_\-]{32,})['\"]?", re.I),
    re.compile(r"(?:private[_-]?key|privatekey)[\s:=]+['\"]?([a-zA-Z0-9_\-]{32,})['\"]?", re.I),
    re.compile(r"(?:password|passwd|pwd)[\s:=]+['\"]?([a-zA-Z0-9_\-!@#$%^&*]{8,})['\"]?", re.I),
]

PII_PATTERNS = [
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),  # SSN
    re.compile(r"\b\d{16}\b"),  # Card number
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),  # Email
    re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"),  # Phone
]


def contains_secrets(value: str) -> bool:
    return any(pattern.search(value) for pattern in SECRET_PATTERNS)


def redact_secrets(value: str) -> str:
    """Replace the secret part of ``key=secret`` style assignments, keeping the key."""
    for pattern in SECRET_PATTERNS:
        value = pattern.sub(lambda m: m.group(0).replace(m.group(1), REDACTED), value)
    return value


def contains_pii(value: str) -> bool:
    return any(pattern.search(value) for pattern in PII_PATTERNS)


def redact_pii(value: str) -> str:
    for pattern in PII_PATTERNS:
        value = pattern.sub(REDACTED, value)
    return value
