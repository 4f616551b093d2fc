"""Format predicates shared by schema validators and callers."""

from __future__ import annotations

import json
import re
from typing import Any
from urllib.parse import urlparse

_EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_SEMVER_PATTERN = re.compile(r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?(\+[a-zA-Z0-9.]+)?$")


def is_valid_email(value: Any) -> bool:
    if not value or not isinstance(value, str):
        return False
    return bool(_EMAIL_PATTERN.fullmatch(value))


def is_valid_url(value: Any) -> bool:
    """Absolute http(s) URL with a host."""
    if not value or not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_valid_uuid(value: Any) -> bool:
    if not value or not isinstance(value, str):
        return False
    return bool(_UUID_PATTERN.fullmatch(value))


def is_valid_semver(value: Any) -> bool:
    if not value or not isinstance(value, str):
        return False
    return bool(_SEMVER_PATTERN.fullmatch(value))


def is_valid_json(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        json.loads(value)
    except ValueError:
        return False
    return True
