"""Combinator schema validation.

Validators are small objects with a common interface:

    validator.validate(value, path="") -> ValidationResult
    validator(value, path="")          # same thing

Primitive validators fail fast on the first violated constraint, checked in
this order: required -> type -> length/range -> pattern/format -> enum.
Array and object validators check every child and return all child errors
together.

Usage:
    schema = Schema.object({
        "name": Schema.string(min_length=3),
        "temperature": Schema.number(min=0, max=2, optional=True, default=0.7),
    }, strict=True)

    result = schema({"name": "ab", "extra": 1})
    result.valid     # False
    result.errors    # (ValidationIssue("name", "Minimum length is 3"),
                     #  ValidationIssue("extra", "Unknown field"))
"""

from __future__ import annotations

import copy
import math
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from agent_resilience.guard.validators import is_valid_email, is_valid_url

T = TypeVar("T")

REQUIRED_MESSAGE = "Required field is missing"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationIssue:
    path: str
    message: str


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    """Outcome of one validation call. ``data`` is None when invalid."""

    valid: bool
    errors: tuple[ValidationIssue, ...] = ()
    data: T | None = None

    @classmethod
    def success(cls, data: T | None) -> ValidationResult[T]:
        return cls(valid=True, errors=(), data=data)

    @classmethod
    def failure(cls, errors: ValidationIssue | Iterable[ValidationIssue]) -> ValidationResult[T]:
        if isinstance(errors, ValidationIssue):
            errors = (errors,)
        return cls(valid=False, errors=tuple(errors), data=None)

    @property
    def messages(self) -> list[str]:
        return [issue.message for issue in self.errors]

    @property
    def first_error(self) -> str | None:
        return self.errors[0].message if self.errors else None


# A validator is anything callable as (value, path) -> ValidationResult
ValidatorLike = Callable[[Any, str], ValidationResult]


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


class Validator(ABC, Generic[T]):
    """Base validator: handles missing values, delegates the rest to ``_check``."""

    def __init__(self, *, optional: bool = False, default: Any = None):
        self.optional = optional
        self.default = default

    def validate(self, value: Any, path: str = "") -> ValidationResult[T]:
        if value is None:
            if self.optional:
                return ValidationResult.success(self._default_value())
            return ValidationResult.failure(ValidationIssue(path, REQUIRED_MESSAGE))
        return self._check(value, path)

    def __call__(self, value: Any, path: str = "") -> ValidationResult[T]:
        return self.validate(value, path)

    def _default_value(self) -> Any:
        # Copy so a mutable default is never shared between results
        return copy.deepcopy(self.default)

    @abstractmethod
    def _check(self, value: Any, path: str) -> ValidationResult[T]: ...


class StringValidator(Validator[str]):
    def __init__(
        self,
        *,
        min_length: int | None = None,
        max_length: int | None = None,
        pattern: str | re.Pattern | None = None,
        pattern_message: str = "Invalid format",
        email: bool = False,
        url: bool = False,
        enum: Sequence[str] | None = None,
        trim: bool = True,
        **options: Any,
    ):
        super().__init__(**options)
        self.min_length = min_length
        self.max_length = max_length
        self.pattern = re.compile(pattern) if isinstance(pattern, str) else pattern
        self.pattern_message = pattern_message
        self.email = email
        self.url = url
        self.enum = list(enum) if enum is not None else None
        self.trim = trim

    def _check(self, value: Any, path: str) -> ValidationResult[str]:
        if not isinstance(value, str):
            return ValidationResult.failure(ValidationIssue(path, "Expected string"))

        processed = value.strip() if self.trim else value

        if self.min_length is not None and len(processed) < self.min_length:
            return ValidationResult.failure(ValidationIssue(path, f"Minimum length is {self.min_length}"))
        if self.max_length is not None and len(processed) > self.max_length:
            return ValidationResult.failure(ValidationIssue(path, f"Maximum length is {self.max_length}"))

        if self.pattern is not None and not self.pattern.search(processed):
            return ValidationResult.failure(ValidationIssue(path, self.pattern_message))
        if self.email and not is_valid_email(processed):
            return ValidationResult.failure(ValidationIssue(path, "Invalid email address"))
        if self.url and not is_valid_url(processed):
            return ValidationResult.failure(ValidationIssue(path, "Invalid URL"))

        if self.enum is not None and processed not in self.enum:
            return ValidationResult.failure(ValidationIssue(path, f"Must be one of: {', '.join(self.enum)}"))

        return ValidationResult.success(processed)


class NumberValidator(Validator[float]):
    """Accepts ints, floats and numeric strings. Booleans are not numbers."""

    def __init__(
        self,
        *,
        min: float | None = None,
        max: float | None = None,
        integer: bool = False,
        positive: bool = False,
        **options: Any,
    ):
        super().__init__(**options)
        self.min = min
        self.max = max
        self.integer = integer
        self.positive = positive

    def _check(self, value: Any, path: str) -> ValidationResult[float]:
        num = value
        if isinstance(value, str):
            try:
                num = float(value.strip())
            except ValueError:
                num = None

        if isinstance(num, bool) or not isinstance(num, (int, float)):
            return ValidationResult.failure(ValidationIssue(path, "Expected number"))
        if isinstance(num, float) and math.isnan(num):
            return ValidationResult.failure(ValidationIssue(path, "Expected number"))

        if self.integer:
            if isinstance(num, float) and not num.is_integer():
                return ValidationResult.failure(ValidationIssue(path, "Expected integer"))
            num = int(num)

        if self.min is not None and num < self.min:
            return ValidationResult.failure(ValidationIssue(path, f"Minimum value is {self.min}"))
        if self.max is not None and num > self.max:
            return ValidationResult.failure(ValidationIssue(path, f"Maximum value is {self.max}"))
        if self.positive and num <= 0:
            return ValidationResult.failure(ValidationIssue(path, "Must be positive"))

        return ValidationResult.success(num)


class BooleanValidator(Validator[bool]):
    def _check(self, value: Any, path: str) -> ValidationResult[bool]:
        if isinstance(value, str):
            lowered = value.lower()
            if lowered == "true":
                return ValidationResult.success(True)
            if lowered == "false":
                return ValidationResult.success(False)

        if not isinstance(value, bool):
            return ValidationResult.failure(ValidationIssue(path, "Expected boolean"))
        return ValidationResult.success(value)


class ArrayValidator(Validator[list]):
    def __init__(
        self,
        item: ValidatorLike,
        *,
        min_length: int | None = None,
        max_length: int | None = None,
        optional: bool = False,
        default: Any = None,
    ):
        super().__init__(optional=optional, default=[] if default is None else default)
        self.item = item
        self.min_length = min_length
        self.max_length = max_length

    def _check(self, value: Any, path: str) -> ValidationResult[list]:
        if not isinstance(value, (list, tuple)):
            return ValidationResult.failure(ValidationIssue(path, "Expected array"))

        if self.min_length is not None and len(value) < self.min_length:
            return ValidationResult.failure(ValidationIssue(path, f"Minimum {self.min_length} items required"))
        if self.max_length is not None and len(value) > self.max_length:
            return ValidationResult.failure(ValidationIssue(path, f"Maximum {self.max_length} items allowed"))

        items: list = []
        errors: list[ValidationIssue] = []
        for index, element in enumerate(value):
            result = self.item(element, f"{path}[{index}]")
            if result.valid:
                items.append(result.data)
            else:
                errors.extend(result.errors)

        if errors:
            return ValidationResult.failure(errors)
        return ValidationResult.success(items)


class ObjectValidator(Validator[dict]):
    """Validates declared fields of a mapping; ``strict`` also rejects undeclared keys.

    Fields that validate to None (missing optional fields without a default)
    are left out of the result.
    """

    def __init__(self, shape: Mapping[str, ValidatorLike], *, strict: bool = False, **options: Any):
        super().__init__(**options)
        self.shape = dict(shape)
        self.strict = strict

    def _check(self, value: Any, path: str) -> ValidationResult[dict]:
        if not isinstance(value, Mapping):
            return ValidationResult.failure(ValidationIssue(path, "Expected object"))

        data: dict = {}
        errors: list[ValidationIssue] = []

        for key, validator in self.shape.items():
            result = validator(value.get(key), _join(path, key))
            if not result.valid:
                errors.extend(result.errors)
            elif result.data is not None:
                data[key] = result.data

        if self.strict:
            for key in value:
                if key not in self.shape:
                    errors.append(ValidationIssue(_join(path, str(key)), "Unknown field"))

        if errors:
            return ValidationResult.failure(errors)
        return ValidationResult.success(data)


class ModelValidator(Validator[BaseModel]):
    """Adapts a pydantic model to the validator interface."""

    def __init__(self, model: type[BaseModel], **options: Any):
        super().__init__(**options)
        self.model = model

    def _check(self, value: Any, path: str) -> ValidationResult[BaseModel]:
        if isinstance(value, self.model):
            return ValidationResult.success(value)
        if not isinstance(value, Mapping):
            return ValidationResult.failure(ValidationIssue(path, "Expected object"))

        try:
            instance = self.model.model_validate(value)
        except ValidationError as exc:
            return ValidationResult.failure(
                ValidationIssue(_loc_path(path, err["loc"]), err["msg"]) for err in exc.errors()
            )
        return ValidationResult.success(instance)


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _loc_path(path: str, loc: Sequence[Any]) -> str:
    for part in loc:
        path = f"{path}[{part}]" if isinstance(part, int) else _join(path, str(part))
    return path


class Schema:
    """Factory namespace for validators."""

    @staticmethod
    def string(**options: Any) -> StringValidator:
        return StringValidator(**options)

    @staticmethod
    def number(**options: Any) -> NumberValidator:
        return NumberValidator(**options)

    @staticmethod
    def boolean(**options: Any) -> BooleanValidator:
        return BooleanValidator(**options)

    @staticmethod
    def array(item: ValidatorLike, **options: Any) -> ArrayValidator:
        return ArrayValidator(item, **options)

    @staticmethod
    def object(shape: Mapping[str, ValidatorLike], **options: Any) -> ObjectValidator:
        return ObjectValidator(shape, **options)

    @staticmethod
    def model(model: type[BaseModel], **options: Any) -> ModelValidator:
        return ModelValidator(model, **options)


def validate(schema: ValidatorLike, value: Any) -> ValidationResult:
    return schema(value, "")


# ---------------------------------------------------------------------------
# Domain schemas
# ---------------------------------------------------------------------------

WORKFLOW_NAME_SCHEMA = Schema.string(
    min_length=3,
    max_length=100,
    pattern=r"^[a-zA-Z0-9][a-zA-Z0-9\s_-]*$",
    pattern_message="Must start with letter/number, can contain spaces, underscores, hyphens",
)

AGENT_CONFIG_SCHEMA = Schema.object(
    {
        "provider": Schema.string(enum=["openai", "anthropic"]),
        "model": Schema.string(min_length=1, max_length=50),
        "temperature": Schema.number(min=0, max=2, optional=True, default=0.7),
        "max_tokens": Schema.number(integer=True, min=1, max=100_000, optional=True, default=2000),
        "capabilities": Schema.array(Schema.string(max_length=50), optional=True),
    }
)


def validate_workflow_name(name: Any) -> tuple[bool, str | None]:
    """Returns (valid, first error message)."""
    result = WORKFLOW_NAME_SCHEMA(name)
    return result.valid, result.first_error


def validate_agent_config(config: Any) -> tuple[bool, list[str]]:
    """Returns (valid, error messages)."""
    result = AGENT_CONFIG_SCHEMA(config)
    return result.valid, result.messages
