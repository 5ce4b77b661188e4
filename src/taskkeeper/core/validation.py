# src/taskkeeper/core/validation.py

"""Input coercion used by drafts and patches. Every failure is a ValidationError."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import TypeVar

from .clock import parse_ts
from .errors import ValidationError

E = TypeVar("E", bound=StrEnum)


def require_text(value: object, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def optional_text(value: object, field: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip()


def optional_id(value: object, field: str) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string id")
    return value.strip() or None


def parse_choice(enum_cls: type[E], value: object, field: str) -> E:
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed} (got {value!r})") from None


def positive_int(value: object, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer")
    try:
        n = int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a positive integer") from None
    if n < 1:
        raise ValidationError(f"{field} must be a positive integer")
    return n


def optional_ts(value: object, field: str) -> datetime | None:
    try:
        return parse_ts(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 timestamp (got {value!r})") from None


def percentage(value: object, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be between 0 and 100")
    try:
        n = int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be between 0 and 100") from None
    if not 0 <= n <= 100:
        raise ValidationError(f"{field} must be between 0 and 100")
    return n
