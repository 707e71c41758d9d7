"""Input validation shared by the extraction services."""

from __future__ import annotations

from datetime import datetime

from broker_reports.normalization.dates import parse_datetime
from broker_reports.normalization.text import normalize_whitespace


class ExtractionRequestError(ValueError):
    """Raised for malformed caller input before any state is touched."""


def require_text(value: object, field_name: str) -> str:
    text = normalize_whitespace(value)
    if not text:
        raise ExtractionRequestError(f"{field_name} is required")
    return text


def optional_text(value: object, field_name: str) -> str | None:
    """``None`` stays ``None``; a present but blank value is rejected."""

    if value is None:
        return None
    text = normalize_whitespace(value)
    if not text:
        raise ExtractionRequestError(f"{field_name} must not be empty")
    return text


def bounded_int(value: object, field_name: str, *, minimum: int, maximum: int, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ExtractionRequestError(f"{field_name} must be an integer")
    if value < minimum or value > maximum:
        raise ExtractionRequestError(f"{field_name} must be between {minimum} and {maximum}")
    return value


def optional_datetime(value: object, field_name: str) -> datetime | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise ExtractionRequestError(f"Invalid {field_name} date")
    return parsed
