"""Timestamp parsing and UTC day bucketing."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

UNKNOWN_DAY = "unknown-day"


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: object) -> datetime | None:
    """Parse ISO-8601 strings, RFC 2822 date headers, epoch millis or datetimes.

    Returns an aware UTC datetime, or ``None`` when the value is empty or
    unparsable.
    """

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    text = str(value).strip()
    if not text:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    return ensure_utc(parsed)


def to_iso_string(value: datetime | None) -> str | None:
    if value is None:
        return None
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def to_utc_day_bucket(value: object) -> str:
    """Return the UTC calendar day (``YYYY-MM-DD``) or ``unknown-day``."""

    parsed = parse_datetime(value)
    if parsed is None:
        return UNKNOWN_DAY
    return parsed.strftime("%Y-%m-%d")


def resolve_archive_published_at(
    *,
    date_header: object,
    internal_date_ms: object,
    ingested_at: object,
    now: datetime,
) -> datetime:
    """Pick the best publication time for an archive: header, provider date, ingest time."""

    from_header = parse_datetime(date_header)
    if from_header is not None:
        return from_header

    if internal_date_ms not in (None, ""):
        try:
            from_internal = parse_datetime(int(str(internal_date_ms)))
        except ValueError:
            from_internal = None
        if from_internal is not None:
            return from_internal

    from_ingested = parse_datetime(ingested_at)
    if from_ingested is not None:
        return from_ingested
    return ensure_utc(now)
