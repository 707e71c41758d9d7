"""Deterministic exact-match duplicate key for extracted reports."""

from __future__ import annotations

import hashlib

from broker_reports.normalization.dates import to_utc_day_bucket
from broker_reports.normalization.text import normalize_for_key

DUPLICATE_KEY_PREFIX = "rpt"
_DIGEST_LENGTH = 24


def _safe_part(value: object, fallback: str) -> str:
    return normalize_for_key(value) or fallback


def build_duplicate_key(
    *,
    user_id: object,
    broker: object,
    company_canonical: object,
    report_type: object,
    title: object,
    published_at: object,
) -> str:
    """Return ``rpt_<day>_<hash>`` for the six identifying report fields.

    Field order is part of the key format; reordering changes every stored key.
    """

    day_bucket = to_utc_day_bucket(published_at)
    raw_key = "|".join(
        (
            _safe_part(user_id, "unknown-user"),
            _safe_part(broker, "unknown-broker"),
            _safe_part(company_canonical, "unknown-company"),
            _safe_part(report_type, "general_update"),
            _safe_part(title, "untitled"),
            day_bucket,
        )
    )
    digest = hashlib.sha256(raw_key.encode("utf-8")).hexdigest()[:_DIGEST_LENGTH]
    return f"{DUPLICATE_KEY_PREFIX}_{day_bucket}_{digest}"


def duplicate_key_for(report: object) -> str:
    """Build the duplicate key from any object exposing the report attributes."""

    return build_duplicate_key(
        user_id=getattr(report, "user_id", None),
        broker=getattr(report, "broker", None),
        company_canonical=getattr(report, "company_canonical", None),
        report_type=getattr(report, "report_type", None),
        title=getattr(report, "title", None),
        published_at=getattr(report, "published_at", None),
    )
