"""Coerce raw adapter output into a storable extracted report."""

from __future__ import annotations

import math
from datetime import datetime

from broker_reports.dedupe.duplicate_key import duplicate_key_for
from broker_reports.extraction.pii_redaction import parse_from_header, redact_pii_text
from broker_reports.extraction.types import ArchiveRecord, RawReport
from broker_reports.models.extracted_report import ExtractedReport
from broker_reports.normalization.company import UNKNOWN_COMPANY
from broker_reports.normalization.dates import ensure_utc, parse_datetime
from broker_reports.normalization.text import normalize_whitespace

UNMAPPED_BROKER = "Unmapped Broker"
DEFAULT_REPORT_TYPE = "broker_note"
UNTITLED_REPORT = "Untitled brokerage report"
NO_SUMMARY = "No summary available."
DEFAULT_CONFIDENCE = 0.25
MAX_KEY_POINTS = 10


def _normalize_confidence(value: object) -> float:
    if value is None or isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if not math.isfinite(numeric):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, numeric))


def key_points_search_text(key_points: list[str]) -> str:
    """Plain text copy of the key points, one per line, for substring search."""

    return "\n".join(key_points)


def build_extracted_report(
    raw: RawReport,
    *,
    archive: ArchiveRecord,
    run_id: str,
    user_id: str,
    report_id: str,
    now: datetime,
) -> ExtractedReport:
    """Fill defaults, redact free text and compute the duplicate key.

    The returned report is not attached to any session.
    """

    sender_name, sender_email = parse_from_header(archive.from_header)

    def _redact(value: object) -> str:
        return redact_pii_text(normalize_whitespace(value), sender_name=sender_name, sender_email=sender_email)

    key_points = [point for point in (_redact(item) for item in (raw.key_points or [])) if point][:MAX_KEY_POINTS]
    published_at = parse_datetime(raw.published_at) or parse_datetime(archive.date_header) or ensure_utc(now)

    report = ExtractedReport(
        id=report_id,
        run_id=run_id,
        archive_id=archive.id,
        user_id=user_id,
        broker=normalize_whitespace(raw.broker) or UNMAPPED_BROKER,
        company_canonical=normalize_whitespace(raw.company_canonical) or UNKNOWN_COMPANY,
        company_raw=normalize_whitespace(raw.company_raw) or UNKNOWN_COMPANY,
        report_type=normalize_whitespace(raw.report_type) or DEFAULT_REPORT_TYPE,
        title=_redact(normalize_whitespace(raw.title) or normalize_whitespace(archive.subject) or UNTITLED_REPORT)
        or UNTITLED_REPORT,
        summary=_redact(normalize_whitespace(raw.summary) or NO_SUMMARY) or NO_SUMMARY,
        key_points_json=key_points,
        key_points_text=key_points_search_text(key_points),
        published_at=published_at,
        confidence=_normalize_confidence(raw.confidence),
        duplicate_of_report_id=None,
        dedupe_method=None,
        created_at=ensure_utc(now),
        updated_at=ensure_utc(now),
    )
    report.duplicate_key = duplicate_key_for(report)
    return report
