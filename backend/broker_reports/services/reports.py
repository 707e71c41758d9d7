"""Extracted report queries and display serialization."""

from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from broker_reports.extraction.pii_redaction import redact_pii_text
from broker_reports.models.extracted_report import ExtractedReport
from broker_reports.normalization.dates import ensure_utc
from broker_reports.normalization.text import normalize_whitespace
from broker_reports.schemas.extraction import ExtractedReportListResponse, ExtractedReportRead
from broker_reports.services.validation import (
    ExtractionRequestError,
    bounded_int,
    optional_datetime,
    require_text,
)

REPORT_LIST_DEFAULT_LIMIT = 30
REPORT_LIST_MAX_LIMIT = 100
MAX_OFFSET = 10_000
LIKE_ESCAPE = "\\"


def _contains_pattern(term: str) -> str:
    """LIKE pattern matching ``term`` literally anywhere in a column."""

    escaped = term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
    for wildcard in ("%", "_"):
        escaped = escaped.replace(wildcard, LIKE_ESCAPE + wildcard)
    return f"%{escaped}%"


def serialize_report(report: ExtractedReport) -> ExtractedReportRead:
    """Build the display payload, redacting free text again on the way out."""

    key_points = [redact_pii_text(point) for point in (report.key_points_json or [])]
    return ExtractedReportRead(
        id=report.id,
        run_id=report.run_id,
        archive_id=report.archive_id,
        user_id=report.user_id,
        broker=report.broker,
        company_canonical=report.company_canonical,
        company_raw=report.company_raw,
        report_type=report.report_type,
        title=redact_pii_text(report.title),
        summary=redact_pii_text(report.summary),
        key_points=[point for point in key_points if point],
        published_at=ensure_utc(report.published_at),
        confidence=float(report.confidence),
        duplicate_key=report.duplicate_key,
        duplicate_of_report_id=report.duplicate_of_report_id,
        dedupe_method=report.dedupe_method,
        created_at=ensure_utc(report.created_at),
    )


def list_reports(
    db: Session,
    user_id: str,
    *,
    broker: str | None = None,
    report_type: str | None = None,
    run_id: str | None = None,
    company: str | None = None,
    query: str | None = None,
    published_from: object = None,
    published_to: object = None,
    include_duplicates: bool = True,
    limit: int | None = None,
    offset: int | None = None,
) -> ExtractedReportListResponse:
    """Return reports for a user, newest published first.

    Text filters are case-insensitive substring matches; ``run_id`` is exact.
    Published bounds are inclusive.
    """

    owner = require_text(user_id, "user_id")
    page_limit = bounded_int(
        limit, "limit", minimum=1, maximum=REPORT_LIST_MAX_LIMIT, default=REPORT_LIST_DEFAULT_LIMIT
    )
    page_offset = bounded_int(offset, "offset", minimum=0, maximum=MAX_OFFSET, default=0)
    lower_bound = optional_datetime(published_from, "published_from")
    upper_bound = optional_datetime(published_to, "published_to")
    if lower_bound is not None and upper_bound is not None and lower_bound > upper_bound:
        raise ExtractionRequestError("published_from cannot be after published_to")

    filters = [ExtractedReport.user_id == owner]
    if not include_duplicates:
        filters.append(ExtractedReport.duplicate_of_report_id.is_(None))
    broker_term = normalize_whitespace(broker)
    if broker_term:
        filters.append(ExtractedReport.broker.ilike(_contains_pattern(broker_term), escape=LIKE_ESCAPE))
    type_term = normalize_whitespace(report_type)
    if type_term:
        filters.append(ExtractedReport.report_type.ilike(_contains_pattern(type_term), escape=LIKE_ESCAPE))
    run_term = normalize_whitespace(run_id)
    if run_term:
        filters.append(ExtractedReport.run_id == run_term)
    company_term = normalize_whitespace(company)
    if company_term:
        filters.append(
            or_(
                ExtractedReport.company_canonical.ilike(_contains_pattern(company_term), escape=LIKE_ESCAPE),
                ExtractedReport.company_raw.ilike(_contains_pattern(company_term), escape=LIKE_ESCAPE),
            )
        )
    query_term = normalize_whitespace(query)
    if query_term:
        filters.append(
            or_(
                ExtractedReport.title.ilike(_contains_pattern(query_term), escape=LIKE_ESCAPE),
                ExtractedReport.summary.ilike(_contains_pattern(query_term), escape=LIKE_ESCAPE),
                ExtractedReport.key_points_text.ilike(_contains_pattern(query_term), escape=LIKE_ESCAPE),
            )
        )
    if lower_bound is not None:
        filters.append(ExtractedReport.published_at >= lower_bound)
    if upper_bound is not None:
        filters.append(ExtractedReport.published_at <= upper_bound)

    total = int(db.scalar(select(func.count(ExtractedReport.id)).where(*filters)) or 0)
    rows = db.scalars(
        select(ExtractedReport)
        .where(*filters)
        .order_by(
            ExtractedReport.published_at.desc(),
            ExtractedReport.created_at.desc(),
            ExtractedReport.id.desc(),
        )
        .limit(page_limit)
        .offset(page_offset)
    ).all()
    return ExtractedReportListResponse(
        items=[serialize_report(row) for row in rows],
        total=total,
        limit=page_limit,
        offset=page_offset,
    )


def get_report(db: Session, user_id: str, report_id: str) -> ExtractedReportRead | None:
    owner = require_text(user_id, "user_id")
    key = require_text(report_id, "report_id")
    report = db.scalar(select(ExtractedReport).where(ExtractedReport.user_id == owner, ExtractedReport.id == key))
    return serialize_report(report) if report is not None else None
