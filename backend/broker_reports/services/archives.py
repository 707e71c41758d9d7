"""Archived email ingestion and listing."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from broker_reports.extraction.types import ArchiveRecord
from broker_reports.models.email_archive import EmailArchive
from broker_reports.normalization.dates import ensure_utc
from broker_reports.normalization.text import normalize_whitespace
from broker_reports.schemas.archive import EmailArchiveCreate, EmailArchiveListResponse, EmailArchiveRead
from broker_reports.services.validation import bounded_int, optional_text, require_text


def _new_archive_id() -> str:
    return f"arch_{uuid4().hex}"


def create_archives(
    db: Session,
    user_id: str,
    archives: Iterable[EmailArchiveCreate],
    *,
    id_factory: Callable[[], str] | None = None,
    now: datetime | None = None,
) -> list[EmailArchiveRead]:
    """Insert archived emails for a user; the caller commits."""

    owner = require_text(user_id, "user_id")
    make_id = id_factory or _new_archive_id
    ingested_default = ensure_utc(now or datetime.now(timezone.utc))

    rows: list[EmailArchive] = []
    for payload in archives:
        row = EmailArchive(
            id=normalize_whitespace(payload.id) or make_id(),
            user_id=owner,
            broker=normalize_whitespace(payload.broker) or None,
            from_header=payload.from_header,
            subject=payload.subject,
            snippet=payload.snippet,
            body_preview=payload.body_preview,
            date_header=payload.date_header,
            internal_date_ms=payload.internal_date_ms,
            ingested_at=ensure_utc(payload.ingested_at) if payload.ingested_at else ingested_default,
        )
        db.add(row)
        rows.append(row)
    db.flush()
    return [EmailArchiveRead.model_validate(row) for row in rows]


def list_archives(
    db: Session,
    user_id: str,
    *,
    broker: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> EmailArchiveListResponse:
    """Return a user's archives oldest-ingested first."""

    owner = require_text(user_id, "user_id")
    broker_filter = optional_text(broker, "broker")
    page_limit = bounded_int(limit, "limit", minimum=1, maximum=200, default=50)
    page_offset = bounded_int(offset, "offset", minimum=0, maximum=10_000, default=0)

    filters = [EmailArchive.user_id == owner]
    if broker_filter:
        filters.append(func.lower(EmailArchive.broker) == broker_filter.lower())

    total = int(db.scalar(select(func.count(EmailArchive.id)).where(*filters)) or 0)
    rows = db.scalars(
        select(EmailArchive)
        .where(*filters)
        .order_by(EmailArchive.ingested_at.asc(), EmailArchive.id.asc())
        .limit(page_limit)
        .offset(page_offset)
    ).all()
    return EmailArchiveListResponse(
        items=[EmailArchiveRead.model_validate(row) for row in rows],
        total=total,
        limit=page_limit,
        offset=page_offset,
    )


def to_archive_record(archive: EmailArchive) -> ArchiveRecord:
    """Detach an archive row into an immutable record safe to use outside a session."""

    return ArchiveRecord(
        id=archive.id,
        user_id=archive.user_id,
        broker=archive.broker,
        subject=archive.subject,
        snippet=archive.snippet,
        body_preview=archive.body_preview,
        date_header=archive.date_header,
        ingested_at=ensure_utc(archive.ingested_at) if archive.ingested_at else None,
        from_header=archive.from_header,
        internal_date_ms=archive.internal_date_ms,
    )
