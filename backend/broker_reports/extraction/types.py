"""Typed extraction inputs and outputs independent of persistence."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True, frozen=True)
class ArchiveRecord:
    """Read-only snapshot of one archived broker email."""

    id: str
    user_id: str
    broker: str | None = None
    subject: str | None = None
    snippet: str | None = None
    body_preview: str | None = None
    date_header: str | None = None
    ingested_at: datetime | None = None
    from_header: str | None = None
    internal_date_ms: int | None = None


@dataclass(slots=True)
class RawReport:
    """Adapter output before normalization; any field may be missing."""

    broker: str | None = None
    company_raw: str | None = None
    company_canonical: str | None = None
    report_type: str | None = None
    title: str | None = None
    summary: str | None = None
    key_points: list[str] = field(default_factory=list)
    published_at: datetime | str | None = None
    confidence: float | None = None


@dataclass(slots=True)
class ReportCandidate:
    """Fully populated report parsed from one archive by the rule-based extractor."""

    archive_id: str
    user_id: str
    broker: str
    company_canonical: str
    company_raw: str
    report_type: str
    title: str
    summary: str
    key_points: list[str]
    published_at: datetime
    confidence: float
    duplicate_key: str = ""

    def to_raw_report(self) -> RawReport:
        return RawReport(
            broker=self.broker,
            company_raw=self.company_raw,
            company_canonical=self.company_canonical,
            report_type=self.report_type,
            title=self.title,
            summary=self.summary,
            key_points=list(self.key_points),
            published_at=self.published_at,
            confidence=self.confidence,
        )
