"""Extraction run and extracted report schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class ExtractionRunTriggerRequest(BaseModel):
    """Body of a run trigger request; omitted ``archive_ids`` means every archive."""

    archive_ids: list[str] | None = Field(default=None, max_length=1000)
    broker: str | None = None
    limit: int | None = Field(default=None, ge=1, le=1000)
    include_already_extracted: bool = False
    trigger: str = "manual_api"


class ExtractionRunFilters(BaseModel):
    broker: str | None
    requested_archive_ids: list[str] | None
    limit: int
    include_already_extracted: bool


class ExtractionRunStats(BaseModel):
    """Progress counters for one run."""

    candidate_archives: int
    processed_archives: int
    extracted_reports: int
    skipped_archives: int
    failed_archives: int
    duplicate_reports: int


class ExtractionFailureSample(BaseModel):
    archive_id: str
    message: str


class ExtractionRunRead(BaseModel):
    """Run snapshot as seen by callers polling for progress."""

    id: str
    user_id: str
    status: str
    trigger: str
    adapter_source: str | None
    filters: ExtractionRunFilters
    stats: ExtractionRunStats
    error: str | None
    failure_samples: list[ExtractionFailureSample]
    created_at: datetime
    started_at: datetime | None
    abort_requested_at: datetime | None
    aborted_at: datetime | None
    abort_reason: str | None
    abort_pending: bool
    completed_at: datetime | None
    updated_at: datetime


class ExtractionRunListResponse(BaseModel):
    """Paginated run list payload."""

    items: list[ExtractionRunRead]
    total: int
    limit: int
    offset: int


class AbortRunRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class AbortRunResult(BaseModel):
    """Outcome of an abort request."""

    accepted: bool
    immediate: bool
    already_terminal: bool
    run: ExtractionRunRead


class ExtractedReportRead(BaseModel):
    """Extracted report with free text redacted for display."""

    id: str
    run_id: str
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
    duplicate_key: str
    duplicate_of_report_id: str | None
    dedupe_method: str | None
    created_at: datetime


class ExtractedReportListResponse(BaseModel):
    """Paginated extracted report list payload."""

    items: list[ExtractedReportRead]
    total: int
    limit: int
    offset: int
