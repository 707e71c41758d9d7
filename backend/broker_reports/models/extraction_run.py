"""Extraction run ORM model."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from broker_reports.models.base import Base, CreatedAtMixin, IdMixin, UpdatedAtMixin


class ExtractionRun(Base, IdMixin, CreatedAtMixin, UpdatedAtMixin):
    """One bounded processing attempt over a set of archives for one user."""

    __tablename__ = "extraction_runs"

    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    trigger: Mapped[str] = mapped_column(String(64), nullable=False)
    adapter_source: Mapped[str | None] = mapped_column(String(128), nullable=True)

    broker_filter: Mapped[str | None] = mapped_column(String(255), nullable=True)
    requested_archive_ids_json: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    requested_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    include_already_extracted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    archive_ids_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    candidate_archives: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_archives: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    extracted_reports: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_archives: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_archives: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duplicate_reports: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failure_samples_json: Mapped[list[dict[str, str]]] = mapped_column(JSON, default=list, nullable=False)

    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    abort_requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    abort_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    aborted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
