"""Extracted report ORM model."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from broker_reports.models.base import Base, CreatedAtMixin, IdMixin, UpdatedAtMixin


class ExtractedReport(Base, IdMixin, CreatedAtMixin, UpdatedAtMixin):
    """Canonical or duplicate research item derived from one archived email."""

    __tablename__ = "extracted_reports"
    __table_args__ = (
        Index("ix_extracted_reports_user_archive", "user_id", "archive_id"),
        Index("ix_extracted_reports_user_duplicate_key", "user_id", "duplicate_key"),
    )

    run_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    archive_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    broker: Mapped[str] = mapped_column(String(255), nullable=False)
    company_canonical: Mapped[str] = mapped_column(String(255), nullable=False)
    company_raw: Mapped[str] = mapped_column(String(255), nullable=False)
    report_type: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    key_points_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    key_points_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, default=0.25, nullable=False)
    duplicate_key: Mapped[str] = mapped_column(String(128), nullable=False)
    duplicate_of_report_id: Mapped[str | None] = mapped_column(
        ForeignKey("extracted_reports.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )
    dedupe_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
