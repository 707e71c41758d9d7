"""Archived broker email ORM model."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from broker_reports.models.base import Base, IdMixin, utc_now


class EmailArchive(Base, IdMixin):
    """Previously ingested broker research email available for extraction."""

    __tablename__ = "email_archives"

    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    broker: Mapped[str | None] = mapped_column(String(255), nullable=True)
    from_header: Mapped[str | None] = mapped_column(String(512), nullable=True)
    subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    snippet: Mapped[str | None] = mapped_column(Text, nullable=True)
    body_preview: Mapped[str | None] = mapped_column(Text, nullable=True)
    date_header: Mapped[str | None] = mapped_column(String(128), nullable=True)
    internal_date_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    ingested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
        index=True,
    )
