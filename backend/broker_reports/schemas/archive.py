"""Archived email schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class EmailArchiveCreate(BaseModel):
    """Archived email payload supplied by an upstream ingester."""

    id: str | None = Field(default=None, max_length=64)
    broker: str | None = None
    from_header: str | None = None
    subject: str | None = None
    snippet: str | None = None
    body_preview: str | None = None
    date_header: str | None = None
    internal_date_ms: int | None = None
    ingested_at: datetime | None = None


class EmailArchiveBatchCreate(BaseModel):
    archives: list[EmailArchiveCreate] = Field(min_length=1, max_length=500)


class EmailArchiveRead(BaseModel):
    """Serialized archived email."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    broker: str | None
    subject: str | None
    snippet: str | None
    date_header: str | None
    internal_date_ms: int | None
    ingested_at: datetime


class EmailArchiveListResponse(BaseModel):
    """Paginated archive list payload."""

    items: list[EmailArchiveRead]
    total: int
    limit: int
    offset: int
