"""SQLAlchemy metadata registry import for Alembic."""

from broker_reports.models import EmailArchive, ExtractedReport, ExtractionRun
from broker_reports.models.base import Base

__all__ = ["Base", "EmailArchive", "ExtractionRun", "ExtractedReport"]
