"""ORM models package exports."""

from broker_reports.models.email_archive import EmailArchive
from broker_reports.models.extracted_report import ExtractedReport
from broker_reports.models.extraction_run import ExtractionRun

__all__ = [
    "EmailArchive",
    "ExtractionRun",
    "ExtractedReport",
]
