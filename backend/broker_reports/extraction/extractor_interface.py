"""Adapter interface for pluggable archive-to-report extraction."""

from abc import ABC, abstractmethod

from broker_reports.extraction.types import ArchiveRecord, RawReport


class ExtractionAdapter(ABC):
    """Abstract extraction adapter.

    Implementations turn one archive into one raw report, or raise. Any external
    call an implementation makes must be bounded by its own timeout.
    """

    source: str = "adapter:unknown"

    @abstractmethod
    def extract(self, archive: ArchiveRecord, user_id: str, run_id: str) -> RawReport | None:
        """Extract a raw report for one archive."""
