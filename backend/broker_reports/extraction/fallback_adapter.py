"""Deterministic fallback adapter with no external dependencies."""

from __future__ import annotations

from broker_reports.extraction.extractor_interface import ExtractionAdapter
from broker_reports.extraction.types import ArchiveRecord, RawReport
from broker_reports.normalization.company import UNKNOWN_COMPANY, canonicalize_company_name
from broker_reports.normalization.dates import parse_datetime
from broker_reports.normalization.text import normalize_whitespace, split_sentences, truncate_text

UNMAPPED_BROKER = "Unmapped Broker"
UNTITLED_REPORT = "Untitled brokerage report"
FALLBACK_CONFIDENCE = 0.25
FALLBACK_SUMMARY_LENGTH = 380

SUBJECT_SEPARATORS = ("|", "-", "–", ":")
_QUARTER_MARKERS = ("q1", "q2", "q3", "q4")
_SECTOR_MARKERS = ("sector", "weekly", "monitor")


def guess_company_from_subject(subject: object) -> str:
    """Take the text before the first separator found, else the first three words."""

    source = normalize_whitespace(subject)
    if not source:
        return ""
    for separator in SUBJECT_SEPARATORS:
        if separator in source:
            return source.split(separator, 1)[0].strip()
    return " ".join(source.split(" ")[:3]).strip()


def classify_fallback_report_type(subject: object, body: object) -> str:
    text = f"{normalize_whitespace(subject)} {normalize_whitespace(body)}".lower()
    if "initiat" in text:
        return "Initiation"
    if "result" in text or any(marker in text for marker in _QUARTER_MARKERS):
        return "Results Update"
    if any(marker in text for marker in _SECTOR_MARKERS):
        return "Sector Update"
    return "General Update"


class FallbackReportAdapter(ExtractionAdapter):
    """Keyword heuristics over subject and body; always available."""

    source = "fallback:heuristic"

    def extract(self, archive: ArchiveRecord, user_id: str, run_id: str) -> RawReport:
        _ = user_id, run_id
        body = archive.body_preview or archive.snippet
        company_raw = guess_company_from_subject(archive.subject) or UNKNOWN_COMPANY
        summary = truncate_text(body, FALLBACK_SUMMARY_LENGTH)
        return RawReport(
            broker=normalize_whitespace(archive.broker) or UNMAPPED_BROKER,
            company_raw=company_raw,
            company_canonical=canonicalize_company_name(company_raw) or UNKNOWN_COMPANY,
            report_type=classify_fallback_report_type(archive.subject, body),
            title=normalize_whitespace(archive.subject) or UNTITLED_REPORT,
            summary=summary,
            key_points=split_sentences(summary)[:3],
            published_at=parse_datetime(archive.date_header) or archive.ingested_at,
            confidence=FALLBACK_CONFIDENCE,
        )
