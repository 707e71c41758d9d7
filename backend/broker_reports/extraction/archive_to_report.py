"""Rule-based conversion of one archived email into one report candidate."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from broker_reports.dedupe.duplicate_key import build_duplicate_key
from broker_reports.extraction.extractor_interface import ExtractionAdapter
from broker_reports.extraction.report_type_classifier import classify_report_type
from broker_reports.extraction.types import ArchiveRecord, RawReport, ReportCandidate
from broker_reports.normalization.company import UNKNOWN_COMPANY, extract_company
from broker_reports.normalization.dates import resolve_archive_published_at
from broker_reports.normalization.text import normalize_whitespace, split_sentences, truncate_text, unique_strings

SUMMARY_NUMERIC_SIGNAL = re.compile(
    r"\b(?:\d+(?:\.\d+)?%|(?:rs\.?|inr)\s?\d[\d,.]*|\d[\d,.]*\s?(?:bps|bp|x)|q[1-4])\b",
    re.IGNORECASE,
)
SUMMARY_BOILERPLATE_PATTERN = re.compile(
    r"\b(?:unsubscribe|confidential|disclaimer|intended recipient|do not reply|forwarded message|view in browser)\b",
    re.IGNORECASE,
)
SUMMARY_ARTIFACT_PATTERN = re.compile(r"(?:id=|href=|src=|http|www\.|[a-z0-9_-]{20,})", re.IGNORECASE)
_BULLET_SEPARATOR_RE = re.compile(r"\s*[|•]\s*")
_CLAUSE_SPLIT_RE = re.compile(r"\s*[;|•]\s*|\s*,\s+")

REPORT_TYPE_HINTS: dict[str, tuple[str, ...]] = {
    "initiation": ("initiation", "coverage", "valuation", "target", "rating"),
    "results_update": ("result", "earnings", "ebitda", "margin", "guidance", "beat", "miss"),
    "target_change": ("target", "valuation", "pt", "tp", "upgrade", "downgrade"),
    "rating_change": ("upgrade", "downgrade", "buy", "sell", "hold"),
    "general_update": ("demand", "capacity", "cost", "outlook", "update"),
}

DEFAULT_BROKER = "Unknown Broker"
NO_SUBJECT_TITLE = "(No Subject)"


def _clean_summary_source(archive: ArchiveRecord) -> str:
    source = normalize_whitespace(
        " ".join(part for part in (archive.snippet, archive.body_preview, archive.subject) if part)
    )
    return normalize_whitespace(_BULLET_SEPARATOR_RE.sub(". ", source))


def _split_summary_candidates(text: str) -> list[str]:
    primary = [sentence for sentence in split_sentences(text) if sentence]
    if len(primary) > 1:
        return primary

    fallback = [normalize_whitespace(part) for part in _CLAUSE_SPLIT_RE.split(normalize_whitespace(text))]
    fallback = [part for part in fallback if len(part) >= 20]
    if fallback:
        return fallback
    return primary


def score_summary_candidate(sentence: str, report_type: str) -> int:
    """Score a sentence for how informative it is as a report summary."""

    if not sentence:
        return -10
    if SUMMARY_BOILERPLATE_PATTERN.search(sentence):
        return -8

    score = 0
    if SUMMARY_NUMERIC_SIGNAL.search(sentence):
        score += 2
    hints = REPORT_TYPE_HINTS.get(report_type, REPORT_TYPE_HINTS["general_update"])
    lowered = sentence.lower()
    if any(hint in lowered for hint in hints):
        score += 2
    if SUMMARY_ARTIFACT_PATTERN.search(sentence):
        score -= 3
    if 45 <= len(sentence) <= 220:
        score += 1
    elif len(sentence) < 20 or len(sentence) > 280:
        score -= 1
    return score


def _ranked_sentences(text: str, report_type: str) -> list[tuple[str, int]]:
    scored = [(sentence, score_summary_candidate(sentence, report_type)) for sentence in _split_summary_candidates(text)]
    return sorted(scored, key=lambda entry: -entry[1])


def build_summary(archive: ArchiveRecord, report_type: str) -> str:
    ranked = _ranked_sentences(_clean_summary_source(archive), report_type)
    best = next((sentence for sentence, score in ranked if score >= 1), None)
    if best is None and ranked:
        best = ranked[0][0]
    return truncate_text(best or normalize_whitespace(archive.snippet or archive.subject or ""), 360)


def build_key_points(archive: ArchiveRecord, fallback_summary: str, report_type: str, max_items: int = 3) -> list[str]:
    source_text = _clean_summary_source(archive) or fallback_summary
    cleaned = [truncate_text(sentence, 180) for sentence, _ in _ranked_sentences(source_text, report_type)]
    cleaned = [entry for entry in cleaned if len(entry) >= 12 and not SUMMARY_BOILERPLATE_PATTERN.search(entry)]

    unique = unique_strings(cleaned, max_items)
    if unique:
        return unique
    if fallback_summary:
        return [truncate_text(fallback_summary, 180)]
    return []


def combine_confidence(type_confidence: float, company_confidence: float, has_summary: bool) -> float:
    summary_boost = 0.1 if has_summary else 0.0
    value = round(type_confidence * 0.55 + company_confidence * 0.35 + summary_boost, 2)
    return min(0.99, max(0.2, value))


def parse_archive_to_report(archive: ArchiveRecord, *, now: datetime | None = None) -> ReportCandidate:
    """Turn one archive into a fully populated report candidate.

    Pure apart from ``now``, which is only used when the archive carries no
    usable date at all.
    """

    if not isinstance(archive, ArchiveRecord):
        raise TypeError("archive must be an ArchiveRecord")

    published_at = resolve_archive_published_at(
        date_header=archive.date_header,
        internal_date_ms=archive.internal_date_ms,
        ingested_at=archive.ingested_at,
        now=now or datetime.now(timezone.utc),
    )
    type_match = classify_report_type(
        subject=archive.subject,
        snippet=archive.snippet,
        body_preview=archive.body_preview,
    )
    company_match = extract_company(
        subject=archive.subject,
        body_preview=archive.body_preview,
        snippet=archive.snippet,
    )

    summary = build_summary(archive, type_match.report_type)
    candidate = ReportCandidate(
        archive_id=str(archive.id or ""),
        user_id=str(archive.user_id or ""),
        broker=normalize_whitespace(archive.broker) or DEFAULT_BROKER,
        company_canonical=company_match.company_canonical or UNKNOWN_COMPANY,
        company_raw=company_match.company_raw or UNKNOWN_COMPANY,
        report_type=type_match.report_type,
        title=normalize_whitespace(archive.subject) or NO_SUBJECT_TITLE,
        summary=summary,
        key_points=build_key_points(archive, summary, type_match.report_type),
        published_at=published_at,
        confidence=combine_confidence(type_match.confidence, company_match.confidence, bool(summary)),
    )
    candidate.duplicate_key = build_duplicate_key(
        user_id=candidate.user_id,
        broker=candidate.broker,
        company_canonical=candidate.company_canonical,
        report_type=candidate.report_type,
        title=candidate.title,
        published_at=candidate.published_at,
    )
    return candidate


def extract_reports_from_archives(
    archives: Iterable[ArchiveRecord],
    *,
    now: datetime | None = None,
) -> list[ReportCandidate]:
    return [parse_archive_to_report(archive, now=now) for archive in archives]


class ArchiveToReportAdapter(ExtractionAdapter):
    """Deterministic adapter backed by the rule-based archive parser."""

    source = "rule_based:archive_to_report"

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def extract(self, archive: ArchiveRecord, user_id: str, run_id: str) -> RawReport:
        _ = user_id, run_id
        return parse_archive_to_report(archive, now=self._clock()).to_raw_report()
