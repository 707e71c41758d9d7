"""Token-overlap similarity and semantic duplicate search."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, TypeVar

from broker_reports.normalization.dates import parse_datetime
from broker_reports.normalization.text import normalize_whitespace

SIMILARITY_STOP_WORDS = frozenset(
    {
        "the",
        "and",
        "for",
        "with",
        "from",
        "that",
        "this",
        "have",
        "has",
        "was",
        "were",
        "into",
        "over",
        "under",
        "after",
        "before",
        "update",
        "report",
        "broker",
        "note",
    }
)

_NON_ALNUM_SPACE_RE = re.compile(r"[^a-z0-9 ]+")
_NON_ALNUM_RUN_RE = re.compile(r"[^a-z0-9]+")
_SECONDS_PER_DAY = 24 * 60 * 60


class DedupeCandidate(Protocol):
    user_id: str
    broker: str
    company_canonical: str
    title: str
    summary: str
    published_at: datetime
    duplicate_of_report_id: str | None


CandidateT = TypeVar("CandidateT", bound=DedupeCandidate)


@dataclass(slots=True, frozen=True)
class SemanticDedupeConfig:
    """Thresholds for fuzzy duplicate detection."""

    summary_threshold: float = 0.78
    combined_summary_threshold: float = 0.62
    combined_title_threshold: float = 0.55
    window_days: float = 21

    @classmethod
    def from_settings(cls, settings) -> SemanticDedupeConfig:  # noqa: ANN001
        return cls(
            summary_threshold=settings.semantic_summary_threshold,
            combined_summary_threshold=settings.semantic_combined_summary_threshold,
            combined_title_threshold=settings.semantic_combined_title_threshold,
            window_days=settings.semantic_window_days,
        )


def match_key(value: object) -> str:
    """Slug used to compare broker, company and user identity across reports."""

    lowered = normalize_whitespace(value).lower().replace("&", " and ")
    return _NON_ALNUM_RUN_RE.sub("-", lowered).strip("-")


def similarity_tokens(value: object) -> set[str]:
    lowered = normalize_whitespace(value).lower().replace("&", " and ")
    cleaned = _NON_ALNUM_SPACE_RE.sub(" ", lowered)
    return {token for token in cleaned.split() if len(token) >= 3 and token not in SIMILARITY_STOP_WORDS}


def jaccard_similarity(left: object, right: object) -> float:
    """Return token-set Jaccard overlap in [0, 1]."""

    left_tokens = similarity_tokens(left)
    right_tokens = similarity_tokens(right)
    if not left_tokens or not right_tokens:
        return 0.0
    intersection = len(left_tokens & right_tokens)
    union = len(left_tokens | right_tokens)
    return intersection / union if union else 0.0


def _epoch_seconds(value: object) -> float:
    parsed = parse_datetime(value)
    return parsed.timestamp() if parsed is not None else 0.0


def is_semantic_duplicate(
    existing: DedupeCandidate,
    report: DedupeCandidate,
    config: SemanticDedupeConfig,
) -> bool:
    """Check whether ``report`` restates ``existing`` closely enough to be a duplicate."""

    if existing.duplicate_of_report_id:
        return False
    if match_key(existing.user_id) != match_key(report.user_id):
        return False
    if match_key(existing.broker) != match_key(report.broker):
        return False
    if match_key(existing.company_canonical) != match_key(report.company_canonical):
        return False

    day_distance = abs(_epoch_seconds(report.published_at) - _epoch_seconds(existing.published_at)) / _SECONDS_PER_DAY
    if day_distance > config.window_days:
        return False

    summary_score = jaccard_similarity(existing.summary, report.summary)
    if summary_score >= config.summary_threshold:
        return True
    title_score = jaccard_similarity(existing.title, report.title)
    return summary_score >= config.combined_summary_threshold and title_score >= config.combined_title_threshold


def find_semantic_duplicate(
    existing_reports: Iterable[CandidateT],
    report: DedupeCandidate,
    config: SemanticDedupeConfig | None = None,
) -> CandidateT | None:
    """Return the first canonical report that ``report`` duplicates, in iteration order."""

    active_config = config or SemanticDedupeConfig()
    for existing in existing_reports:
        if existing is None:
            continue
        if is_semantic_duplicate(existing, report, active_config):
            return existing
    return None
