"""Exact-key and semantic duplicate detection for extracted reports."""

from broker_reports.dedupe.duplicate_key import build_duplicate_key, duplicate_key_for
from broker_reports.dedupe.similarity import (
    SemanticDedupeConfig,
    find_semantic_duplicate,
    jaccard_similarity,
    match_key,
)

__all__ = [
    "SemanticDedupeConfig",
    "build_duplicate_key",
    "duplicate_key_for",
    "find_semantic_duplicate",
    "jaccard_similarity",
    "match_key",
]
