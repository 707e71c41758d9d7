"""Deterministic text, date and company normalization helpers."""

from broker_reports.normalization.company import (
    UNKNOWN_COMPANY,
    CompanyMatch,
    canonicalize_company_name,
    extract_company,
)
from broker_reports.normalization.dates import (
    ensure_utc,
    parse_datetime,
    resolve_archive_published_at,
    to_iso_string,
    to_utc_day_bucket,
)
from broker_reports.normalization.text import (
    normalize_for_key,
    normalize_whitespace,
    split_sentences,
    truncate_text,
    unique_strings,
)

__all__ = [
    "UNKNOWN_COMPANY",
    "CompanyMatch",
    "canonicalize_company_name",
    "extract_company",
    "ensure_utc",
    "parse_datetime",
    "resolve_archive_published_at",
    "to_iso_string",
    "to_utc_day_bucket",
    "normalize_for_key",
    "normalize_whitespace",
    "split_sentences",
    "truncate_text",
    "unique_strings",
]
