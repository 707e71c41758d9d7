"""Whitespace, truncation and key-safe text helpers."""

from __future__ import annotations

import re
from collections.abc import Iterable

DEFAULT_TRUNCATE_SUFFIX = "..."

_WHITESPACE_RE = re.compile(r"\s+")
_SENTENCE_BOUNDARY_RE = re.compile(r"(?<=[.?!])\s+")
_CLAUSE_BOUNDARY_RE = re.compile(r"[;|]\s+")
_NON_KEY_CHARS_RE = re.compile(r"[^a-z0-9 ]+")
_KEY_STOPWORDS_RE = re.compile(r"\b(?:the|a|an|report|note|update)\b")


def normalize_whitespace(value: object) -> str:
    """Collapse runs of whitespace to single spaces and trim."""

    if value is None:
        return ""
    return _WHITESPACE_RE.sub(" ", str(value)).strip()


def truncate_text(value: object, max_length: int = 320, suffix: str = DEFAULT_TRUNCATE_SUFFIX) -> str:
    """Shorten text to ``max_length`` characters, preferring a word boundary.

    The cut falls back to a hard cut when the last space sits in the first 60%
    of the allowed length.
    """

    text = normalize_whitespace(value)
    if not text or len(text) <= max_length:
        return text

    limit = max(1, max_length - len(suffix))
    truncated = text[:limit]
    last_space = truncated.rfind(" ")
    if last_space > int(limit * 0.6):
        return f"{truncated[:last_space]}{suffix}"
    return f"{truncated}{suffix}"


def split_sentences(value: object) -> list[str]:
    text = normalize_whitespace(value)
    if not text:
        return []

    chunks = [normalize_whitespace(part) for part in _SENTENCE_BOUNDARY_RE.split(text)]
    chunks = [chunk for chunk in chunks if chunk]
    if chunks:
        return chunks

    parts = [normalize_whitespace(part) for part in _CLAUSE_BOUNDARY_RE.split(text)]
    return [part for part in parts if part]


def normalize_for_key(value: object) -> str:
    """Reduce text to lower-case alphanumeric words without filler stopwords."""

    text = normalize_whitespace(value).lower().replace("&", " and ")
    text = _NON_KEY_CHARS_RE.sub(" ", text)
    text = _KEY_STOPWORDS_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def unique_strings(values: Iterable[object] | None, max_items: int = 10) -> list[str]:
    """Deduplicate strings case-insensitively, keeping first-seen order."""

    seen: set[str] = set()
    result: list[str] = []
    for item in values or []:
        normalized = normalize_whitespace(item)
        if not normalized:
            continue
        key = normalized.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(normalized)
        if len(result) >= max_items:
            break
    return result
