"""Company name candidate extraction and canonicalization."""

from __future__ import annotations

import re
from dataclasses import dataclass

from broker_reports.normalization.text import normalize_whitespace

UNKNOWN_COMPANY = "Unknown Company"

LEGAL_SUFFIX_TOKENS = frozenset(
    {
        "co",
        "company",
        "corp",
        "corporation",
        "inc",
        "incorporated",
        "ltd",
        "limited",
        "llc",
        "llp",
        "plc",
        "pvt",
        "sa",
        "ag",
        "nv",
    }
)

REPORT_NOISE_TOKENS = frozenset(
    {
        "general",
        "market",
        "morning",
        "evening",
        "weekly",
        "monthly",
        "daily",
        "domestic",
        "global",
        "macro",
        "strategy",
        "sector",
        "universe",
        "upgraded",
        "downgraded",
        "reiterated",
        "maintained",
        "initiation",
        "initiating",
        "coverage",
        "result",
        "results",
        "earnings",
        "update",
        "preview",
        "concall",
        "call",
        "target",
        "price",
        "rating",
        "buy",
        "sell",
        "hold",
        "note",
        "report",
    }
)

_QUARTER_TOKEN_RE = re.compile(r"^q[1-4](?:fy|cy)?\d{2,4}$")
_FISCAL_TOKEN_RE = re.compile(r"^(?:fy|cy)\d{2,4}$")
_ACRONYM_RE = re.compile(r"^[A-Z0-9]{2,}$")
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")
_NON_KEY_CHARS_RE = re.compile(r"[^a-z0-9 ]+")

_LEADING_BRACKETS_RE = re.compile(r"^[\[({\"']+")
_TRAILING_BRACKETS_RE = re.compile(r"[\])}\"']+$")
_SEPARATED_JARGON_TAIL_RE = re.compile(
    r"\s*[-:|]\s*(?:initiation|results?|earnings?|update|coverage).*$",
    re.IGNORECASE,
)
_JARGON_TAIL_RE = re.compile(
    r"\s*\b(?:initiation|results?|earnings?|update|coverage|target|rating)\b.*$",
    re.IGNORECASE,
)
_PERIOD_TOKEN_RE = re.compile(r"\b(?:q[1-4](?:fy|cy)?\d{2,4}|fy\d{2,4}|cy\d{2,4})\b", re.IGNORECASE)
_PURE_NOISE_RE = re.compile(
    r"^(?:daily|morning|weekly|monthly|market|strategy|sector|note|report|general|update|macro)$",
    re.IGNORECASE,
)
_RESIDUAL_JARGON_RE = re.compile(
    r"\b(?:update|result|earnings|coverage|target|rating|market|strategy|sector)\b",
    re.IGNORECASE,
)
_HAS_LETTER_RE = re.compile(r"[A-Za-z]")

# Ordered: the first plausible candidate wins.
_SUBJECT_PATTERNS = (
    re.compile(
        r"^([A-Za-z][A-Za-z0-9&.,'()\- ]{2,100})\s+(?:upgraded|downgraded|reiterated|maintained|initiated)\b",
        re.IGNORECASE,
    ),
    re.compile(r"^([^:|()-]{2,100})\s*[:|-]"),
    re.compile(
        r"\b(?:on|of|for)\s+([A-Za-z][A-Za-z0-9&.,'()\- ]{2,80}?)"
        r"(?=\s+(?:with|at|in|after|before|as|for)\b|[,:;|()-]|$)",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b([A-Za-z][A-Za-z0-9&.,'()\- ]{2,100})\s+"
        r"(?:results?|earnings?|update|initiation|coverage|target|rating)\b",
        re.IGNORECASE,
    ),
)
_BODY_PATTERN = re.compile(
    r"\b(?:for|on|of)\s+([A-Za-z][A-Za-z0-9&.,'()\- ]{2,80}?)"
    r"(?=\s+(?:with|at|in|after|before|as|and|we|that)\b|[.,;]|$)",
    re.IGNORECASE,
)


@dataclass(slots=True, frozen=True)
class CompanyMatch:
    """Company guess for one archive and where it came from."""

    company_raw: str
    company_canonical: str
    confidence: float
    source: str


def clean_candidate(value: str) -> str:
    """Strip wrapping punctuation, trailing report jargon and period tokens."""

    text = normalize_whitespace(value)
    text = _LEADING_BRACKETS_RE.sub("", text)
    text = _TRAILING_BRACKETS_RE.sub("", text)
    text = _SEPARATED_JARGON_TAIL_RE.sub("", text)
    text = _JARGON_TAIL_RE.sub("", text)
    text = _PERIOD_TOKEN_RE.sub(" ", text)
    return normalize_whitespace(text)


def is_plausible_company_name(value: str) -> bool:
    if not value:
        return False
    if len(value) < 2 or len(value) > 100:
        return False
    normalized = value.lower()
    if _PURE_NOISE_RE.match(normalized):
        return False
    if len(normalized.split()) > 8:
        return False
    if _RESIDUAL_JARGON_RE.search(normalized):
        return False
    return bool(_HAS_LETTER_RE.search(value))


def canonicalize_company_name(raw_value: object) -> str:
    """Reduce a company name to canonical title-cased tokens.

    Legal suffixes, report noise words and quarter/fiscal-year tokens are
    dropped. Tokens written as an all-caps run of two or more characters in the
    input keep their upper case. Returns ``""`` when nothing survives.
    """

    raw = normalize_whitespace(raw_value)
    if not raw:
        return ""

    uppercase_hints = set()
    for token in raw.split(" "):
        stripped = _NON_ALNUM_RE.sub("", token)
        if _ACRONYM_RE.match(stripped):
            uppercase_hints.add(stripped.lower())

    lowered = _NON_KEY_CHARS_RE.sub(" ", raw.lower().replace("&", " and "))
    tokens = [
        token
        for token in lowered.split()
        if token not in LEGAL_SUFFIX_TOKENS
        and token not in REPORT_NOISE_TOKENS
        and not _QUARTER_TOKEN_RE.match(token)
        and not _FISCAL_TOKEN_RE.match(token)
    ]
    if not tokens:
        return ""

    rendered: list[str] = []
    for token in tokens:
        if token in uppercase_hints:
            rendered.append(token.upper())
        elif token.isdigit():
            rendered.append(token)
        else:
            rendered.append(token[0].upper() + token[1:])
    return " ".join(rendered)


def extract_company_from_subject(subject: object) -> str | None:
    subject_text = normalize_whitespace(subject)
    if not subject_text:
        return None
    for pattern in _SUBJECT_PATTERNS:
        match = pattern.search(subject_text)
        candidate = clean_candidate(match.group(1) if match else "")
        if is_plausible_company_name(candidate):
            return candidate
    return None


def extract_company_from_body(body: object) -> str | None:
    text = normalize_whitespace(body)
    if not text:
        return None
    match = _BODY_PATTERN.search(text)
    candidate = clean_candidate(match.group(1) if match else "")
    if not is_plausible_company_name(candidate):
        return None
    return candidate


def extract_company(*, subject: object, body_preview: object, snippet: object = None) -> CompanyMatch:
    """Guess the covered company from the subject, then the body, then give up."""

    subject_candidate = extract_company_from_subject(subject)
    if subject_candidate:
        return CompanyMatch(
            company_raw=subject_candidate,
            company_canonical=canonicalize_company_name(subject_candidate),
            confidence=0.9,
            source="subject",
        )

    body_candidate = extract_company_from_body(body_preview or snippet)
    if body_candidate:
        return CompanyMatch(
            company_raw=body_candidate,
            company_canonical=canonicalize_company_name(body_candidate),
            confidence=0.65,
            source="body",
        )

    return CompanyMatch(
        company_raw=UNKNOWN_COMPANY,
        company_canonical=UNKNOWN_COMPANY,
        confidence=0.25,
        source="fallback",
    )
