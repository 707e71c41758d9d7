"""Rule-based report type classification."""

from __future__ import annotations

import re
from dataclasses import dataclass

from broker_reports.normalization.text import normalize_whitespace

FALLBACK_REPORT_TYPE = "general_update"
FALLBACK_CONFIDENCE = 0.45
SUBJECT_MATCH_BOOST = 0.05


@dataclass(slots=True, frozen=True)
class ReportTypeRule:
    report_type: str
    confidence: float
    patterns: tuple[re.Pattern[str], ...]


@dataclass(slots=True, frozen=True)
class ReportTypeMatch:
    """Classifier verdict with the text it matched on."""

    report_type: str
    confidence: float
    matched_on: str
    matched_pattern: str


def _rule(report_type: str, confidence: float, *patterns: str) -> ReportTypeRule:
    return ReportTypeRule(
        report_type=report_type,
        confidence=confidence,
        patterns=tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns),
    )


# Order is significant: earlier rules win over later ones.
TYPE_RULES: tuple[ReportTypeRule, ...] = (
    _rule(
        "initiation",
        0.92,
        r"\binitiating coverage\b",
        r"\binitiation(?: of coverage)?\b",
        r"\bcoverage initiated\b",
        r"\bstart(?:ing)? coverage\b",
    ),
    _rule(
        "results_update",
        0.88,
        r"\bq[1-4]\s*(?:fy|cy)?\s*\d{2,4}\b",
        r"\bresults?\s+update\b",
        r"\bearnings?\b",
        r"\bpost[- ]?result\b",
    ),
    _rule(
        "target_change",
        0.82,
        r"\btarget price\b",
        r"\bprice target\b",
        r"\braise[sd]?\s+target\b",
        r"\bcut[s]?\s+target\b",
    ),
    _rule(
        "rating_change",
        0.8,
        r"\bupgrade\b",
        r"\bdowngrade\b",
        r"\breiterate\b",
        r"\bmaintain(?:ed)?\s+(?:buy|sell|hold)\b",
    ),
    _rule(
        "general_update",
        0.62,
        r"\bgeneral update\b",
        r"\bcompany update\b",
        r"\bupdate\b",
    ),
)


def _first_match(text: str) -> tuple[ReportTypeRule, re.Pattern[str]] | None:
    if not text:
        return None
    for rule in TYPE_RULES:
        for pattern in rule.patterns:
            if pattern.search(text):
                return rule, pattern
    return None


def classify_report_type(*, subject: object, snippet: object = None, body_preview: object = None) -> ReportTypeMatch:
    """Classify a report from its subject, then from subject + snippet + body."""

    subject_text = normalize_whitespace(subject)
    combined_text = normalize_whitespace(
        " ".join(part for part in (subject_text, normalize_whitespace(snippet), normalize_whitespace(body_preview)) if part)
    )

    subject_hit = _first_match(subject_text)
    if subject_hit is not None:
        rule, pattern = subject_hit
        return ReportTypeMatch(
            report_type=rule.report_type,
            confidence=min(1.0, round(rule.confidence + SUBJECT_MATCH_BOOST, 4)),
            matched_on="subject",
            matched_pattern=pattern.pattern,
        )

    combined_hit = _first_match(combined_text)
    if combined_hit is not None:
        rule, pattern = combined_hit
        return ReportTypeMatch(
            report_type=rule.report_type,
            confidence=rule.confidence,
            matched_on="body",
            matched_pattern=pattern.pattern,
        )

    return ReportTypeMatch(
        report_type=FALLBACK_REPORT_TYPE,
        confidence=FALLBACK_CONFIDENCE,
        matched_on="fallback",
        matched_pattern="none",
    )


def get_report_type_rules() -> list[dict[str, object]]:
    """Describe the ordered rule table for diagnostics."""

    return [
        {
            "report_type": rule.report_type,
            "confidence": rule.confidence,
            "patterns": [pattern.pattern for pattern in rule.patterns],
        }
        for rule in TYPE_RULES
    ]
