"""PII scrubbing for archived email text before storage or display."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import replace

from broker_reports.extraction.types import ArchiveRecord
from broker_reports.normalization.text import normalize_whitespace, truncate_text

REDACTED_EMAIL = "[redacted-email]"
REDACTED_PHONE = "[redacted-phone]"
REDACTED_SENDER = "[redacted-sender]"
REDACTED_RECIPIENT = "[redacted-recipient]"
REDACTED_PERSON = "[redacted-person]"

EMAIL_PATTERN = re.compile(r"\b[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}\b", re.IGNORECASE)
PHONE_PATTERN = re.compile(r"(?<!\w)(?:\+?\d[\d()\s.-]{7,}\d)(?!\w)")
HEADER_LINE_PATTERN = re.compile(
    r"(?:^|\n)\s*(?:from|to|cc|bcc|sent|subject|reply-to)\s*:[^\n]*",
    re.IGNORECASE,
)
INLINE_HEADER_SEGMENT_PATTERN = re.compile(
    r"\b(?:from|to|cc|bcc|sent|subject|reply-to)\s*:[\s\S]{0,180}?"
    r"(?=(?:\b(?:from|to|cc|bcc|sent|subject|reply-to)\s*:)|$)",
    re.IGNORECASE,
)
FORWARDED_BLOCK_PATTERN = re.compile(
    r"(?:^|\n)\s*-{2,}\s*(?:original|forwarded)\s+message\s*-{2,}",
    re.IGNORECASE,
)
REPLY_CONTEXT_PATTERN = re.compile(r"\bon\s+[^,\n]{2,80},\s*[^<\n]{2,80}<[^>]+>\s*wrote\s*:", re.IGNORECASE)
PERSON_BEFORE_REDACTED_EMAIL_PATTERN = re.compile(
    r"([A-Za-z][A-Za-z'.-]{1,30}(?:\s+[A-Za-z][A-Za-z'.-]{1,30}){1,3})\s*(?:<|\()?(\[redacted-email\])(?:>|\))?"
)
LONG_MACHINE_TOKEN_PATTERN = re.compile(r"\b[a-z0-9_-]{24,}\b", re.IGNORECASE)
SIGN_OFF_PATTERN = re.compile(
    r"\b(?:best regards|warm regards|kind regards|regards|thanks(?: and regards)?|sincerely)\b[\s\S]{0,180}$",
    re.IGNORECASE,
)
_ANGLE_ADDRESS_RE = re.compile(r"<([^>]+)>")
_VIA_SPLIT_RE = re.compile(r"\s+via\s+", re.IGNORECASE)
_PERSON_CHARS_RE = re.compile(r"^[A-Za-z' -]+$")
_PERSON_PART_RE = re.compile(r"^[A-Z][A-Za-z'-]*$")

ORG_KEYWORDS = (
    "capital",
    "equities",
    "research",
    "desk",
    "team",
    "securities",
    "invest",
    "institutional",
    "bank",
    "finance",
    "global",
    "limited",
    "ltd",
)


def is_likely_person_name(value: object) -> bool:
    """Heuristic: 2-4 capitalized words, 5-60 chars, letters/apostrophes/hyphens, no org keywords."""

    candidate = normalize_whitespace(value)
    if len(candidate) < 5 or len(candidate) > 60:
        return False
    lowered = candidate.lower()
    if any(keyword in lowered for keyword in ORG_KEYWORDS):
        return False
    if not _PERSON_CHARS_RE.match(candidate):
        return False
    parts = candidate.split(" ")
    if len(parts) < 2 or len(parts) > 4:
        return False
    return all(_PERSON_PART_RE.match(part) for part in parts)


def parse_from_header(raw_from: object) -> tuple[str, str]:
    """Split a ``From`` header into ``(name, email)``; either may be empty."""

    from_text = str(raw_from or "")
    angle_match = _ANGLE_ADDRESS_RE.search(from_text)
    if angle_match:
        email = angle_match.group(1)
    else:
        email_match = EMAIL_PATTERN.search(from_text)
        email = email_match.group(0) if email_match else ""

    cleaned_name = _ANGLE_ADDRESS_RE.sub("", from_text)
    cleaned_name = normalize_whitespace(EMAIL_PATTERN.sub("", cleaned_name).replace('"', ""))
    primary_name = normalize_whitespace(_VIA_SPLIT_RE.split(cleaned_name)[0])
    return primary_name or cleaned_name, normalize_whitespace(email.lower())


def _replace_token(text: str, token: str, replacement: str) -> str:
    clean_token = normalize_whitespace(token)
    if len(clean_token) < 3:
        return text
    body = r"\s+".join(re.escape(part) for part in clean_token.split(" "))
    pattern = re.compile(rf"(?<!\w){body}(?!\w)", re.IGNORECASE)
    return pattern.sub(replacement, text)


def _redact_names_around_emails(text: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        if not is_likely_person_name(match.group(1)):
            return match.group(0)
        return REDACTED_PERSON

    return PERSON_BEFORE_REDACTED_EMAIL_PATTERN.sub(_replace, text)


def _strip_tail_signature(text: str) -> str:
    match = SIGN_OFF_PATTERN.search(text)
    if match is None or match.start() <= 0:
        return text
    return normalize_whitespace(text[: match.start()]) or text


def redact_pii_text(
    value: object,
    *,
    sender_name: str | None = None,
    sender_email: str | None = None,
    recipient_names: Iterable[str] = (),
    recipient_emails: Iterable[str] = (),
) -> str:
    """Remove headers, contact details, known identities and sign-offs from free text."""

    text = "" if value is None else str(value)
    if not text:
        return ""

    clean_sender_name = normalize_whitespace(sender_name)
    clean_sender_email = normalize_whitespace(sender_email).lower()
    clean_recipient_names = [name for name in (normalize_whitespace(entry) for entry in recipient_names) if name]
    clean_recipient_emails = [
        email for email in (normalize_whitespace(entry).lower() for entry in recipient_emails) if email
    ]

    text = FORWARDED_BLOCK_PATTERN.sub(" ", text)
    text = HEADER_LINE_PATTERN.sub(" ", text)
    text = INLINE_HEADER_SEGMENT_PATTERN.sub(" ", text)
    text = REPLY_CONTEXT_PATTERN.sub(" ", text)
    text = EMAIL_PATTERN.sub(REDACTED_EMAIL, text)
    text = PHONE_PATTERN.sub(REDACTED_PHONE, text)
    text = LONG_MACHINE_TOKEN_PATTERN.sub(" ", text)
    text = _redact_names_around_emails(text)

    if clean_sender_email:
        text = _replace_token(text, clean_sender_email, REDACTED_SENDER)
    if clean_sender_name and is_likely_person_name(clean_sender_name):
        text = _replace_token(text, clean_sender_name, REDACTED_SENDER)
    for email in clean_recipient_emails:
        text = _replace_token(text, email, REDACTED_RECIPIENT)
    for name in clean_recipient_names:
        if is_likely_person_name(name):
            text = _replace_token(text, name, REDACTED_RECIPIENT)

    text = _strip_tail_signature(normalize_whitespace(text))
    return normalize_whitespace(text)


def redact_archive_for_extraction(archive: ArchiveRecord) -> ArchiveRecord:
    """Return a copy of the archive with sender identity and contact details scrubbed."""

    sender_name, sender_email = parse_from_header(archive.from_header)

    def _redact(value: str | None) -> str:
        return redact_pii_text(value, sender_name=sender_name, sender_email=sender_email)

    return replace(
        archive,
        from_header=_redact(archive.from_header),
        subject=truncate_text(_redact(archive.subject), 320),
        snippet=truncate_text(_redact(archive.snippet), 1200),
        body_preview=truncate_text(_redact(archive.body_preview), 5000),
    )
