"""LLM-backed adapter that summarizes one broker email into one report."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Protocol
from urllib import error as urllib_error
from urllib import request as urllib_request

from pydantic import BaseModel, Field, ValidationError

from broker_reports.extraction.extractor_interface import ExtractionAdapter
from broker_reports.extraction.fallback_adapter import FallbackReportAdapter
from broker_reports.extraction.pii_redaction import redact_archive_for_extraction
from broker_reports.extraction.types import ArchiveRecord, RawReport
from broker_reports.normalization.company import canonicalize_company_name
from broker_reports.normalization.dates import parse_datetime, to_iso_string
from broker_reports.normalization.text import normalize_whitespace, unique_strings

_REPORT_JSON_SCHEMA: dict[str, Any] = {
    "name": "broker_report_extraction",
    "strict": True,
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "broker": {"type": ["string", "null"]},
            "company_raw": {"type": ["string", "null"]},
            "company_canonical": {"type": ["string", "null"]},
            "report_type": {"type": ["string", "null"]},
            "title": {"type": ["string", "null"]},
            "summary": {"type": ["string", "null"]},
            "key_points": {"type": "array", "items": {"type": "string"}},
            "published_at": {"type": ["string", "null"]},
            "confidence": {"type": "number"},
        },
        "required": [
            "broker",
            "company_raw",
            "company_canonical",
            "report_type",
            "title",
            "summary",
            "key_points",
            "published_at",
            "confidence",
        ],
    },
}
LLM_REPORT_PROMPT_VERSION = "report.v1"
_PROMPT_FILES: dict[str, Path] = {
    "report.v1": Path(__file__).resolve().parent / "prompts" / "report_v1.txt",
}

# Labels the model tends to produce that map onto the classifier's vocabulary.
REPORT_TYPE_ALIASES: dict[str, str] = {
    "initiating_coverage": "initiation",
    "coverage_initiation": "initiation",
    "result_update": "results_update",
    "earnings_update": "results_update",
    "earnings": "results_update",
    "results": "results_update",
    "target_price_change": "target_change",
    "price_target_change": "target_change",
    "upgrade": "rating_change",
    "downgrade": "rating_change",
    "company_update": "general_update",
    "update": "general_update",
}


class LLMExtractionError(RuntimeError):
    """Raised when AI extraction is misconfigured or the provider response is invalid."""


class LLMClient(Protocol):
    """Protocol for pluggable LLM clients used by the adapter."""

    def extract_structured(
        self,
        archive: dict[str, Any],
        *,
        hints: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Return a structured report payload."""


@dataclass(slots=True)
class OpenAIChatCompletionsClient:
    """Minimal OpenAI Chat Completions client using stdlib HTTP."""

    api_key: str
    model: str
    base_url: str = "https://api.openai.com/v1"
    timeout_seconds: int = 18

    def extract_structured(
        self,
        archive: dict[str, Any],
        *,
        hints: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Call OpenAI and return the parsed JSON report."""

        system_prompt = _get_report_system_prompt()
        user_prompt = json.dumps(
            {
                "task": "Summarize this broker research email as one structured report.",
                "hints": hints or {},
                "email": archive,
            },
            ensure_ascii=True,
        )

        payload = {
            "model": self.model,
            "temperature": 0,
            "response_format": {
                "type": "json_schema",
                "json_schema": _REPORT_JSON_SCHEMA,
            },
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        url = f"{self.base_url.rstrip('/')}/chat/completions"
        req = urllib_request.Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )

        try:
            with urllib_request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read().decode("utf-8")
        except urllib_error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise LLMExtractionError(f"OpenAI HTTP {exc.code}: {detail}") from exc
        except urllib_error.URLError as exc:
            raise LLMExtractionError(f"OpenAI request failed: {exc.reason}") from exc
        except TimeoutError as exc:
            raise LLMExtractionError(f"OpenAI request timed out after {self.timeout_seconds}s") from exc

        try:
            decoded = json.loads(raw)
            message = decoded["choices"][0]["message"]
            refusal = message.get("refusal")
            if isinstance(refusal, str) and refusal.strip():
                raise LLMExtractionError(f"OpenAI refused extraction request: {refusal.strip()}")
            content = message["content"]
            if not isinstance(content, str):
                raise TypeError("OpenAI response content is not a string")
            return json.loads(content)
        except LLMExtractionError:
            raise
        except (KeyError, IndexError, TypeError, json.JSONDecodeError) as exc:
            raise LLMExtractionError("OpenAI returned an unexpected or non-JSON response") from exc


@lru_cache(maxsize=8)
def _get_report_system_prompt(version: str = LLM_REPORT_PROMPT_VERSION) -> str:
    prompt_file = _PROMPT_FILES.get(version)
    if prompt_file is None:
        raise LLMExtractionError(f"Report prompt version is not registered: {version}")
    try:
        prompt_text = prompt_file.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise LLMExtractionError(f"Failed to load report prompt file: {prompt_file}") from exc
    if not prompt_text:
        raise LLMExtractionError(f"Report prompt file is empty: {prompt_file}")
    return prompt_text


class _RawReportPayload(BaseModel):
    broker: str | None = None
    company_raw: str | None = None
    company_canonical: str | None = None
    report_type: str | None = None
    title: str | None = None
    summary: str | None = None
    key_points: list[str] = Field(default_factory=list)
    published_at: str | None = None
    confidence: float = 0.7


class LLMReportAdapter(ExtractionAdapter):
    """AI-powered adapter; gaps in the model output are filled by the fallback heuristics."""

    def __init__(self, client: LLMClient, fallback: ExtractionAdapter | None = None) -> None:
        self._client = client
        self._fallback = fallback or FallbackReportAdapter()

    @property
    def source(self) -> str:  # type: ignore[override]
        return f"llm:{self.model_name}"

    @property
    def model_name(self) -> str:
        return str(getattr(self._client, "model", self._client.__class__.__name__))

    @property
    def prompt_version(self) -> str:
        return LLM_REPORT_PROMPT_VERSION

    def extract(self, archive: ArchiveRecord, user_id: str, run_id: str) -> RawReport:
        """Send the redacted archive to the model and merge its answer with the fallback."""

        redacted = redact_archive_for_extraction(archive)
        raw_payload = self._client.extract_structured(
            self._serialize_archive(redacted),
            hints={"run_id": run_id, "broker": redacted.broker},
        )
        try:
            validated = _RawReportPayload.model_validate(raw_payload)
        except ValidationError as exc:
            raise LLMExtractionError(f"LLM report payload failed validation: {exc}") from exc

        fallback = self._fallback.extract(redacted, user_id, run_id) or RawReport()
        company_raw = self._clean_text(validated.company_raw) or fallback.company_raw
        company_canonical = (
            canonicalize_company_name(validated.company_canonical or validated.company_raw)
            or fallback.company_canonical
        )
        key_points = unique_strings((self._clean_text(point) for point in validated.key_points), 10)

        return RawReport(
            broker=self._clean_text(validated.broker) or fallback.broker,
            company_raw=company_raw,
            company_canonical=company_canonical,
            report_type=self._normalize_report_type(validated.report_type)
            or fallback.report_type,
            title=self._clean_text(validated.title) or fallback.title,
            summary=self._clean_text(validated.summary) or fallback.summary,
            key_points=key_points or list(fallback.key_points),
            published_at=parse_datetime(validated.published_at) or fallback.published_at,
            confidence=max(0.0, min(1.0, float(validated.confidence))),
        )

    @staticmethod
    def _serialize_archive(archive: ArchiveRecord) -> dict[str, Any]:
        return {
            "id": archive.id,
            "broker": archive.broker,
            "subject": archive.subject,
            "snippet": archive.snippet,
            "body_preview": archive.body_preview,
            "date_header": archive.date_header,
            "ingested_at": to_iso_string(archive.ingested_at),
        }

    @staticmethod
    def _clean_text(value: str | None) -> str:
        if not value:
            return ""
        return normalize_whitespace(value).strip(" \t\r\n,:;\"'")

    @classmethod
    def _normalize_report_type(cls, value: str | None) -> str:
        cleaned = cls._clean_text(value)
        if not cleaned:
            return ""
        label = re.sub(r"[^a-z0-9]+", "_", cleaned.lower()).strip("_")
        return REPORT_TYPE_ALIASES.get(label, label)


def build_llm_adapter(
    *,
    api_key: str | None,
    model: str,
    base_url: str,
    timeout_seconds: int,
) -> LLMReportAdapter:
    if not api_key:
        raise LLMExtractionError(
            "OPENAI_API_KEY is not configured. Set it in backend/.env before using the llm adapter."
        )
    return LLMReportAdapter(
        OpenAIChatCompletionsClient(
            api_key=api_key,
            model=model,
            base_url=base_url,
            timeout_seconds=timeout_seconds,
        )
    )
