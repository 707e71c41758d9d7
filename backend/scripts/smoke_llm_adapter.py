"""Run a real LLM adapter call against one in-memory broker email.

Usage (from repo root):
    python backend/scripts/smoke_llm_adapter.py

Usage (from backend/):
    python scripts/smoke_llm_adapter.py
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from broker_reports.config import get_settings
from broker_reports.extraction.llm_adapter import build_llm_adapter
from broker_reports.extraction.types import ArchiveRecord
from broker_reports.normalization.dates import to_iso_string


def _demo_archive() -> ArchiveRecord:
    return ArchiveRecord(
        id="smoke-archive-001",
        user_id="smoke-user",
        broker="Axis Capital",
        from_header="Priya Shah <priya.shah@axiscap.example>",
        subject="Reliance Industries Q3FY26 Results Update: retail drives beat",
        snippet="EBITDA grew 12% YoY, ahead of consensus, on strong retail margins.",
        body_preview=(
            "EBITDA grew 12% YoY, ahead of consensus, on strong retail margins. "
            "O2C earnings were flat as refining cracks softened. "
            "We retain BUY and raise our target price to Rs 3,100 from Rs 2,950. "
            "Regards, Priya Shah +91 98200 12345"
        ),
        date_header="Tue, 24 Feb 2026 06:30:00 +0000",
        ingested_at=datetime(2026, 2, 24, 6, 31, 0, tzinfo=timezone.utc),
    )


def main() -> None:
    settings = get_settings()
    adapter = build_llm_adapter(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        base_url=settings.openai_base_url,
        timeout_seconds=settings.openai_timeout_seconds,
    )
    report = adapter.extract(_demo_archive(), "smoke-user", "smoke-run")
    published_at = report.published_at
    print(
        json.dumps(
            {
                "adapter": adapter.source,
                "prompt_version": adapter.prompt_version,
                "broker": report.broker,
                "company_raw": report.company_raw,
                "company_canonical": report.company_canonical,
                "report_type": report.report_type,
                "title": report.title,
                "summary": report.summary,
                "key_points": report.key_points,
                "published_at": to_iso_string(published_at) if isinstance(published_at, datetime) else published_at,
                "confidence": report.confidence,
            },
            indent=2,
        )
    )


if __name__ == "__main__":
    main()
