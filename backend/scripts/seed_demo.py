"""Seed demo broker emails for one user and run an extraction over them.

Usage (from repository root):
    python backend/scripts/seed_demo.py

Usage (from backend directory):
    python scripts/seed_demo.py
    # or
    python -m scripts.seed_demo
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

from sqlalchemy import delete

# Make `broker_reports` imports work whether the script is run from repo root or backend/.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from broker_reports.db.session import get_session_factory
from broker_reports.models.email_archive import EmailArchive
from broker_reports.models.extracted_report import ExtractedReport
from broker_reports.models.extraction_run import ExtractionRun
from broker_reports.schemas.archive import EmailArchiveCreate
from broker_reports.services.archives import create_archives
from broker_reports.services.extraction_runs import ExtractionOrchestrator

DEFAULT_USER_ID = "demo-user"


def build_demo_archives() -> list[EmailArchiveCreate]:
    """Return a deterministic set of broker emails with one exact and one fuzzy duplicate."""

    base = datetime(2026, 2, 24, 6, 30, 0, tzinfo=timezone.utc)
    rows = [
        (
            "Axis Capital",
            "Reliance Industries Results Update",
            "Q3 EBITDA grew 12% YoY on strong retail margins; we retain BUY with a target of Rs 3,100.",
        ),
        (
            "Axis Capital",
            "Reliance Industries Results Update",
            "Q3 EBITDA grew 12% YoY on strong retail margins; we retain BUY with a target of Rs 3,100.",
        ),
        (
            "Kotak Institutional Equities",
            "Initiating coverage on Tata Motors - JLR recovery underway",
            "We initiate with ADD. JLR margin recovery and India PV share gains drive 18% EPS CAGR.",
        ),
        (
            "Kotak Institutional Equities",
            "Tata Motors: JLR recovery underway, initiating at ADD",
            "We initiate with ADD. JLR margin recovery and India PV share gains drive 18% EPS CAGR over FY25-27.",
        ),
        (
            "Jefferies",
            "Cement sector weekly monitor",
            "Demand stayed soft in the north while cost pressure eased on lower pet coke prices.",
        ),
    ]
    return [
        EmailArchiveCreate(
            id=f"demo-archive-{idx + 1:03d}",
            broker=broker,
            from_header=f"{broker} Research <research@example.com>",
            subject=subject,
            snippet=body[:120],
            body_preview=body,
            date_header=(base + timedelta(minutes=idx)).isoformat(),
            ingested_at=base + timedelta(minutes=idx),
        )
        for idx, (broker, subject, body) in enumerate(rows)
    ]


def reset_user(db, user_id: str) -> None:
    """Remove existing archives, runs and reports for the demo user."""

    db.execute(delete(ExtractedReport).where(ExtractedReport.user_id == user_id))
    db.execute(delete(ExtractionRun).where(ExtractionRun.user_id == user_id))
    db.execute(delete(EmailArchive).where(EmailArchive.user_id == user_id))
    db.commit()


def parse_args() -> argparse.Namespace:
    """Parse script CLI arguments."""

    parser = argparse.ArgumentParser(description="Seed demo broker emails and run extraction.")
    parser.add_argument(
        "--user-id",
        default=DEFAULT_USER_ID,
        help=f"User ID to seed (default: {DEFAULT_USER_ID})",
    )
    parser.add_argument(
        "--no-reset",
        action="store_true",
        help="Do not delete existing records for the user before seeding.",
    )
    return parser.parse_args()


def main() -> None:
    """Seed demo data, run one extraction and print a short summary."""

    args = parse_args()
    user_id: str = args.user_id
    session_factory = get_session_factory()

    with session_factory() as db:
        if not args.no_reset:
            reset_user(db, user_id)
        created = create_archives(db, user_id, build_demo_archives())
        db.commit()

    orchestrator = ExtractionOrchestrator(session_factory)
    try:
        queued = orchestrator.trigger_run(user_id, trigger="seed_demo")
        orchestrator.wait_until_idle(timeout=120)
        run = orchestrator.get_run_status(user_id, queued.id)
    finally:
        orchestrator.close()

    print("Seed complete")
    print(f"user_id={user_id}")
    print(f"archives_created={len(created)}")
    if run is not None:
        print(f"run_id={run.id} status={run.status} adapter={run.adapter_source}")
        print(f"extracted_reports={run.stats.extracted_reports}")
        print(f"duplicate_reports={run.stats.duplicate_reports}")
        print(f"failed_archives={run.stats.failed_archives}")
    print()
    print("Inspect (with header X-User-Id):")
    print("  GET /extraction/runs")
    print("  GET /extracted-reports")


if __name__ == "__main__":
    main()
