"""HTTP contract tests for archive, extraction run and report routes."""

from __future__ import annotations

import os
import tempfile
import unittest
from collections.abc import Iterator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from broker_reports.config import Settings
from broker_reports.db.dependencies import get_db
from broker_reports.extraction.fallback_adapter import FallbackReportAdapter
from broker_reports.main import app
from broker_reports.models.base import Base
from broker_reports.services.extraction_runs import ExtractionOrchestrator

HEADERS = {"X-User-Id": "analyst-1"}


class ApiRouteTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self._tmpdir.name, "api.sqlite3")
        self.engine = create_engine(
            f"sqlite+pysqlite:///{db_path}",
            future=True,
            connect_args={"check_same_thread": False},
        )
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False, future=True)
        self.orchestrator = ExtractionOrchestrator(
            self.SessionLocal,
            FallbackReportAdapter(),
            settings=Settings(extraction_adapter="fallback", extraction_max_workers=1),
        )

        def _override_get_db() -> Iterator[Session]:
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = _override_get_db
        app.state.orchestrator = self.orchestrator
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        app.state.orchestrator = None
        self.orchestrator.close(wait=True)
        self.engine.dispose()
        self._tmpdir.cleanup()

    def _post_archives(self) -> None:
        response = self.client.post(
            "/archives",
            headers=HEADERS,
            json={
                "archives": [
                    {
                        "id": "a1",
                        "broker": "Axis Capital",
                        "subject": "Reliance Industries Results Update",
                        "body_preview": "Retail EBITDA grew 18% YoY.",
                        "date_header": "Mon, 19 Oct 2026 06:00:00 +0000",
                        "ingested_at": "2026-10-19T06:05:00Z",
                    },
                    {
                        "id": "a2",
                        "broker": "Axis Capital",
                        "subject": "Reliance Industries Results Update",
                        "body_preview": "Resent with the corrected model.",
                        "date_header": "Mon, 19 Oct 2026 15:00:00 +0000",
                        "ingested_at": "2026-10-19T15:05:00Z",
                    },
                ]
            },
        )
        self.assertEqual(response.status_code, 201)

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"data": {"status": "ok"}})

    def test_user_header_is_required(self) -> None:
        response = self.client.get("/extraction/runs")
        self.assertEqual(response.status_code, 422)

    def test_archives_round_trip(self) -> None:
        self._post_archives()
        response = self.client.get("/archives", headers=HEADERS)

        self.assertEqual(response.status_code, 200)
        payload = response.json()["data"]
        self.assertEqual(payload["total"], 2)
        self.assertEqual([item["id"] for item in payload["items"]], ["a1", "a2"])

    def test_trigger_poll_and_list_reports(self) -> None:
        self._post_archives()
        triggered = self.client.post("/extraction/runs", headers=HEADERS)

        self.assertEqual(triggered.status_code, 202)
        run = triggered.json()["data"]
        self.assertEqual(run["status"], "queued")
        self.assertEqual(run["stats"]["candidate_archives"], 2)
        self.assertTrue(self.orchestrator.wait_until_idle(timeout=10))

        polled = self.client.get(f"/extraction/runs/{run['id']}", headers=HEADERS)
        self.assertEqual(polled.status_code, 200)
        finished = polled.json()["data"]
        self.assertEqual(finished["status"], "completed")
        self.assertEqual(finished["stats"]["extracted_reports"], 2)
        self.assertEqual(finished["stats"]["duplicate_reports"], 1)

        listed = self.client.get("/extraction/runs", headers=HEADERS, params={"status": "completed"})
        self.assertEqual(listed.json()["data"]["total"], 1)

        reports = self.client.get(
            "/extracted-reports",
            headers=HEADERS,
            params={"includeDuplicates": "false", "runId": run["id"]},
        )
        self.assertEqual(reports.status_code, 200)
        items = reports.json()["data"]["items"]
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0]["archive_id"], "a1")
        self.assertIsNone(items[0]["duplicate_of_report_id"])

    def test_get_single_report(self) -> None:
        self._post_archives()
        run = self.client.post("/extraction/runs", headers=HEADERS, json={"archive_ids": ["a1"]}).json()["data"]
        self.assertTrue(self.orchestrator.wait_until_idle(timeout=10))

        items = self.client.get("/extracted-reports", headers=HEADERS, params={"runId": run["id"]}).json()["data"][
            "items"
        ]
        self.assertEqual(len(items), 1)

        fetched = self.client.get(f"/extracted-reports/{items[0]['id']}", headers=HEADERS)
        self.assertEqual(fetched.status_code, 200)
        self.assertEqual(fetched.json()["data"]["archive_id"], "a1")

        other_user = self.client.get(f"/extracted-reports/{items[0]['id']}", headers={"X-User-Id": "analyst-2"})
        self.assertEqual(other_user.status_code, 404)

    def test_trigger_with_filters_body(self) -> None:
        self._post_archives()
        response = self.client.post(
            "/extraction/runs",
            headers=HEADERS,
            json={"archive_ids": ["a2"], "limit": 5, "trigger": "backfill"},
        )

        self.assertEqual(response.status_code, 202)
        run = response.json()["data"]
        self.assertEqual(run["trigger"], "backfill")
        self.assertEqual(run["filters"]["requested_archive_ids"], ["a2"])
        self.assertEqual(run["stats"]["candidate_archives"], 1)

    def test_invalid_trigger_body_is_rejected(self) -> None:
        too_large = self.client.post("/extraction/runs", headers=HEADERS, json={"limit": 5000})
        self.assertEqual(too_large.status_code, 422)

        blank_broker = self.client.post("/extraction/runs", headers=HEADERS, json={"broker": "   "})
        self.assertEqual(blank_broker.status_code, 400)

    def test_abort_routes(self) -> None:
        triggered = self.client.post("/extraction/runs", headers=HEADERS, json={"archive_ids": []}).json()["data"]
        self.assertTrue(self.orchestrator.wait_until_idle(timeout=10))

        aborted = self.client.post(
            f"/extraction/runs/{triggered['id']}/abort",
            headers=HEADERS,
            json={"reason": "Not needed"},
        )
        self.assertEqual(aborted.status_code, 200)
        result = aborted.json()["data"]
        self.assertFalse(result["accepted"])
        self.assertTrue(result["already_terminal"])

        missing = self.client.post("/extraction/runs/xrun_missing/abort", headers=HEADERS)
        self.assertEqual(missing.status_code, 404)

    def test_unknown_run_is_not_found(self) -> None:
        response = self.client.get("/extraction/runs/xrun_missing", headers=HEADERS)
        self.assertEqual(response.status_code, 404)

    def test_blank_ids_are_rejected(self) -> None:
        status = self.client.get("/extraction/runs/%20", headers=HEADERS)
        self.assertEqual(status.status_code, 400)

        abort = self.client.post("/extraction/runs/%20/abort", headers=HEADERS)
        self.assertEqual(abort.status_code, 400)

        report = self.client.get("/extracted-reports/%20", headers=HEADERS)
        self.assertEqual(report.status_code, 400)

    def test_bad_report_filters_are_rejected(self) -> None:
        inverted = self.client.get(
            "/extracted-reports",
            headers=HEADERS,
            params={"publishedFrom": "2026-10-20T00:00:00Z", "publishedTo": "2026-10-19T00:00:00Z"},
        )
        self.assertEqual(inverted.status_code, 400)

        bad_status = self.client.get("/extraction/runs", headers=HEADERS, params={"status": "paused"})
        self.assertEqual(bad_status.status_code, 400)

    def test_missing_orchestrator_returns_service_unavailable(self) -> None:
        app.state.orchestrator = None
        response = self.client.get("/extraction/runs", headers=HEADERS)
        self.assertEqual(response.status_code, 503)


if __name__ == "__main__":
    unittest.main()
