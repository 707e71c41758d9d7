"""Unit tests for the rule-based, fallback and LLM extraction adapters."""

from __future__ import annotations

import json
import threading
import unittest
from datetime import datetime, timezone

from broker_reports.dedupe.duplicate_key import build_duplicate_key
from broker_reports.extraction.archive_to_report import (
    DEFAULT_BROKER,
    NO_SUBJECT_TITLE,
    ArchiveToReportAdapter,
    combine_confidence,
    extract_reports_from_archives,
    parse_archive_to_report,
    score_summary_candidate,
)
from broker_reports.extraction.fallback_adapter import (
    FALLBACK_CONFIDENCE,
    UNMAPPED_BROKER,
    FallbackReportAdapter,
    classify_fallback_report_type,
    guess_company_from_subject,
)
from broker_reports.extraction.llm_adapter import (
    LLMExtractionError,
    LLMReportAdapter,
    _get_report_system_prompt,
    build_llm_adapter,
)
from broker_reports.extraction.types import ArchiveRecord
from broker_reports.normalization.company import UNKNOWN_COMPANY

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _reliance_archive(**overrides: object) -> ArchiveRecord:
    fields: dict[str, object] = {
        "id": "arch-rel-1",
        "user_id": "user-1",
        "broker": "Axis Capital",
        "from_header": '"Priya Sharma" <priya@axiscap.in>',
        "subject": "Reliance Industries: Q2FY26 Results Update",
        "snippet": "Retail EBITDA grew 18% YoY while refining margins expanded to $9.5/bbl.",
        "body_preview": (
            "We maintain BUY with a target price of Rs 3,200. Jio subscriber additions beat estimates."
        ),
        "date_header": "Mon, 19 Oct 2026 09:00:00 +0000",
        "ingested_at": datetime(2026, 10, 19, 9, 5, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return ArchiveRecord(**fields)


class _StubClient:
    model = "stub-model-v1"

    def __init__(self, payload: object) -> None:
        self.payload = payload
        self.calls: list[dict] = []

    def extract_structured(self, archive, *, hints=None):  # noqa: ANN001
        self.calls.append({"archive": archive, "hints": hints})
        return self.payload


class _PerArchiveClient:
    """Answers with a title naming the archive, after both callers have arrived."""

    model = "stub-model-v1"

    def __init__(self, parties: int) -> None:
        self._barrier = threading.Barrier(parties, timeout=5)

    def extract_structured(self, archive, *, hints=None):  # noqa: ANN001
        self._barrier.wait()
        return {"title": f"Report for {archive['id']}", "key_points": [], "confidence": 0.6}


class ArchiveToReportTests(unittest.TestCase):
    def test_parses_results_update_with_subject_company(self) -> None:
        candidate = parse_archive_to_report(_reliance_archive(), now=NOW)

        self.assertEqual(candidate.archive_id, "arch-rel-1")
        self.assertEqual(candidate.broker, "Axis Capital")
        self.assertEqual(candidate.company_canonical, "Reliance Industries")
        self.assertEqual(candidate.report_type, "results_update")
        self.assertEqual(candidate.title, "Reliance Industries: Q2FY26 Results Update")
        self.assertEqual(candidate.published_at, datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc))
        self.assertIn("EBITDA", candidate.summary)
        self.assertLessEqual(len(candidate.summary), 360)
        self.assertEqual(len(candidate.key_points), 3)
        self.assertEqual(candidate.key_points[0], candidate.summary)
        self.assertGreaterEqual(candidate.confidence, 0.9)
        self.assertLessEqual(candidate.confidence, 0.99)

    def test_duplicate_key_matches_identifying_fields(self) -> None:
        candidate = parse_archive_to_report(_reliance_archive(), now=NOW)
        expected = build_duplicate_key(
            user_id="user-1",
            broker="Axis Capital",
            company_canonical="Reliance Industries",
            report_type="results_update",
            title="Reliance Industries: Q2FY26 Results Update",
            published_at=datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc),
        )
        self.assertEqual(candidate.duplicate_key, expected)

        resent = parse_archive_to_report(
            _reliance_archive(id="arch-rel-2", date_header="Mon, 19 Oct 2026 17:45:00 +0000"),
            now=NOW,
        )
        self.assertEqual(resent.duplicate_key, candidate.duplicate_key)

    def test_empty_archive_gets_defaults(self) -> None:
        candidate = parse_archive_to_report(ArchiveRecord(id="arch-empty", user_id="user-1"), now=NOW)

        self.assertEqual(candidate.title, NO_SUBJECT_TITLE)
        self.assertEqual(candidate.broker, DEFAULT_BROKER)
        self.assertEqual(candidate.company_canonical, UNKNOWN_COMPANY)
        self.assertEqual(candidate.report_type, "general_update")
        self.assertEqual(candidate.published_at, NOW)
        self.assertEqual(candidate.summary, "")
        self.assertEqual(candidate.key_points, [])
        self.assertGreaterEqual(candidate.confidence, 0.2)

    def test_rejects_non_archive_input(self) -> None:
        with self.assertRaises(TypeError):
            parse_archive_to_report({"id": "arch-1"})  # type: ignore[arg-type]

    def test_confidence_is_weighted_and_clamped(self) -> None:
        self.assertAlmostEqual(combine_confidence(0.5, 0.5, False), 0.45)
        self.assertAlmostEqual(combine_confidence(1.0, 1.0, True), 0.99)
        self.assertAlmostEqual(combine_confidence(0.0, 0.0, False), 0.2)

    def test_summary_scoring_penalizes_boilerplate_and_rewards_numbers(self) -> None:
        self.assertLess(score_summary_candidate("Please unsubscribe from this list here.", "general_update"), 0)
        self.assertGreater(
            score_summary_candidate("We maintain BUY with a target price of Rs 3,200 on the stock.", "initiation"),
            score_summary_candidate("We like the stock a lot and see further upside.", "initiation"),
        )

    def test_batch_helper_preserves_order(self) -> None:
        candidates = extract_reports_from_archives(
            [_reliance_archive(id="a1"), _reliance_archive(id="a2")],
            now=NOW,
        )
        self.assertEqual([candidate.archive_id for candidate in candidates], ["a1", "a2"])

    def test_adapter_returns_raw_report(self) -> None:
        adapter = ArchiveToReportAdapter(clock=lambda: NOW)
        raw = adapter.extract(_reliance_archive(), "user-1", "xrun-1")

        self.assertEqual(adapter.source, "rule_based:archive_to_report")
        self.assertEqual(raw.company_canonical, "Reliance Industries")
        self.assertEqual(raw.report_type, "results_update")


class FallbackAdapterTests(unittest.TestCase):
    def test_company_guess_uses_first_separator_or_first_words(self) -> None:
        self.assertEqual(guess_company_from_subject("Tata Motors | JLR volumes recover"), "Tata Motors")
        self.assertEqual(guess_company_from_subject("Tata Motors - Q2 preview"), "Tata Motors")
        self.assertEqual(guess_company_from_subject("Infosys: deal wins"), "Infosys")
        self.assertEqual(guess_company_from_subject("Weekly sector monitor banks"), "Weekly sector monitor")
        self.assertEqual(guess_company_from_subject(None), "")

    def test_keyword_report_types(self) -> None:
        self.assertEqual(classify_fallback_report_type("Initiating coverage on Infosys", ""), "Initiation")
        self.assertEqual(classify_fallback_report_type("Infosys Q2 review", ""), "Results Update")
        self.assertEqual(classify_fallback_report_type("Cement weekly", ""), "Sector Update")
        self.assertEqual(classify_fallback_report_type("Infosys deal wins", "Large deal signed."), "General Update")

    def test_extract_fills_every_field(self) -> None:
        archive = ArchiveRecord(
            id="arch-tm-1",
            user_id="user-1",
            subject="Tata Motors | JLR volumes recover",
            body_preview="JLR wholesale volumes rose 12%. Margins improved.",
            date_header="Mon, 19 Oct 2026 09:00:00 +0000",
            ingested_at=NOW,
        )
        raw = FallbackReportAdapter().extract(archive, "user-1", "xrun-1")

        self.assertEqual(raw.broker, UNMAPPED_BROKER)
        self.assertEqual(raw.company_raw, "Tata Motors")
        self.assertEqual(raw.company_canonical, "Tata Motors")
        self.assertEqual(raw.report_type, "General Update")
        self.assertEqual(raw.title, "Tata Motors | JLR volumes recover")
        self.assertEqual(raw.summary, "JLR wholesale volumes rose 12%. Margins improved.")
        self.assertEqual(raw.key_points, ["JLR wholesale volumes rose 12%.", "Margins improved."])
        self.assertEqual(raw.published_at, datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc))
        self.assertEqual(raw.confidence, FALLBACK_CONFIDENCE)

    def test_missing_date_header_uses_ingest_time(self) -> None:
        archive = ArchiveRecord(id="arch-2", user_id="user-1", subject="Note", ingested_at=NOW)
        raw = FallbackReportAdapter().extract(archive, "user-1", "xrun-1")
        self.assertEqual(raw.published_at, NOW)


class LLMReportAdapterTests(unittest.TestCase):
    def test_model_output_is_cleaned_and_clamped(self) -> None:
        client = _StubClient(
            {
                "broker": "Axis Capital",
                "company_raw": "Reliance Industries Ltd",
                "company_canonical": "Reliance Industries Ltd",
                "report_type": "Results Update",
                "title": "Reliance Q2 results",
                "summary": "Retail EBITDA grew 18% YoY.",
                "key_points": ["Retail EBITDA grew 18% YoY.", "retail ebitda grew 18% yoy.", "Jio ARPU rose"],
                "published_at": "2026-10-19T09:00:00Z",
                "confidence": 1.4,
            }
        )
        adapter = LLMReportAdapter(client)
        raw = adapter.extract(_reliance_archive(), "user-1", "xrun-1")

        self.assertEqual(adapter.source, "llm:stub-model-v1")
        self.assertEqual(raw.company_raw, "Reliance Industries Ltd")
        self.assertEqual(raw.company_canonical, "Reliance Industries")
        self.assertEqual(raw.report_type, "results_update")
        self.assertEqual(raw.key_points, ["Retail EBITDA grew 18% YoY.", "Jio ARPU rose"])
        self.assertEqual(raw.published_at, datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc))
        self.assertEqual(raw.confidence, 1.0)

    def test_archive_is_redacted_before_reaching_the_model(self) -> None:
        client = _StubClient({"key_points": [], "confidence": 0.5})
        LLMReportAdapter(client).extract(
            _reliance_archive(body_preview="Priya Sharma (priya@axiscap.in) expects a beat."),
            "user-1",
            "xrun-7",
        )

        sent = json.dumps(client.calls[0]["archive"])
        self.assertNotIn("priya@axiscap.in", sent)
        self.assertNotIn("Priya Sharma", sent)
        self.assertNotIn("from_header", client.calls[0]["archive"])
        self.assertEqual(client.calls[0]["hints"]["run_id"], "xrun-7")

    def test_missing_fields_fall_back_to_heuristics(self) -> None:
        client = _StubClient(
            {
                "broker": None,
                "company_raw": None,
                "company_canonical": None,
                "report_type": None,
                "title": None,
                "summary": None,
                "key_points": [],
                "published_at": None,
                "confidence": 0.4,
            }
        )
        raw = LLMReportAdapter(client).extract(_reliance_archive(), "user-1", "xrun-1")

        self.assertEqual(raw.broker, "Axis Capital")
        self.assertEqual(raw.title, "Reliance Industries: Q2FY26 Results Update")
        self.assertEqual(raw.company_canonical, "Reliance Industries")
        self.assertEqual(raw.report_type, "Results Update")
        self.assertEqual(raw.published_at, datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc))
        self.assertTrue(raw.summary)
        self.assertAlmostEqual(raw.confidence or 0.0, 0.4)

    def test_model_labels_map_onto_classifier_vocabulary(self) -> None:
        for label, expected in (
            ("Earnings", "results_update"),
            ("Initiating Coverage", "initiation"),
            ("Target price change", "target_change"),
            ("rating_change", "rating_change"),
        ):
            with self.subTest(label=label):
                raw = LLMReportAdapter(_StubClient({"report_type": label, "key_points": []})).extract(
                    _reliance_archive(), "user-1", "xrun-1"
                )
                self.assertEqual(raw.report_type, expected)

    def test_one_adapter_serves_concurrent_extractions(self) -> None:
        adapter = LLMReportAdapter(_PerArchiveClient(parties=2))
        results: dict[str, str] = {}

        def _extract(archive_id: str) -> None:
            raw = adapter.extract(_reliance_archive(id=archive_id), "user-1", f"xrun-{archive_id}")
            results[archive_id] = raw.title

        threads = [threading.Thread(target=_extract, args=(archive_id,)) for archive_id in ("arch-a", "arch-b")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        self.assertEqual(results, {"arch-a": "Report for arch-a", "arch-b": "Report for arch-b"})
        self.assertFalse(hasattr(adapter, "last_raw_output"))

    def test_invalid_payload_raises_extraction_error(self) -> None:
        adapter = LLMReportAdapter(_StubClient({"key_points": "not-a-list", "confidence": "high"}))
        with self.assertRaises(LLMExtractionError):
            adapter.extract(_reliance_archive(), "user-1", "xrun-1")

        with self.assertRaises(LLMExtractionError):
            LLMReportAdapter(_StubClient(["not", "an", "object"])).extract(_reliance_archive(), "user-1", "xrun-1")

    def test_builder_requires_api_key(self) -> None:
        with self.assertRaises(LLMExtractionError):
            build_llm_adapter(api_key=None, model="gpt-test", base_url="https://example.invalid/v1", timeout_seconds=5)

        adapter = build_llm_adapter(
            api_key="sk-test",
            model="gpt-test",
            base_url="https://example.invalid/v1",
            timeout_seconds=5,
        )
        self.assertEqual(adapter.source, "llm:gpt-test")
        self.assertEqual(adapter.prompt_version, "report.v1")

    def test_system_prompt_loads(self) -> None:
        prompt = _get_report_system_prompt()
        self.assertIn("key_points", prompt)


if __name__ == "__main__":
    unittest.main()
