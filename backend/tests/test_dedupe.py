"""Unit tests for exact duplicate keys and semantic duplicate detection."""

from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from broker_reports.dedupe.duplicate_key import build_duplicate_key, duplicate_key_for
from broker_reports.dedupe.similarity import (
    SemanticDedupeConfig,
    find_semantic_duplicate,
    is_semantic_duplicate,
    jaccard_similarity,
    match_key,
)

PUBLISHED = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


def _key(**overrides: object) -> str:
    fields: dict[str, object] = {
        "user_id": "user-1",
        "broker": "Axis Capital",
        "company_canonical": "Reliance Industries",
        "report_type": "results_update",
        "title": "Reliance Industries Results Update",
        "published_at": PUBLISHED,
    }
    fields.update(overrides)
    return build_duplicate_key(**fields)


def _report(**overrides: object) -> SimpleNamespace:
    fields: dict[str, object] = {
        "id": "xrep_1",
        "user_id": "user-1",
        "broker": "Axis Capital",
        "company_canonical": "Reliance Industries",
        "title": "Reliance Industries results review",
        "summary": "Refining margins expanded while retail revenue beat estimates",
        "published_at": PUBLISHED,
        "duplicate_of_report_id": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class DuplicateKeyTests(unittest.TestCase):
    def test_key_format_carries_utc_day_and_digest(self) -> None:
        key = _key()
        self.assertTrue(key.startswith("rpt_2026-10-19_"))
        self.assertEqual(len(key), len("rpt_2026-10-19_") + 24)

    def test_same_utc_day_gives_same_key(self) -> None:
        self.assertEqual(_key(), _key(published_at=PUBLISHED + timedelta(hours=9)))

    def test_different_day_gives_different_key(self) -> None:
        self.assertNotEqual(_key(), _key(published_at=PUBLISHED + timedelta(days=1)))

    def test_case_and_punctuation_do_not_change_key(self) -> None:
        self.assertEqual(_key(), _key(broker="AXIS CAPITAL.", title="reliance industries results update!"))

    def test_each_identifying_field_changes_key(self) -> None:
        base = _key()
        self.assertNotEqual(base, _key(user_id="user-2"))
        self.assertNotEqual(base, _key(broker="Kotak"))
        self.assertNotEqual(base, _key(company_canonical="Infosys"))
        self.assertNotEqual(base, _key(report_type="initiation"))
        self.assertNotEqual(base, _key(title="Reliance Industries Initiation"))

    def test_missing_date_uses_unknown_day_bucket(self) -> None:
        self.assertTrue(_key(published_at=None).startswith("rpt_unknown-day_"))

    def test_duplicate_key_for_reads_report_attributes(self) -> None:
        report = SimpleNamespace(
            user_id="user-1",
            broker="Axis Capital",
            company_canonical="Reliance Industries",
            report_type="results_update",
            title="Reliance Industries Results Update",
            published_at=PUBLISHED,
        )
        self.assertEqual(duplicate_key_for(report), _key())


class SimilarityTests(unittest.TestCase):
    def test_jaccard_ignores_order_short_tokens_and_stop_words(self) -> None:
        self.assertEqual(
            jaccard_similarity("Margins expanded on strong volumes", "Strong volumes and expanded margins"),
            1.0,
        )
        self.assertEqual(jaccard_similarity("", "anything here"), 0.0)

    def test_match_key_slugifies_identity(self) -> None:
        self.assertEqual(match_key("Axis & Co."), "axis-and-co")
        self.assertEqual(match_key("  AXIS and co "), "axis-and-co")

    def test_summary_overlap_alone_marks_duplicate(self) -> None:
        existing = _report()
        incoming = _report(id="xrep_2", title="Post-call takeaways", published_at=PUBLISHED + timedelta(days=6))
        self.assertTrue(is_semantic_duplicate(existing, incoming, SemanticDedupeConfig()))

    def test_moderate_summary_overlap_needs_title_overlap(self) -> None:
        existing = _report()
        similar_title = _report(
            id="xrep_2",
            summary="Refining margins expanded while retail revenue beat guidance",
        )
        different_title = _report(
            id="xrep_3",
            title="Quarterly preview",
            summary="Refining margins expanded while retail revenue beat guidance",
        )
        config = SemanticDedupeConfig()
        self.assertLess(jaccard_similarity(existing.summary, similar_title.summary), config.summary_threshold)
        self.assertTrue(is_semantic_duplicate(existing, similar_title, config))
        self.assertFalse(is_semantic_duplicate(existing, different_title, config))

    def test_identity_and_window_gates(self) -> None:
        existing = _report()
        config = SemanticDedupeConfig()
        self.assertFalse(is_semantic_duplicate(existing, _report(broker="Kotak"), config))
        self.assertFalse(is_semantic_duplicate(existing, _report(company_canonical="Infosys"), config))
        self.assertFalse(is_semantic_duplicate(existing, _report(user_id="user-2"), config))
        self.assertFalse(
            is_semantic_duplicate(existing, _report(published_at=PUBLISHED + timedelta(days=32)), config)
        )
        self.assertTrue(
            is_semantic_duplicate(existing, _report(published_at=PUBLISHED - timedelta(days=21)), config)
        )

    def test_find_semantic_duplicate_skips_duplicates_and_returns_first_canonical(self) -> None:
        already_duplicate = _report(id="xrep_0", duplicate_of_report_id="xrep_9")
        first = _report(id="xrep_1")
        second = _report(id="xrep_2")
        incoming = _report(id="xrep_3", title="Another look")

        match = find_semantic_duplicate([already_duplicate, None, first, second], incoming)
        self.assertIsNotNone(match)
        assert match is not None
        self.assertEqual(match.id, "xrep_1")
        self.assertIsNone(find_semantic_duplicate([], incoming))


if __name__ == "__main__":
    unittest.main()
