"""Unit tests for report type classification and PII redaction."""

from __future__ import annotations

import unittest
from datetime import datetime, timezone

from broker_reports.extraction.pii_redaction import (
    REDACTED_EMAIL,
    REDACTED_PHONE,
    REDACTED_RECIPIENT,
    REDACTED_SENDER,
    is_likely_person_name,
    parse_from_header,
    redact_archive_for_extraction,
    redact_pii_text,
)
from broker_reports.extraction.report_type_classifier import (
    FALLBACK_REPORT_TYPE,
    classify_report_type,
    get_report_type_rules,
)
from broker_reports.extraction.types import ArchiveRecord


class ReportTypeClassifierTests(unittest.TestCase):
    def test_subject_match_gets_confidence_boost(self) -> None:
        match = classify_report_type(subject="Initiating coverage on Tata Motors")
        self.assertEqual(match.report_type, "initiation")
        self.assertEqual(match.matched_on, "subject")
        self.assertAlmostEqual(match.confidence, 0.97)

    def test_quarter_token_in_subject_means_results_update(self) -> None:
        match = classify_report_type(subject="Reliance Industries Results Update Q2FY26")
        self.assertEqual(match.report_type, "results_update")
        self.assertAlmostEqual(match.confidence, 0.93)

    def test_body_match_has_no_boost(self) -> None:
        match = classify_report_type(subject="Morning note", snippet="We raise target price on Tata Motors.")
        self.assertEqual(match.report_type, "target_change")
        self.assertEqual(match.matched_on, "body")
        self.assertAlmostEqual(match.confidence, 0.82)

    def test_earlier_rules_win(self) -> None:
        match = classify_report_type(subject="Initiation with a target price of Rs 950")
        self.assertEqual(match.report_type, "initiation")

    def test_unmatched_text_falls_back_to_general_update(self) -> None:
        match = classify_report_type(subject="Daily wrap", snippet="Markets closed flat.")
        self.assertEqual(match.report_type, FALLBACK_REPORT_TYPE)
        self.assertEqual(match.matched_on, "fallback")
        self.assertAlmostEqual(match.confidence, 0.45)

    def test_rule_table_is_ordered(self) -> None:
        labels = [rule["report_type"] for rule in get_report_type_rules()]
        self.assertEqual(
            labels,
            ["initiation", "results_update", "target_change", "rating_change", "general_update"],
        )


class PIIRedactionTests(unittest.TestCase):
    def test_emails_and_phone_numbers_are_replaced(self) -> None:
        redacted = redact_pii_text("Call me at +91 98200 12345 or mail jane.doe@axiscap.in")
        self.assertIn(REDACTED_PHONE, redacted)
        self.assertIn(REDACTED_EMAIL, redacted)
        self.assertNotIn("98200", redacted)
        self.assertNotIn("jane.doe", redacted)

    def test_known_sender_name_is_replaced(self) -> None:
        redacted = redact_pii_text(
            "Priya Sharma expects margin recovery.",
            sender_name="Priya Sharma",
            sender_email="priya@axiscap.in",
        )
        self.assertEqual(redacted, f"{REDACTED_SENDER} expects margin recovery.")

    def test_known_recipient_emails_are_replaced(self) -> None:
        redacted = redact_pii_text(
            "Model shared with ops@localhost and Anita.Rao@Kotak.com today.",
            recipient_emails=["OPS@localhost", " anita.rao@kotak.com "],
        )
        self.assertEqual(redacted, f"Model shared with {REDACTED_RECIPIENT} and {REDACTED_EMAIL} today.")
        self.assertNotIn("ops@localhost", redacted.lower())
        self.assertNotIn("anita.rao@kotak.com", redacted.lower())

    def test_known_recipient_names_match_any_case_and_spacing(self) -> None:
        redacted = redact_pii_text(
            "ANITA RAO asked for the model; anita\n  rao will circulate it.",
            recipient_names=["Anita   Rao", "  "],
        )
        self.assertEqual(
            redacted,
            f"{REDACTED_RECIPIENT} asked for the model; {REDACTED_RECIPIENT} will circulate it.",
        )
        self.assertNotIn("anita", redacted.lower())

    def test_recipient_names_that_do_not_look_like_people_are_kept(self) -> None:
        text = "Kotak Research Desk sent anita rao the note via Li."
        redacted = redact_pii_text(text, recipient_names=["Kotak Research Desk", "anita rao", "Li"])
        self.assertEqual(redacted, text)

    def test_header_lines_and_sign_off_are_stripped(self) -> None:
        self.assertEqual(redact_pii_text("From: desk@axiscap.in\nSubject: hi\nMargins improved"), "Margins improved")
        self.assertEqual(
            redact_pii_text("Margins improved sharply. Best regards, Rahul"),
            "Margins improved sharply.",
        )

    def test_empty_input_stays_empty(self) -> None:
        self.assertEqual(redact_pii_text(None), "")
        self.assertEqual(redact_pii_text(""), "")

    def test_parse_from_header_splits_name_and_address(self) -> None:
        self.assertEqual(
            parse_from_header('"Priya Sharma" <Priya@AxisCap.in>'),
            ("Priya Sharma", "priya@axiscap.in"),
        )
        self.assertEqual(parse_from_header("Axis Research via Desk <desk@axiscap.in>")[0], "Axis Research")
        self.assertEqual(parse_from_header(None), ("", ""))

    def test_person_name_heuristic(self) -> None:
        self.assertTrue(is_likely_person_name("Priya Sharma"))
        self.assertFalse(is_likely_person_name("priya sharma"))
        self.assertFalse(is_likely_person_name("Axis Capital Research"))
        self.assertFalse(is_likely_person_name("Priya"))

    def test_archive_redaction_scrubs_sender_and_contacts(self) -> None:
        archive = ArchiveRecord(
            id="arch-1",
            user_id="user-1",
            broker="Axis Capital",
            from_header='"Priya Sharma" <priya@axiscap.in>',
            subject="Reliance Industries: Q2 review",
            body_preview="Priya Sharma notes margins expanded. Reach her on +91 98200 12345 for details.",
            ingested_at=datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc),
        )
        redacted = redact_archive_for_extraction(archive)

        self.assertEqual(redacted.id, "arch-1")
        self.assertEqual(redacted.subject, "Reliance Industries: Q2 review")
        self.assertNotIn("Priya", redacted.body_preview or "")
        self.assertIn(REDACTED_SENDER, redacted.body_preview or "")
        self.assertIn(REDACTED_PHONE, redacted.body_preview or "")
        self.assertNotIn("priya@axiscap.in", redacted.from_header or "")
        self.assertTrue((archive.body_preview or "").startswith("Priya Sharma"))


if __name__ == "__main__":
    unittest.main()
