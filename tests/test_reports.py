"""Tests for PDF report rendering."""

from pathlib import Path

from elpgreen.benchmarks import validate_feasibility
from elpgreen.config import REPORTS_DIR
from elpgreen.reports import aml_report_pdf, report_hash, save_pdf, study_pdf

SCREENING_REPORT = {
    "id": "r1", "subject_name": "Acme <Rubber> & Co", "entity_type": "entity", "subject_country": "US",
    "risk_level": "critical", "status": "pending_review", "total_matches": 1, "total_screened_lists": 33,
    "matches": [{"match_rank": 1, "matched_name": "Acme Rubber", "source_name": "OFAC SDN", "tag": "SAN",
                 "match_rate": 96}],
    "screened_lists": [{"name": "OFAC SDN", "jurisdiction": "US", "matches_found": 1}],
    "history": [{"action": "created"}],
}


class TestReportHash:
    """Tests for the record digest."""

    def test_stable_and_key_order_independent(self):
        """Test the digest ignores key order and changes with content."""
        assert report_hash({"a": 1, "b": 2}) == report_hash({"b": 2, "a": 1})
        assert report_hash({"a": 1}) != report_hash({"a": 2})
        assert len(report_hash({})) == 16


class TestStudyPdf:
    """Tests for feasibility study PDFs."""

    def test_render_with_alerts_and_analysis(self, sample_study):
        """Test a full study renders to a PDF."""
        content, digest = study_pdf(sample_study, validate_feasibility(sample_study),
                                    "## Summary\nViable <plant> & strong margins.")

        assert content.startswith(b"%PDF")
        assert digest == report_hash(sample_study)

    def test_render_minimal(self):
        """Test a study with only a name still renders."""
        content, _ = study_pdf({"study_name": "Blank"})

        assert content.startswith(b"%PDF")


class TestAmlPdf:
    """Tests for screening report PDFs."""

    def test_render(self):
        """Test matches and escaped names render and history is excluded from the hash."""
        content, digest = aml_report_pdf(SCREENING_REPORT)
        _, digest_more_history = aml_report_pdf({**SCREENING_REPORT, "history": [{"action": "viewed"}] * 3})

        assert content.startswith(b"%PDF")
        assert digest == digest_more_history

    def test_render_without_matches(self):
        """Test a clean report renders."""
        content, _ = aml_report_pdf({**SCREENING_REPORT, "matches": [], "screened_lists": []})

        assert content.startswith(b"%PDF")


class TestSavePdf:
    """Tests for report file storage."""

    def test_saved_under_reports_dir(self):
        """Test the file is written with the record id in its name."""
        path = Path(save_pdf("study", "abc123", b"%PDF-1.4 test"))

        assert path.parent == REPORTS_DIR
        assert path.name.startswith("study_abc123_")
        assert path.read_bytes() == b"%PDF-1.4 test"
