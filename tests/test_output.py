"""
Tests for structured output module.
"""
import csv
import io
import json

import pytest

from company_intel.models import AgentResult
from company_intel.output import (
    REPORT_LABELS,
    output_to_csv,
    output_to_dict,
    output_to_json,
    output_to_markdown,
    report_to_markdown,
)

from conftest import make_report


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def success_result() -> AgentResult:
    return AgentResult.success(make_report(), "live", ["Agent started", "  > done"])


@pytest.fixture
def error_result() -> AgentResult:
    return AgentResult.error("No official site found.", "not_found", ["Agent started"])


# =============================================================================
# JSON Output Tests
# =============================================================================


class TestOutputToJson:
    """Tests for output_to_json."""

    def test_pretty(self, success_result):
        text = output_to_json(success_result)
        assert "\n  " in text
        data = json.loads(text)
        assert data["report"]["Founding date"] == "2001-04"
        assert data["auditLog"] == ["Agent started", "  > done"]

    def test_compact(self, success_result):
        text = output_to_json(success_result, pretty=False)
        assert "\n" not in text

    def test_without_audit(self, success_result):
        data = json.loads(output_to_json(success_result, include_audit=False))
        assert "auditLog" not in data

    def test_non_ascii_kept(self):
        result = AgentResult.success(make_report(companyName="株式会社サンプル"), "cache", [])
        assert "株式会社サンプル" in output_to_json(result)

    def test_dict_matches_payload(self, error_result):
        assert output_to_dict(error_result) == error_result.to_payload()


# =============================================================================
# Markdown Output Tests
# =============================================================================


class TestOutputToMarkdown:
    """Tests for output_to_markdown."""

    def test_success_table(self, success_result):
        text = output_to_markdown(success_result)
        assert text.startswith("# Example Corp")
        assert "**Source:** live" in text
        assert "| TEL | 03-0000-0000 |" in text
        assert text.count("\n| ") == len(REPORT_LABELS) + 1

    def test_error(self, error_result):
        text = output_to_markdown(error_result)
        assert "**Error:** No official site found." in text

    def test_pipes_and_newlines_escaped(self):
        report = make_report(businessSummary="A | B\nC")
        table = report_to_markdown(report)
        assert "| Business summary | A \\| B C |" in table


# =============================================================================
# CSV Output Tests
# =============================================================================


class TestOutputToCsv:
    """Tests for output_to_csv."""

    def test_rows(self, success_result, error_result):
        text = output_to_csv([("Example Corp", success_result), ("Ghost KK", error_result)])
        rows = list(csv.reader(io.StringIO(text)))

        header = rows[0]
        assert header[:4] == ["query", "status", "source", "message"]
        assert "Founding date" in header
        assert rows[1][:3] == ["Example Corp", "success", "live"]
        assert rows[2][:4] == ["Ghost KK", "error", "", "No official site found."]
        assert rows[2][4:] == [""] * len(REPORT_LABELS)
