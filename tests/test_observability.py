"""
Tests for structured logging and the audit trail.
"""
import io
import json
import logging

import pytest

from company_intel.models import UsageMetrics
from company_intel.observability import (
    AUDIT_LOGGER_NAME,
    AuditLog,
    log_pipeline_event,
    setup_structured_logging,
    timed_operation,
)


class TestTimedOperation:
    """Tests for timed_operation."""

    def test_duration_recorded(self):
        with timed_operation("discovery", entity="Example Corp") as timer:
            timer["urls"] = 1
        assert timer["duration_seconds"] >= 0
        assert timer["urls"] == 1

    def test_failure_logged_and_reraised(self, caplog):
        caplog.set_level(logging.INFO, logger="company_intel.observability")
        with pytest.raises(RuntimeError):
            with timed_operation("extraction"):
                raise RuntimeError("boom")

        failed = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert failed
        payload = json.loads(failed[-1].getMessage().split("PIPELINE | ", 1)[1])
        assert payload["status"] == "failed"
        assert payload["details"]["error"] == "boom"

    def test_event_format(self, caplog):
        caplog.set_level(logging.INFO, logger="company_intel.observability")
        log_pipeline_event("cache_check", status="completed", entity="株式会社サンプル")
        message = caplog.records[-1].getMessage()
        assert message.startswith("PIPELINE | ")
        assert "株式会社サンプル" in message


class TestSetupStructuredLogging:
    """Tests for setup_structured_logging."""

    def test_json_lines(self, event_logger):
        stream = io.StringIO()
        setup_structured_logging(json_format=True, stream=stream)

        with timed_operation("discovery", entity="株式会社サンプル"):
            pass
        event_logger.warning("plain record")

        lines = [json.loads(line) for line in stream.getvalue().splitlines()]
        assert [(e["event"], e["status"]) for e in lines[:2]] == [
            ("discovery", "started"),
            ("discovery", "completed"),
        ]
        assert lines[0]["details"]["entity"] == "株式会社サンプル"
        assert lines[2] == {
            "level": "WARNING",
            "logger": "company_intel.observability",
            "message": "plain record",
        }

    def test_text_format_and_isolation(self, event_logger):
        stream = io.StringIO()
        handler = setup_structured_logging(level=logging.WARNING, stream=stream)

        log_pipeline_event("extraction", status="completed")
        log_pipeline_event("extraction", status="failed")

        assert event_logger.handlers == [handler]
        assert not event_logger.propagate
        output = stream.getvalue()
        assert "| ERROR | company_intel.observability | PIPELINE | " in output
        assert '"status": "completed"' not in output


class TestAuditLog:
    """Tests for AuditLog."""

    def test_lines_in_order(self):
        audit = AuditLog()
        audit.log("start")
        audit.section("Phase 1")
        audit.detail("hit")

        assert audit.lines == ["start", "", "[Phase 1]", "  > hit"]
        assert len(audit) == 4

    def test_lines_is_a_copy(self):
        audit = AuditLog()
        audit.log("x")
        audit.lines.append("y")
        assert audit.lines == ["x"]

    def test_block(self):
        audit = AuditLog()
        audit.block("Instruction", "line 1\nline 2")
        assert audit.lines == ["  > Instruction\n---\nline 1\nline 2\n---"]

    def test_mirrored_to_logger(self, caplog):
        caplog.set_level(logging.INFO, logger=AUDIT_LOGGER_NAME)
        AuditLog().log("mirrored line")
        assert any(r.name == AUDIT_LOGGER_NAME and r.getMessage() == "mirrored line" for r in caplog.records)

    def test_summarize(self):
        audit = AuditLog()
        audit.record_timing("Step 1 discovery", 1.234)
        audit.record_usage("Step 1 discovery", UsageMetrics(input_tokens=10, output_tokens=5))
        audit.record_usage("Step 1 discovery", UsageMetrics(input_tokens=1, output_tokens=1))
        audit.record_usage("Step 2 extraction", None)

        audit.summarize()
        text = "\n".join(audit.lines)

        assert "Step 1 discovery: 1.23s" in text
        assert "total tokens: 17" in text
        assert "Step 2 extraction" not in text

    def test_summarize_empty(self):
        audit = AuditLog()
        audit.summarize()
        assert audit.lines == []
