"""
Tests for the command-line entry point.
"""
from __future__ import annotations

import csv
import io
import json

from company_intel.cache import FactCache
from company_intel.cli import build_parser, main, read_batch_file
from company_intel.orchestrator import Orchestrator

from conftest import FakeOracle, FakeRedirectResolver, report_payload


def _orchestrator(config, replies) -> Orchestrator:
    return Orchestrator(
        config=config,
        oracle=FakeOracle(replies),
        cache=FactCache(),
        redirect_resolver=FakeRedirectResolver(),
        sleep=lambda _seconds: None,
    )


EXTRACTION = json.dumps(report_payload(), ensure_ascii=False)


class TestParser:
    """Tests for argument parsing."""

    def test_name_words_collected(self):
        args = build_parser().parse_args(["Example", "Corp", "--address", "Tokyo"])
        assert args.name == ["Example", "Corp"]
        assert args.address == "Tokyo"
        assert not args.no_cache

    def test_flags(self):
        args = build_parser().parse_args(["X", "--no-cache", "--json", "--audit", "-v"])
        assert args.no_cache and args.json and args.audit and args.verbose


class TestReadBatchFile:
    """Tests for read_batch_file."""

    def test_names_addresses_comments(self, tmp_path):
        path = tmp_path / "batch.txt"
        path.write_text(
            "# header\nExample Corp\t1-1 Chiyoda, Tokyo\n\n  Other KK  \n",
            encoding="utf-8",
        )
        assert read_batch_file(str(path)) == [
            ("Example Corp", "1-1 Chiyoda, Tokyo"),
            ("Other KK", None),
        ]


class TestMain:
    """Tests for main()."""

    def test_success_exit_zero(self, config, capsys):
        orc = _orchestrator(config, ["https://example.com", EXTRACTION])

        code = main(["Example", "Corp", "--json"], orchestrator=orc)

        assert code == 0
        out = json.loads(capsys.readouterr().out)
        assert out["status"] == "success"
        assert out["report"]["companyName"] == "Example Corp"
        assert "auditLog" not in out

    def test_name_joined_with_spaces(self, config):
        oracle = FakeOracle(["https://example.com", EXTRACTION])
        orc = Orchestrator(
            config=config,
            oracle=oracle,
            cache=FactCache(),
            redirect_resolver=FakeRedirectResolver(),
        )

        main(["株式会社", "サンプル"], orchestrator=orc)

        assert "株式会社 サンプル" in oracle.calls[0]["instruction"]

    def test_failure_exit_one(self, config, capsys):
        orc = _orchestrator(config, ["NONE"])

        code = main(["Ghost", "KK"], orchestrator=orc)

        assert code == 1
        captured = capsys.readouterr()
        assert "**Error:**" in captured.out
        assert "1/1 runs failed" in captured.err

    def test_audit_printed(self, config, capsys):
        orc = _orchestrator(config, ["https://example.com", EXTRACTION])
        main(["Example Corp", "--audit"], orchestrator=orc)
        assert "Audit log" in capsys.readouterr().out

    def test_no_input_exit_one(self, config, capsys):
        assert main([], orchestrator=_orchestrator(config, [])) == 1

    def test_batch_and_csv(self, config, tmp_path, capsys):
        batch = tmp_path / "batch.txt"
        batch.write_text("Example Corp\nGhost KK\n", encoding="utf-8")
        csv_path = tmp_path / "out.csv"
        orc = _orchestrator(config, ["https://example.com", EXTRACTION, "NONE"])

        code = main(["--batch", str(batch), "--csv", str(csv_path)], orchestrator=orc)

        assert code == 1
        rows = list(csv.DictReader(io.StringIO(csv_path.read_text(encoding="utf-8"))))
        assert [r["query"] for r in rows] == ["Example Corp", "Ghost KK"]
        assert rows[0]["status"] == "success"
        assert rows[0]["TEL"] == "03-0000-0000"
        assert rows[1]["status"] == "error"

    def test_no_cache_flag_forces_live(self, config, capsys):
        orc = _orchestrator(
            config, ["https://example.com", EXTRACTION, "https://example.com", EXTRACTION]
        )
        main(["Example Corp"], orchestrator=orc)
        capsys.readouterr()

        main(["Example Corp", "--no-cache", "--json"], orchestrator=orc)

        assert json.loads(capsys.readouterr().out)["source"] == "live"

    def test_log_json_emits_pipeline_events(self, config, capsys, event_logger):
        orc = _orchestrator(config, ["https://example.com", EXTRACTION])

        code = main(["Example Corp", "--log-json"], orchestrator=orc)

        assert code == 0
        events = [
            json.loads(line)
            for line in capsys.readouterr().err.splitlines()
            if line.startswith("{")
        ]
        completed = [e["event"] for e in events if e.get("status") == "completed"]
        assert "discovery" in completed
        assert "extraction" in completed

    def test_missing_batch_file(self, config, tmp_path):
        code = main(["--batch", str(tmp_path / "missing.txt")], orchestrator=_orchestrator(config, []))
        assert code == 1

