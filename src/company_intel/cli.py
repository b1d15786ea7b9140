"""
Command-line entry point.

Usage:
    company-intel 株式会社サンプル --address "東京都千代田区1-1"
    company-intel Example Corp --json --audit
    company-intel --batch companies.txt --csv results.csv
    company-intel Example Corp --log-json 2> events.jsonl

Batch files hold one query per line: "name" or "name<TAB>address". Blank
lines and lines starting with # are skipped. Queries run in sequence.

Exit code is 0 when every run succeeds, 1 otherwise.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from company_intel.config import ResearchConfig
from company_intel.models import AgentResult
from company_intel.observability import setup_structured_logging
from company_intel.orchestrator import Orchestrator
from company_intel.output import output_to_csv, output_to_json, output_to_markdown


logger = logging.getLogger(__name__)


# =============================================================================
# Logging Setup
# =============================================================================


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for a CLI run."""
    level = logging.DEBUG if verbose else logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    # Reduce noise from some loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)
    # The audit trail is printed on demand with --audit
    logging.getLogger("company_intel.audit").setLevel(logging.WARNING)


# =============================================================================
# Input Parsing
# =============================================================================


def read_batch_file(path: str) -> List[Tuple[str, Optional[str]]]:
    """Read (name, address) queries from a batch file.

    Args:
        path: File with one query per line ("name" or "name<TAB>address")

    Returns:
        Queries in file order
    """
    queries = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        name, _, address = stripped.partition("\t")
        queries.append((name.strip(), address.strip() or None))
    return queries


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="company-intel",
        description="Find a company's official site and extract a structured report",
    )
    parser.add_argument(
        "name",
        nargs="*",
        help="Company name (multiple words are joined with spaces)",
    )
    parser.add_argument(
        "--address", "-a",
        type=str,
        default=None,
        help="Company address, strongly recommended for disambiguation",
    )
    parser.add_argument(
        "--batch", "-b",
        type=str,
        default=None,
        help="File with one query per line (name or name<TAB>address)",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Skip the cache lookup and research live (the result is still cached)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON instead of markdown",
    )
    parser.add_argument(
        "--csv",
        type=str,
        default=None,
        help="Also write all results to this CSV file",
    )
    parser.add_argument(
        "--audit",
        action="store_true",
        help="Print the audit log of each run",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Write pipeline events (step, status, duration) to stderr as JSON lines",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )
    return parser


# =============================================================================
# Main
# =============================================================================


def render(result: AgentResult, as_json: bool, with_audit: bool) -> str:
    if as_json:
        return output_to_json(result, include_audit=with_audit)
    text = output_to_markdown(result)
    if with_audit and result.audit_log:
        text += "\n## Audit log\n\n" + "\n".join(result.audit_log) + "\n"
    return text


def main(argv: Optional[Sequence[str]] = None, orchestrator: Optional[Orchestrator] = None) -> int:
    """Main entry point for the command line."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    if args.log_json:
        setup_structured_logging(json_format=True)

    queries: List[Tuple[str, Optional[str]]] = []
    if args.name:
        queries.append((" ".join(args.name), args.address))
    if args.batch:
        try:
            queries.extend(read_batch_file(args.batch))
        except OSError as e:
            print(f"ERROR: Failed to read batch file: {e}", file=sys.stderr)
            return 1

    if not queries:
        parser.print_usage(sys.stderr)
        print("ERROR: Provide a company name or --batch FILE", file=sys.stderr)
        return 1

    if orchestrator is None:
        try:
            orchestrator = Orchestrator(config=ResearchConfig.from_env())
        except (ValueError, OSError) as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

    results: List[Tuple[str, AgentResult]] = []
    try:
        for name, address in queries:
            logger.info(f"Researching {name!r}")
            result = orchestrator.run(name, address=address, use_cache=not args.no_cache)
            results.append((name, result))
            print(render(result, args.json, args.audit))
    finally:
        orchestrator.close()

    if args.csv:
        Path(args.csv).write_text(output_to_csv(results), encoding="utf-8")
        print(f"Wrote {len(results)} results to {args.csv}", file=sys.stderr)

    failures = [name for name, result in results if not result.ok]
    if failures:
        print(f"{len(failures)}/{len(results)} runs failed: {', '.join(failures)}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
