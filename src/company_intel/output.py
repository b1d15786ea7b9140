"""
Structured Output - rendering of AgentResults for the CLI and batch runs.

JSON is the primary output format: the report keeps the wire keys so it can be
fed straight into spreadsheets or other tools. Markdown is a secondary
human-readable wrapper and CSV covers batch exports.
"""
from __future__ import annotations

import csv
import io
import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from company_intel.models import AgentResult, CompanyReport


# Display labels for the markdown view, in report order
REPORT_LABELS: List[Tuple[str, str]] = [
    ("companyName", "Company name"),
    ("officialUrl", "Official URL"),
    ("address", "Address"),
    ("Industry", "Industry"),
    ("Email", "Email"),
    ("TEL", "TEL"),
    ("FAX", "FAX"),
    ("capital", "Capital"),
    ("Founding date", "Founding date"),
    ("businessSummary", "Business summary"),
    ("strengths", "Strengths"),
]


def output_to_dict(result: AgentResult, include_audit: bool = True) -> Dict[str, Any]:
    """Convert an AgentResult to a plain dict (the HTTP response shape).

    Args:
        result: AgentResult to convert
        include_audit: If False, drop the auditLog key

    Returns:
        Plain dictionary with camelCase keys
    """
    data = result.to_payload()
    if not include_audit:
        data.pop("auditLog", None)
    return data


def output_to_json(
    result: AgentResult,
    pretty: bool = True,
    include_audit: bool = True,
) -> str:
    """Serialize an AgentResult to JSON.

    Args:
        result: AgentResult to serialize
        pretty: If True, format with indentation (default).
                If False, compact single-line output.
        include_audit: If False, omit the audit log

    Returns:
        JSON string representation
    """
    data = output_to_dict(result, include_audit=include_audit)
    if pretty:
        return json.dumps(data, indent=2, ensure_ascii=False)
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def report_to_markdown(report: CompanyReport) -> str:
    """Render a report as a two-column markdown table."""
    wire = report.to_wire()
    rows = ["| Field | Value |", "|---|---|"]
    for key, label in REPORT_LABELS:
        value = str(wire.get(key, "")).replace("\n", " ").replace("|", "\\|")
        rows.append(f"| {label} | {value} |")
    return "\n".join(rows)


def output_to_markdown(result: AgentResult, title: Optional[str] = None) -> str:
    """Generate a markdown document from an AgentResult.

    Args:
        result: AgentResult to convert
        title: Optional heading (defaults to the company name)

    Returns:
        Markdown string representation of the result
    """
    if not result.ok or result.report is None:
        heading = title or "Company Report"
        return f"# {heading}\n\n**Error:** {result.message}\n"

    heading = title or result.report.company_name
    return (
        f"# {heading}\n\n"
        f"**Source:** {result.source}\n\n"
        f"{report_to_markdown(result.report)}\n"
    )


def output_to_csv(results: Sequence[Tuple[str, AgentResult]]) -> str:
    """Export a batch of results as CSV for Excel import.

    Columns: query, status, source, message, then every report wire key.

    Args:
        results: (query name, AgentResult) pairs in run order

    Returns:
        CSV string that can be parsed by csv.reader or imported into Excel
    """
    string_buffer = io.StringIO()
    writer = csv.writer(string_buffer)

    wire_keys = [key for key, _ in REPORT_LABELS]
    writer.writerow(["query", "status", "source", "message", *wire_keys])

    for query, result in results:
        wire = result.report.to_wire() if result.report is not None else {}
        writer.writerow([
            query,
            result.status,
            result.source or "",
            result.message or "",
            *[wire.get(key, "") for key in wire_keys],
        ])

    return string_buffer.getvalue()
