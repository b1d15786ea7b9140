"""
Fact Extractor - turn the verified official site into a CompanyReport.

The oracle is instructed to answer with a bare JSON object, but replies
routinely arrive wrapped in prose or markdown fences. The reply is scanned
for balanced {...} spans with a string-literal aware scanner (braces inside
JSON strings do not count), and the first span that decodes to a JSON
object is used.

Failure handling:
- empty reply                -> EmptyReplyError (terminal)
- no span / undecodable span -> ReportParseError (terminal, never retried)
- {"error": "..."}           -> OracleDeclinedError (terminal, message forwarded)
- transport errors           -> retried by the RetryGovernor, then re-raised
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from company_intel.config import ResearchConfig, default_config
from company_intel.errors import EmptyReplyError, OracleDeclinedError, ReportParseError
from company_intel.models import CompanyReport, OracleReply, ToolAccess
from company_intel.oracle import Oracle
from company_intel.prompts import EXTRACTION_PROMPT, REASONING_CONTEXT_HEADER, format_schema
from company_intel.retry import RetryGovernor


logger = logging.getLogger(__name__)


# Upper bound on discovery reasoning forwarded into the extraction instruction
MAX_REASONING_CONTEXT_CHARS = 8000


# =============================================================================
# JSON Span Scanning
# =============================================================================


def _balanced_span_end(text: str, start: int) -> Optional[int]:
    """Index just past the brace that closes text[start], or None if unclosed."""
    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1

    return None


def iter_json_spans(text: str) -> Iterator[Tuple[int, int]]:
    """Yield (start, end) of top-level balanced {...} spans, left to right."""
    pos = text.find("{")
    while pos != -1:
        end = _balanced_span_end(text, pos)
        if end is None:
            # Unclosed at this brace; a later brace may still open a complete object
            pos = text.find("{", pos + 1)
            continue
        yield pos, end
        pos = text.find("{", end)


def extract_json_span(text: str) -> Optional[str]:
    """Return the first balanced {...} span in text, or None."""
    for start, end in iter_json_spans(text):
        return text[start:end]
    return None


def decode_first_object(text: str) -> Dict[str, Any]:
    """
    Decode the first JSON object embedded in free text.

    Args:
        text: Oracle reply, possibly wrapped in prose or a fenced code block

    Returns:
        The decoded JSON object

    Raises:
        ReportParseError: If no span exists or no span decodes to an object
    """
    spans = list(iter_json_spans(text))
    if not spans:
        raise ReportParseError("Failed to extract a JSON object from the oracle reply")

    last_error: Optional[Exception] = None
    for start, end in spans:
        try:
            value = json.loads(text[start:end])
        except json.JSONDecodeError as e:
            last_error = e
            logger.debug(f"Skipping undecodable span at {start}: {e}")
            continue
        if isinstance(value, dict):
            return value

    raise ReportParseError(f"Failed to parse the extracted JSON span: {last_error}")


# =============================================================================
# Reply Parsing
# =============================================================================


def parse_extraction_reply(
    text: Optional[str],
    sentinel: str,
    verified_url: Optional[str] = None,
) -> CompanyReport:
    """
    Parse an extraction reply into a schema-conformant CompanyReport.

    Args:
        text: Final text of the oracle's extraction reply
        sentinel: Value for fields that could not be substantiated
        verified_url: If given, used for officialUrl when the oracle left it unknown

    Returns:
        CompanyReport with every field present

    Raises:
        EmptyReplyError: If the reply is empty
        ReportParseError: If no JSON object can be recovered
        OracleDeclinedError: If the object carries an "error" field
    """
    if text is None or not text.strip():
        raise EmptyReplyError("The extraction reply from the oracle was empty")

    payload = decode_first_object(text)

    if payload.get("error"):
        raise OracleDeclinedError(str(payload["error"]))

    if verified_url and _is_unknown(payload.get("officialUrl"), sentinel):
        payload["officialUrl"] = verified_url

    return CompanyReport.from_payload(payload, sentinel)


def _is_unknown(value: Any, sentinel: str) -> bool:
    return value is None or (isinstance(value, str) and value.strip() in ("", sentinel))


def format_reasoning_context(
    reasoning_trace: Optional[List[str]],
    limit: int = MAX_REASONING_CONTEXT_CHARS,
) -> str:
    """Render discovery reasoning as an instruction section ('' when absent)."""
    if not reasoning_trace:
        return ""
    joined = "\n\n".join(s.strip() for s in reasoning_trace if s and s.strip())
    if not joined:
        return ""
    if len(joined) > limit:
        joined = joined[:limit] + "\n[... truncated]"
    return f"{REASONING_CONTEXT_HEADER}{joined}\n"


# =============================================================================
# Extractor
# =============================================================================


class FactExtractor:
    """Drives the extraction phase against one verified URL."""

    def __init__(
        self,
        oracle: Oracle,
        governor: Optional[RetryGovernor] = None,
        template: str = EXTRACTION_PROMPT,
        config: ResearchConfig = default_config,
    ) -> None:
        self.oracle = oracle
        self.governor = governor or RetryGovernor.from_config(config)
        self.template = template
        self.config = config

    def build_instruction(
        self,
        verified_url: str,
        reasoning_trace: Optional[List[str]] = None,
    ) -> str:
        return self.template.format(
            target_url=verified_url,
            reasoning_context=format_reasoning_context(reasoning_trace),
            schema=format_schema(),
            sentinel=self.config.sentinel,
            output_language=self.config.output_language,
        )

    def ask(
        self,
        verified_url: str,
        reasoning_trace: Optional[List[str]] = None,
    ) -> OracleReply:
        """Submit the extraction instruction through the retry governor."""
        instruction = self.build_instruction(verified_url, reasoning_trace)
        return self.governor.call(
            self.oracle.generate,
            instruction,
            tools=ToolAccess.research(),
            temperature=0.0,
        )

    def interpret(self, reply: OracleReply, verified_url: Optional[str] = None) -> CompanyReport:
        report = parse_extraction_reply(reply.text, self.config.sentinel, verified_url)
        missing = report.missing_fields(self.config.sentinel)
        if missing:
            logger.info(f"Report for {verified_url} has unknown fields: {missing}")
        return report

    def extract(
        self,
        verified_url: str,
        reasoning_trace: Optional[List[str]] = None,
    ) -> CompanyReport:
        """
        Extract a CompanyReport from the verified official site.

        Args:
            verified_url: Redirect-resolved official URL
            reasoning_trace: Optional discovery reasoning, forwarded as context

        Returns:
            CompanyReport
        """
        logger.info(f"Extracting company facts from {verified_url}")
        reply = self.ask(verified_url, reasoning_trace)
        return self.interpret(reply, verified_url)
