"""
Shared test doubles for the research pipeline.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Union

import pytest

from company_intel.cache import FactCache
from company_intel.config import ResearchConfig
from company_intel.models import CompanyReport, OracleReply, ToolAccess


SENTINEL = "情報なし"


# =============================================================================
# Doubles
# =============================================================================


ScriptedReply = Union[str, OracleReply, BaseException]


class FakeOracle:
    """Oracle double that replays scripted replies and records instructions."""

    def __init__(self, replies: Optional[List[ScriptedReply]] = None) -> None:
        self.replies: List[ScriptedReply] = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    def generate(
        self,
        instruction: str,
        tools: ToolAccess = ToolAccess(),
        temperature: float = 0.0,
    ) -> OracleReply:
        self.calls.append({"instruction": instruction, "tools": tools, "temperature": temperature})
        if not self.replies:
            raise AssertionError("FakeOracle ran out of scripted replies")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, str):
            return OracleReply(text=reply)
        return reply

    @property
    def call_count(self) -> int:
        return len(self.calls)


class FakeRedirectResolver:
    """Redirect resolver double backed by a fixed mapping."""

    def __init__(self, mapping: Optional[Dict[str, str]] = None) -> None:
        self.mapping = dict(mapping or {})
        self.calls: List[str] = []
        self.closed = False

    def resolve(self, candidate_url: str) -> str:
        self.calls.append(candidate_url)
        return self.mapping.get(candidate_url, candidate_url)

    def close(self) -> None:
        self.closed = True


class BrokenCache(FactCache):
    """FactCache whose storage always fails."""

    def _read(self):
        from company_intel.errors import CacheIOError

        raise CacheIOError("disk unavailable")

    def _write(self):
        from company_intel.errors import CacheIOError

        raise CacheIOError("disk full")


# =============================================================================
# Fixtures
# =============================================================================


def report_payload(**overrides: Any) -> Dict[str, Any]:
    """A complete extraction payload using the wire keys."""
    payload = {
        "companyName": "Example Corp",
        "officialUrl": "https://example.com/",
        "address": "1-1 Chiyoda, Tokyo",
        "Industry": "Software",
        "Email": "info@example.com",
        "TEL": "03-0000-0000",
        "FAX": SENTINEL,
        "capital": "100,000,000 JPY",
        "Founding date": "2001-04",
        "businessSummary": "Develops business software.",
        "strengths": "Long-term enterprise customers.",
    }
    payload.update(overrides)
    return payload


def make_report(**overrides: Any) -> CompanyReport:
    return CompanyReport.from_payload(report_payload(**overrides), SENTINEL)


@pytest.fixture
def config(tmp_path) -> ResearchConfig:
    """Config with no credential, no retry delay and a temp cache path."""
    return ResearchConfig(
        api_key=None,
        thinking_budget=0,
        cache_path=str(tmp_path / "knowledge-base.json"),
        cache_max_age_days=None,
        retry_attempts=3,
        retry_delay_seconds=0.0,
        sentinel=SENTINEL,
        output_language="Japanese",
        discovery_prompt_path=None,
        extraction_prompt_path=None,
    )


@pytest.fixture
def sample_report() -> CompanyReport:
    return make_report()


@pytest.fixture
def extraction_reply_text() -> str:
    return json.dumps(report_payload(), ensure_ascii=False)


@pytest.fixture
def event_logger():
    """Pipeline event logger, restored after the test reconfigures it."""
    obs_logger = logging.getLogger("company_intel.observability")
    handlers, level, propagate = list(obs_logger.handlers), obs_logger.level, obs_logger.propagate
    yield obs_logger
    obs_logger.handlers = handlers
    obs_logger.setLevel(level)
    obs_logger.propagate = propagate
