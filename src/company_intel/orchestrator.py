"""
Pipeline Orchestrator - User-facing API for the company research agent.

Sequences the whole run and is the single error boundary:

    Cache lookup -> Identity Resolver -> Redirect Resolver -> Fact Extractor -> Cache write

Example usage:
    from company_intel.orchestrator import Orchestrator

    orc = Orchestrator()
    result = orc.run("株式会社トヨタ自動車", address="愛知県豊田市トヨタ町1番地")
    print(result.status, result.source)
    print(result.report.to_wire())

No exception escapes run(): every failure becomes an error AgentResult
carrying a human-readable message and the accumulated audit log.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from pydantic import ValidationError

from company_intel.cache import FactCache, JsonFileCache
from company_intel.config import ResearchConfig, default_config
from company_intel.errors import (
    CacheIOError,
    EmptyReplyError,
    OracleDeclinedError,
    OracleUnavailableError,
    ReportParseError,
    UrlExtractionError,
)
from company_intel.extraction import FactExtractor
from company_intel.identity import IdentityResolver
from company_intel.models import (
    AgentResult,
    CacheEntry,
    CompanyQuery,
    CompanyReport,
    NotFound,
    ResolvedIdentity,
)
from company_intel.observability import AuditLog, timed_operation
from company_intel.oracle import Oracle, build_oracle
from company_intel.prompts import PromptTemplates
from company_intel.redirects import RedirectResolver
from company_intel.retry import RetryGovernor, is_transient_error


logger = logging.getLogger(__name__)


# =============================================================================
# User-facing messages
# =============================================================================


MSG_INVALID_REQUEST = "A company name is required."
MSG_NOT_FOUND = (
    "No trustworthy official site matching the given company name and address "
    "was found. Please check the input."
)
MSG_DISCOVERY_FAILED = "Could not identify the official site URL from the research result."
MSG_EXTRACTION_FAILED = (
    "An error occurred while generating the report. Check the server logs for details."
)
MSG_ORACLE_DECLINED = "The report could not be generated. Reported by the model: {reason}"
MSG_TRANSIENT = (
    "The research service is temporarily unavailable (network error or quota "
    "exhausted). Please try again later."
)
MSG_INTERNAL = (
    "An unexpected error occurred while running the agent. Check the server logs for details."
)


# =============================================================================
# Orchestrator Class
# =============================================================================


class Orchestrator:
    """
    Runs the two-phase research pipeline for one company at a time.

    Collaborators are injected so the pipeline can run against in-memory
    doubles. The oracle is created lazily: cache hits never need credentials.
    """

    def __init__(
        self,
        config: Optional[ResearchConfig] = None,
        oracle: Optional[Oracle] = None,
        cache: Optional[FactCache] = None,
        redirect_resolver: Optional[RedirectResolver] = None,
        templates: Optional[PromptTemplates] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or default_config
        self._oracle = oracle
        self.cache = cache if cache is not None else JsonFileCache.from_config(self.config)
        self.redirect_resolver = redirect_resolver or RedirectResolver.from_config(self.config)
        self.templates = templates or PromptTemplates.from_config(self.config)
        self._sleep = sleep

        problems = self.config.validate()
        if problems:
            raise ValueError(f"Invalid research configuration: {'; '.join(problems)}")

        logger.info("Orchestrator initialized")

    @property
    def oracle(self) -> Oracle:
        if self._oracle is None:
            self._oracle = build_oracle(self.config)
        return self._oracle

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def run(
        self,
        company_name: str,
        address: Optional[str] = None,
        use_cache: bool = True,
    ) -> AgentResult:
        """
        Research one company.

        Args:
            company_name: Company name (free text)
            address: Optional address, strongly recommended for disambiguation
            use_cache: If False, skip the cache lookup (the result is still stored)

        Returns:
            AgentResult - success with report and source ("cache" | "live"),
            or error with message and error_kind
        """
        audit = AuditLog()
        audit.log("=" * 50)
        audit.log(f'Agent started: target = "{company_name}"'
                  + (f' / address = "{address}"' if address else ""))
        audit.log("=" * 50)

        try:
            query = CompanyQuery(name=company_name or "", address=address)
        except ValidationError:
            audit.detail("Rejected: company name is blank")
            return AgentResult.error(MSG_INVALID_REQUEST, "invalid_request", audit.lines)

        self._open_cache(audit)
        try:
            if use_cache:
                cached = self._lookup_cache(query, audit)
                if cached is not None:
                    audit.section("Done")
                    audit.detail(f"Report served from cache ({audit.elapsed_seconds:.2f}s)")
                    return AgentResult.success(cached, "cache", audit.lines)
            else:
                audit.section("Phase 1: Cache lookup")
                audit.detail("Skipped (refresh requested)")

            return self._run_live(query, audit)

        except UrlExtractionError as e:
            audit.detail(f"[Program failure] {e}")
            return self._fail(audit, MSG_DISCOVERY_FAILED, "discovery_failed")

        except (EmptyReplyError, ReportParseError) as e:
            audit.detail(f"[Program failure] {e}")
            return self._fail(audit, MSG_EXTRACTION_FAILED, "extraction_failed")

        except OracleDeclinedError as e:
            audit.detail(f"[Oracle limit] The model deliberately reported an error: {e.reason}")
            return self._fail(audit, MSG_ORACLE_DECLINED.format(reason=e.reason), "oracle_declined")

        except OracleUnavailableError as e:
            logger.error(f"Oracle unavailable: {e}")
            audit.detail(f"[Configuration error] {e}")
            return self._fail(audit, str(e), "internal")

        except Exception as e:
            if is_transient_error(e):
                logger.error(f"Transient failure for {company_name!r}: {type(e).__name__}: {e}")
                audit.detail(f"[Infrastructure failure] {type(e).__name__}: {e}")
                return self._fail(audit, MSG_TRANSIENT, "transient")
            logger.exception(f"Unexpected error while researching {company_name!r}")
            audit.detail(f"[Fatal error] Unexpected {type(e).__name__}: {e}")
            return self._fail(audit, MSG_INTERNAL, "internal")

        finally:
            self.cache.close()

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def _open_cache(self, audit: AuditLog) -> None:
        try:
            self.cache.open()
        except CacheIOError as e:
            logger.warning(f"Cache unavailable, continuing without it: {e}")
            audit.detail(f"[Memory error] Failed to load the cache: {e}")

    def _lookup_cache(self, query: CompanyQuery, audit: AuditLog) -> Optional[CompanyReport]:
        audit.section("Phase 1: Cache lookup")
        report = self.cache.get_report(query.cache_key)
        if report is not None:
            audit.detail("[Memory] Found a complete past research record; answering from cache")
            return report
        audit.detail("[Memory] No past research record; switching to live research")
        return None

    def _run_live(self, query: CompanyQuery, audit: AuditLog) -> AgentResult:
        outcome = self._discover(query, audit)
        if isinstance(outcome, NotFound):
            audit.detail(
                "[Oracle limit] The model could not identify an official site "
                "matching the given information"
            )
            return self._fail(audit, MSG_NOT_FOUND, "not_found")

        report = self._extract(outcome, audit)
        self._persist(query, outcome, report, audit)

        audit.section("Done")
        audit.detail("[Success] Report generated from live research")
        audit.summarize()
        return AgentResult.success(report, "live", audit.lines)

    def _discover(self, query: CompanyQuery, audit: AuditLog):
        resolver = IdentityResolver(
            oracle=self.oracle,
            redirect_resolver=self.redirect_resolver,
            template=self.templates.discovery,
            config=self.config,
        )

        audit.section("Phase 2, Step 1: Official site discovery")
        audit.block("Discovery instruction", resolver.build_instruction(query))

        with timed_operation("discovery", entity=query.cache_key) as timer:
            reply = resolver.ask(query)
        audit.record_timing("Step 1 discovery", timer["duration_seconds"])
        audit.record_usage("Step 1 discovery", reply.usage)

        for segment in reply.reasoning_segments:
            audit.block("[Oracle reasoning - step 1]", segment)
        audit.detail(f'[Oracle final reply] Raw discovery reply: "{reply.text}"')

        audit.section("Phase 2, Step 1.5: Redirect resolution")
        with timed_operation("redirect", entity=query.cache_key) as timer:
            outcome = resolver.interpret(reply)
        audit.record_timing("Step 1.5 redirect", timer["duration_seconds"])

        if isinstance(outcome, ResolvedIdentity):
            audit.detail(f"[Program result] Extracted and cleaned URL: {outcome.candidate_url}")
            if outcome.redirected:
                audit.detail("[Program result] Redirect resolved")
            audit.detail(f"[Confirmed] Official site URL: {outcome.verified_url}")
        return outcome

    def _extract(self, identity: ResolvedIdentity, audit: AuditLog) -> CompanyReport:
        def note_retry(attempt: int, error: BaseException, delay: float) -> None:
            audit.detail(
                f"[Retry] Extraction attempt {attempt} failed ({type(error).__name__}: {error}); "
                f"retrying in {delay:.0f}s"
            )

        governor = RetryGovernor.from_config(self.config, sleep=self._sleep, on_retry=note_retry)
        extractor = FactExtractor(
            oracle=self.oracle,
            governor=governor,
            template=self.templates.extraction,
            config=self.config,
        )

        audit.section("Phase 2, Step 2: Detailed fact extraction")
        audit.block(
            "Extraction instruction",
            extractor.build_instruction(identity.verified_url, identity.reasoning_trace),
        )

        with timed_operation("extraction", entity=identity.verified_url) as timer:
            reply = extractor.ask(identity.verified_url, identity.reasoning_trace)
        audit.record_timing("Step 2 extraction", timer["duration_seconds"])
        audit.record_usage("Step 2 extraction", reply.usage)

        for segment in reply.reasoning_segments:
            audit.block("[Oracle reasoning - step 2]", segment)
        audit.detail(f"[Oracle final reply] Raw extraction reply: {reply.text}")

        report = extractor.interpret(reply, identity.verified_url)
        audit.detail("[Program result] Extracted the JSON object from the reply")

        missing = report.missing_fields(self.config.sentinel)
        if missing:
            audit.detail(f"Fields without substantiated values: {', '.join(missing)}")
        return report

    def _persist(
        self,
        query: CompanyQuery,
        identity: ResolvedIdentity,
        report: CompanyReport,
        audit: AuditLog,
    ) -> None:
        audit.section("Phase 3: Memory formation")
        entry = CacheEntry(
            company_name=query.cache_key,
            official_url=identity.verified_url,
            reasoning_trace=identity.reasoning_trace,
            report=report,
        )
        try:
            self.cache.put(entry)
            audit.detail("[Memory] Saved the new knowledge to the cache")
        except CacheIOError as e:
            logger.warning(f"Cache write failed (result still returned): {e}")
            audit.detail(f"[Memory error] Failed to save the cache: {e}")

    def _fail(self, audit: AuditLog, message: str, kind) -> AgentResult:
        audit.summarize()
        audit.log(f"[Error] {message} (total {audit.elapsed_seconds:.2f}s)")
        return AgentResult.error(message, kind, audit.lines)

    def close(self) -> None:
        self.redirect_resolver.close()

    def __repr__(self) -> str:
        return f"Orchestrator(cache={self.cache!r}, model={self.config.model})"


def quick_report(company_name: str, address: Optional[str] = None) -> AgentResult:
    """
    One-shot convenience function.

    Args:
        company_name: Company to research
        address: Optional address

    Returns:
        AgentResult
    """
    orc = Orchestrator()
    try:
        return orc.run(company_name, address=address)
    finally:
        orc.close()
