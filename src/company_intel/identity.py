"""
Identity Resolver - discover and verify a company's official site.

Discovery asks the oracle (with search and fetch tools) for the official URL
under a strict name+address matching policy. The reply is free text; this
module turns it into one of:

- NotFound: the oracle affirmatively disqualified every candidate ("NONE")
- ResolvedIdentity: a candidate URL, redirect-resolved into the verified URL
- UrlExtractionError: the oracle answered but no URL could be parsed

Discovery is deliberately NOT retried: "NONE" is a valid terminal answer.
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional, Union

from company_intel.config import ResearchConfig, default_config
from company_intel.errors import UrlExtractionError
from company_intel.models import (
    CompanyQuery,
    NotFound,
    OracleReply,
    ResolvedIdentity,
    ToolAccess,
)
from company_intel.oracle import Oracle
from company_intel.prompts import DISCOVERY_PROMPT
from company_intel.redirects import RedirectResolver


logger = logging.getLogger(__name__)


# Disqualification token the oracle is told to emit
NOT_FOUND_TOKEN = "NONE"

URL_PATTERN = re.compile(r'https?://[^\s"<>]+')
TRAILING_PUNCTUATION = re.compile(r'[.,)]+$')


# =============================================================================
# Reply Parsing
# =============================================================================


def is_disqualification(text: Optional[str]) -> bool:
    """True when the discovery reply means "no matching site".

    Empty / whitespace-only replies count as disqualification, as does the
    NONE token in any letter case.
    """
    if text is None:
        return True
    stripped = text.strip()
    return stripped == "" or stripped.upper() == NOT_FOUND_TOKEN


def extract_urls(text: str) -> List[str]:
    """All URL-shaped substrings, de-duplicated, in order of appearance."""
    seen = set()
    urls = []
    for match in URL_PATTERN.findall(text):
        if match not in seen:
            seen.add(match)
            urls.append(match)
    return urls


def strip_trailing_punctuation(url: str) -> str:
    """Remove sentence punctuation glued to the end of a URL.

    Example: "https://example.co.jp/." -> "https://example.co.jp/"
    """
    return TRAILING_PUNCTUATION.sub("", url)


def parse_discovery_reply(text: Optional[str]) -> Optional[str]:
    """
    Turn a discovery reply into a candidate URL.

    Args:
        text: Final text of the oracle's discovery reply

    Returns:
        The cleaned first URL, or None when the reply is a disqualification

    Raises:
        UrlExtractionError: If the reply is not a disqualification but holds no URL
    """
    if is_disqualification(text):
        return None

    urls = extract_urls(text)
    if not urls:
        raise UrlExtractionError(
            f"Could not extract a URL from the discovery reply: {text.strip()[:200]!r}"
        )

    # First URL wins; later ones are usually alternatives the oracle rejected
    if len(urls) > 1:
        logger.info(f"Discovery reply held {len(urls)} URLs; using the first")

    return strip_trailing_punctuation(urls[0])


# =============================================================================
# Resolver
# =============================================================================


class IdentityResolver:
    """Drives the discovery phase for one query."""

    def __init__(
        self,
        oracle: Oracle,
        redirect_resolver: RedirectResolver,
        template: str = DISCOVERY_PROMPT,
        config: ResearchConfig = default_config,
    ) -> None:
        self.oracle = oracle
        self.redirect_resolver = redirect_resolver
        self.template = template
        self.config = config

    def build_instruction(self, query: CompanyQuery) -> str:
        return self.template.format(
            query=query.describe(),
            output_language=self.config.output_language,
        )

    def ask(self, query: CompanyQuery) -> OracleReply:
        """Submit the verification instruction (search + fetch enabled)."""
        instruction = self.build_instruction(query)
        return self.oracle.generate(
            instruction,
            tools=ToolAccess.research(),
            temperature=0.0,
        )

    def interpret(self, reply: OracleReply) -> Union[ResolvedIdentity, NotFound]:
        """Parse a discovery reply and resolve redirects for the candidate."""
        candidate = parse_discovery_reply(reply.text)
        if candidate is None:
            logger.info("Oracle reported no matching official site")
            return NotFound(
                raw_reply=reply.text,
                reasoning_trace=list(reply.reasoning_segments),
                usage=reply.usage,
            )

        verified = self.redirect_resolver.resolve(candidate)
        return ResolvedIdentity(
            candidate_url=candidate,
            verified_url=verified,
            reasoning_trace=list(reply.reasoning_segments),
            raw_reply=reply.text,
            usage=reply.usage,
        )

    def resolve(self, query: CompanyQuery) -> Union[ResolvedIdentity, NotFound]:
        """
        Find and verify the official site for a query.

        Args:
            query: Company name and optional address

        Returns:
            ResolvedIdentity with the verified URL, or NotFound

        Raises:
            UrlExtractionError: If the oracle answered without a parsable URL
        """
        logger.info(f"Resolving identity for {query.describe()!r}")
        reply = self.ask(query)
        return self.interpret(reply)
