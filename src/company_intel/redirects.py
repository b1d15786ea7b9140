"""
Redirect resolution for candidate URLs.

Search-grounded answers frequently cite link-wrapping URLs (e.g.
vertexaisearch.cloud.google.com/grounding-api-redirect/...). Only hosts on
the allowlist are followed; every other URL is returned untouched so that
direct answers never cost a network round trip.
"""
from __future__ import annotations

import functools
import logging
from typing import Iterable, Optional
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from company_intel.config import DEFAULT_REDIRECT_DOMAINS, ResearchConfig


logger = logging.getLogger(__name__)


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; company-intel/0.1; +https://example.invalid/bot)"
)


def get_requests_session(
    max_redirects: int = 5,
    timeout: float = 15.0,
) -> requests.Session:
    """
    Creates a requests session for redirect following.

    Connection hiccups and 429/5xx answers from the wrapping service are
    retried twice with a short backoff (0.5s, 1s). Redirect hops themselves
    are counted by requests, not by the retry strategy.

    Args:
        max_redirects: Redirect hops allowed before giving up
        timeout: Per-request timeout in seconds

    Returns:
        Configured requests.Session
    """
    session = requests.Session()
    session.max_redirects = max_redirects
    session.headers.update({"User-Agent": DEFAULT_USER_AGENT})

    retry_strategy = Retry(
        total=2,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["HEAD", "GET"],
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    # Add default timeout to all requests made by this session
    session.request = functools.partial(session.request, timeout=timeout)

    return session


def extract_host(url: str) -> str:
    """Return the lowercase hostname of a URL ('' when unparsable)."""
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def host_matches(host: str, domains: Iterable[str]) -> bool:
    """True when host equals one of the domains or is a subdomain of one."""
    host = host.lower().rstrip(".")
    for domain in domains:
        domain = domain.lower().strip(".")
        if host == domain or host.endswith("." + domain):
            return True
    return False


class RedirectResolver:
    """Follows HTTP redirects for known link-wrapping hosts, fail-open."""

    def __init__(
        self,
        domains: Iterable[str] = DEFAULT_REDIRECT_DOMAINS,
        max_redirects: int = 5,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.domains = tuple(domains)
        self.max_redirects = max_redirects
        self._session = session or get_requests_session(max_redirects, timeout)

    @classmethod
    def from_config(cls, config: ResearchConfig) -> "RedirectResolver":
        return cls(
            domains=config.redirect_domains,
            max_redirects=config.max_redirects,
            timeout=config.http_timeout_seconds,
        )

    def needs_resolution(self, url: str) -> bool:
        return host_matches(extract_host(url), self.domains)

    def resolve(self, candidate_url: str) -> str:
        """Return the terminal URL for a candidate.

        Args:
            candidate_url: URL parsed from the discovery reply

        Returns:
            The redirect destination, or candidate_url itself when the host is
            not a wrapping service or when resolution fails
        """
        if not self.needs_resolution(candidate_url):
            logger.debug(f"No redirect resolution needed for {candidate_url}")
            return candidate_url

        try:
            # Only the final URL is needed; the body is never read
            response = self._session.get(candidate_url, allow_redirects=True, stream=True)
            response.close()
        except requests.RequestException as e:
            logger.warning(f"Redirect resolution failed for {candidate_url}: {e}")
            return candidate_url

        final_url = response.url or candidate_url
        if final_url != candidate_url:
            logger.info(
                f"Resolved redirect {candidate_url} -> {final_url} "
                f"({len(response.history)} hops)"
            )
        return final_url

    def close(self) -> None:
        self._session.close()
