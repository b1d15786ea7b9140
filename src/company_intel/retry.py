"""
Retry Governor - bounded, fixed-delay retry around a single oracle call.

Policy: up to N attempts (default 3); after a transient failure wait a fixed
interval (default 10s) and try again; once attempts are exhausted re-raise
the last error. No exponential backoff, no jitter, no budget shared between
call sites. Non-transient errors propagate immediately.
"""
from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable, Optional, TypeVar

import anthropic
import requests

from company_intel.config import ResearchConfig


logger = logging.getLogger(__name__)

T = TypeVar("T")


# Failure signatures that indicate an infrastructure hiccup rather than a bad request
TRANSIENT_MESSAGE_PATTERNS = re.compile(
    r"network is unreachable|connection (reset|refused|aborted)|timed? ?out|"
    r"resource[_ ]exhausted|rate[_ ]limit|overloaded|temporarily unavailable|"
    r"service unavailable|econnreset|etimedout|enotfound",
    re.IGNORECASE,
)

TRANSIENT_STATUS_CODES = (429, 500, 502, 503, 504, 529)

# Only meaningful in the message of an HTTP or SDK error
TRANSIENT_STATUS_PATTERN = re.compile(
    r"\b(" + "|".join(str(code) for code in TRANSIENT_STATUS_CODES) + r")\b"
)


def _mentions_transient_status(error: BaseException) -> bool:
    message = str(error)
    return bool(
        TRANSIENT_MESSAGE_PATTERNS.search(message)
        or TRANSIENT_STATUS_PATTERN.search(message)
    )


def is_transient_error(error: BaseException) -> bool:
    """
    Classify an exception as retryable transport/server failure.

    Args:
        error: Exception raised by an oracle or HTTP call

    Returns:
        True for network errors, timeouts, rate limits and 5xx responses
    """
    if isinstance(error, (anthropic.APIConnectionError, anthropic.RateLimitError)):
        return True
    if isinstance(error, anthropic.APIStatusError):
        return error.status_code >= 500
    if isinstance(error, anthropic.APIError):
        # Other SDK errors (bad request, auth, not found) are not worth retrying
        return _mentions_transient_status(error)
    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(error, requests.HTTPError):
        if error.response is not None:
            return error.response.status_code in TRANSIENT_STATUS_CODES
        return _mentions_transient_status(error)
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True
    return bool(TRANSIENT_MESSAGE_PATTERNS.search(str(error)))


RetryCallback = Callable[[int, BaseException, float], None]


class RetryGovernor:
    """Linear retry policy applied independently per call site."""

    def __init__(
        self,
        max_attempts: int = 3,
        delay_seconds: float = 10.0,
        retryable: Callable[[BaseException], bool] = is_transient_error,
        sleep: Callable[[float], None] = time.sleep,
        on_retry: Optional[RetryCallback] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self.retryable = retryable
        self._sleep = sleep
        self.on_retry = on_retry

    @classmethod
    def from_config(cls, config: ResearchConfig, **kwargs: Any) -> "RetryGovernor":
        return cls(
            max_attempts=config.retry_attempts,
            delay_seconds=config.retry_delay_seconds,
            **kwargs,
        )

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Invoke fn, retrying transient failures.

        Args:
            fn: The wrapped call
            *args, **kwargs: Passed through to fn

        Returns:
            fn's result from the first successful attempt

        Raises:
            The last exception once attempts are exhausted, or any
            non-retryable exception immediately
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                if not self.retryable(e):
                    raise
                if attempt >= self.max_attempts:
                    logger.error(
                        f"Giving up after {attempt} attempts: {type(e).__name__}: {e}"
                    )
                    raise
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} failed with "
                    f"{type(e).__name__}: {e}; retrying in {self.delay_seconds:.0f}s"
                )
                if self.on_retry is not None:
                    self.on_retry(attempt, e, self.delay_seconds)
                self._sleep(self.delay_seconds)

        # Unreachable: the loop either returns or raises
        raise RuntimeError("retry loop exited without a result")
