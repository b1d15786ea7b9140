"""
Configuration for the company research agent.

Every setting can be overridden through environment variables (a local .env
file is honoured). Instruction templates can be swapped by pointing
COMPANY_INTEL_DISCOVERY_PROMPT / COMPANY_INTEL_EXTRACTION_PROMPT at a file.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


DEFAULT_REDIRECT_DOMAINS = (
    "vertexaisearch.cloud.google.com",
    "google.com",
    "bing.com",
    "t.co",
    "bit.ly",
    "lnkd.in",
)

# Value the oracle must use for fields it could not substantiate
DEFAULT_SENTINEL = "情報なし"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return float(raw)


def _env_domains(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return DEFAULT_REDIRECT_DOMAINS
    return tuple(d.strip().lower() for d in raw.split(",") if d.strip())


@dataclass
class ResearchConfig:
    """Configuration for a research pipeline run."""

    # Oracle (Anthropic Messages API)
    api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY")
    )
    model: str = field(
        default_factory=lambda: os.getenv("COMPANY_INTEL_MODEL", "claude-sonnet-4-20250514")
    )
    max_tokens: int = field(
        default_factory=lambda: _env_int("COMPANY_INTEL_MAX_TOKENS", 8192)
    )
    # 0 disables extended thinking (and with it the reasoning trace)
    thinking_budget: int = field(
        default_factory=lambda: _env_int("COMPANY_INTEL_THINKING_BUDGET", 4096)
    )
    max_tool_uses: int = field(
        default_factory=lambda: _env_int("COMPANY_INTEL_MAX_TOOL_USES", 8)
    )

    # Fact cache
    cache_path: str = field(
        default_factory=lambda: os.getenv(
            "COMPANY_INTEL_CACHE_PATH", ".cache/company_intel/knowledge-base.json"
        )
    )
    # None = entries never expire
    cache_max_age_days: Optional[float] = field(
        default_factory=lambda: _env_optional_float("COMPANY_INTEL_CACHE_MAX_AGE_DAYS")
    )

    # Retry governor (extraction call only)
    retry_attempts: int = field(
        default_factory=lambda: _env_int("COMPANY_INTEL_RETRY_ATTEMPTS", 3)
    )
    retry_delay_seconds: float = field(
        default_factory=lambda: _env_float("COMPANY_INTEL_RETRY_DELAY", 10.0)
    )

    # Redirect resolution
    redirect_domains: Tuple[str, ...] = field(
        default_factory=lambda: _env_domains("COMPANY_INTEL_REDIRECT_DOMAINS")
    )
    max_redirects: int = field(
        default_factory=lambda: _env_int("COMPANY_INTEL_MAX_REDIRECTS", 5)
    )
    http_timeout_seconds: float = field(
        default_factory=lambda: _env_float("COMPANY_INTEL_HTTP_TIMEOUT", 15.0)
    )

    # Report contract
    sentinel: str = field(
        default_factory=lambda: os.getenv("COMPANY_INTEL_SENTINEL", DEFAULT_SENTINEL)
    )
    output_language: str = field(
        default_factory=lambda: os.getenv("COMPANY_INTEL_OUTPUT_LANGUAGE", "Japanese")
    )

    # Instruction template overrides (file paths)
    discovery_prompt_path: Optional[str] = field(
        default_factory=lambda: os.getenv("COMPANY_INTEL_DISCOVERY_PROMPT")
    )
    extraction_prompt_path: Optional[str] = field(
        default_factory=lambda: os.getenv("COMPANY_INTEL_EXTRACTION_PROMPT")
    )

    @classmethod
    def from_env(cls) -> "ResearchConfig":
        """Create config from environment variables."""
        return cls()

    def validate(self) -> List[str]:
        """Return a list of configuration problems (empty when usable)."""
        problems = []
        if self.retry_attempts < 1:
            problems.append("retry_attempts must be >= 1")
        if self.retry_delay_seconds < 0:
            problems.append("retry_delay_seconds must be >= 0")
        if self.max_redirects < 0:
            problems.append("max_redirects must be >= 0")
        if self.thinking_budget and self.thinking_budget >= self.max_tokens:
            problems.append("thinking_budget must be smaller than max_tokens")
        if not self.sentinel.strip():
            problems.append("sentinel must not be blank")
        return problems


# Global default config
default_config = ResearchConfig()
