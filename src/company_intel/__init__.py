"""
company_intel - company identity resolution and fact extraction agent.

Turns a company name (and optional address) into a verified official URL
and a structured report, backed by a permanent fact cache.
"""

__version__ = "0.1.0"

from company_intel.config import ResearchConfig, default_config
from company_intel.models import AgentResult, CacheEntry, CompanyQuery, CompanyReport
from company_intel.orchestrator import Orchestrator, quick_report

__all__ = [
    "__version__",
    "AgentResult",
    "CacheEntry",
    "CompanyQuery",
    "CompanyReport",
    "Orchestrator",
    "ResearchConfig",
    "default_config",
    "quick_report",
]
