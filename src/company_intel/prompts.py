"""
Instruction templates for the two research phases.

Templates are plain ``str.format`` strings. They are configuration, not
logic: the parsers in identity.py / extraction.py never assume the oracle
followed the wording. Literal braces in an override file must be doubled.
"""
from __future__ import annotations

import json
import logging
import string
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, Optional

from company_intel.config import ResearchConfig


logger = logging.getLogger(__name__)


# =============================================================================
# Prompt Templates
# =============================================================================


DISCOVERY_PROMPT = """You are a high-precision corporate investigator.

CORE MISSION:
Find the official website URL of the company below. The site's company name AND
address must be an EXACT or VERY CLOSE match to the input. Returning a site that
belongs to a different company or sits at a different address misleads the user
and must be avoided at all costs.

RULES:
1. Use web search to find candidate sites. Search in {output_language}, combining the
   company name, the address and keywords such as "company profile" / "会社概要".
2. Fetch each promising candidate and confirm that the page itself shows the
   company name and an address matching the input.
3. "VERY CLOSE" covers minor formatting differences only (full/half-width
   characters, abbreviations such as Co., Ltd. / 株式会社, building names).
   A different company name or a different city is a FAILED verification.
4. Special protocol: if the ADDRESS matches but the NAME differs (for example a
   trade name or "doing business as" name), you may run ONE additional search
   using the new keywords found on the site. Accept the site only if independent
   third-party evidence (news articles, business directories, registries)
   confirms both names refer to the same entity.
5. If no candidate can be verified, answer with the single uppercase word NONE.
6. Your final answer MUST be ONLY the URL or the word NONE. No explanation.

EXAMPLES:
Input: 株式会社トヨタ自動車 愛知県豊田市トヨタ町1番地
Output: https://global.toyota/jp/
Input: 株式会社むらまつ 大阪府大阪市西成区花園北２丁目６番６号
Output: NONE

TASK:
Input: {query}
Output:"""


EXTRACTION_PROMPT = """You are an elite business analyst producing a factual intelligence report.

RULES:
1. Your primary investigation target is the company behind the TARGET URL. This
   page is your most important evidence.
2. You may search the web and fetch pages. Recommended strategy: search for the
   company's profile, access and contact pages ("会社概要", "アクセス",
   "お問い合わせ", "About Us"), then fetch the most credible pages for detail.
3. For "Email", inspect contact pages and look for "mailto:" links.
4. Cross-verify everything. Information found through search MUST belong to the
   company at the TARGET URL; compare addresses and names so that facts about a
   different entity are never attributed to this one.
5. For any field that cannot be substantiated after a thorough investigation use
   exactly "{sentinel}". Never guess or fabricate a value.
6. Write field values in {output_language}.
7. If the TARGET URL clearly does not belong to an operating company, output
   {{"error": "<short reason>"}} instead of a report.
8. Output ONLY a single JSON object that follows the OUTPUT JSON STRUCTURE. No
   introduction, no closing remarks, no markdown fences.
{reasoning_context}
TARGET URL:
{target_url}

OUTPUT JSON STRUCTURE:
{schema}"""


REASONING_CONTEXT_HEADER = (
    "\nDISCOVERY NOTES (how the TARGET URL was identified; context only):\n"
)


# Field wire key -> description shown to the oracle
REPORT_SCHEMA: Dict[str, str] = {
    "companyName": "Official registered company name (string)",
    "officialUrl": "Official website URL (string)",
    "address": "Head office address (string)",
    "Industry": "Industry (string)",
    "Email": "Representative email address (string)",
    "TEL": "Representative phone number (string)",
    "FAX": "Fax number (string)",
    "capital": "Paid-in capital (string)",
    "Founding date": "Founding year and month (string)",
    "businessSummary": "Summary of the main business activities (string)",
    "strengths": "Strengths and differentiators versus competitors (string)",
}


DISCOVERY_FIELDS: FrozenSet[str] = frozenset({"query", "output_language"})
EXTRACTION_FIELDS: FrozenSet[str] = frozenset(
    {"target_url", "reasoning_context", "schema", "sentinel", "output_language"}
)


def template_fields(template: str) -> FrozenSet[str]:
    """Return the named placeholders used by a format template."""
    return frozenset(
        name for _, name, _, _ in string.Formatter().parse(template)
        if name
    )


def load_template(path: Optional[str], default: str, allowed: FrozenSet[str]) -> str:
    """Load a template override from disk, falling back to the built-in one.

    Args:
        path: Optional path to a template file
        default: Built-in template
        allowed: Placeholders the caller will supply

    Returns:
        Template text

    Raises:
        ValueError: If the template references placeholders that will not be supplied
    """
    if not path:
        return default

    template = Path(path).read_text(encoding="utf-8")
    unknown = template_fields(template) - allowed
    if unknown:
        raise ValueError(
            f"Template {path} uses unknown placeholders: {sorted(unknown)}. "
            f"Allowed: {sorted(allowed)}"
        )
    logger.info(f"Loaded instruction template override from {path}")
    return template


@dataclass(frozen=True)
class PromptTemplates:
    """The pair of instruction templates a pipeline run uses."""

    discovery: str = DISCOVERY_PROMPT
    extraction: str = EXTRACTION_PROMPT

    @classmethod
    def from_config(cls, config: ResearchConfig) -> "PromptTemplates":
        return cls(
            discovery=load_template(
                config.discovery_prompt_path, DISCOVERY_PROMPT, DISCOVERY_FIELDS
            ),
            extraction=load_template(
                config.extraction_prompt_path, EXTRACTION_PROMPT, EXTRACTION_FIELDS
            ),
        )


def format_schema(schema: Dict[str, str] = REPORT_SCHEMA) -> str:
    """Render the report schema as the JSON skeleton shown to the oracle."""
    return json.dumps(schema, ensure_ascii=False, indent=2)
