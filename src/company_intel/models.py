"""
Pydantic models for company identity resolution and report extraction.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Query / Oracle Models
# =============================================================================


class CompanyQuery(BaseModel):
    """The company the operator wants researched. Immutable once submitted."""

    model_config = ConfigDict(frozen=True)

    name: str
    address: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("company name must not be blank")
        return value

    @field_validator("address")
    @classmethod
    def _blank_address_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    @property
    def cache_key(self) -> str:
        """Normalized name used as the fact cache key."""
        return self.name.strip()

    def describe(self) -> str:
        """Render the query the way it is embedded in instructions."""
        if self.address:
            return f"{self.name.strip()} {self.address}"
        return self.name.strip()


class ToolAccess(BaseModel):
    """Which oracle-side tools an instruction may use."""

    model_config = ConfigDict(frozen=True)

    web_search: bool = False
    fetch_url: bool = False

    @classmethod
    def research(cls) -> "ToolAccess":
        return cls(web_search=True, fetch_url=True)


class UsageMetrics(BaseModel):
    """Token accounting for one oracle call (observability only)."""

    input_tokens: int = 0
    output_tokens: int = 0
    web_search_requests: int = 0
    web_fetch_requests: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "UsageMetrics") -> "UsageMetrics":
        return UsageMetrics(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            web_search_requests=self.web_search_requests + other.web_search_requests,
            web_fetch_requests=self.web_fetch_requests + other.web_fetch_requests,
        )


class OracleReply(BaseModel):
    """What the core consumes from an oracle call."""

    text: str = ""
    reasoning_segments: List[str] = Field(default_factory=list)
    usage: Optional[UsageMetrics] = None
    stop_reason: Optional[str] = None


# =============================================================================
# Discovery Models
# =============================================================================


class ResolvedIdentity(BaseModel):
    """Outcome of a successful discovery: the single source URL for extraction."""

    candidate_url: str
    verified_url: str
    reasoning_trace: List[str] = Field(default_factory=list)
    raw_reply: str = ""
    usage: Optional[UsageMetrics] = None

    @property
    def redirected(self) -> bool:
        return self.candidate_url != self.verified_url


class NotFound(BaseModel):
    """The oracle affirmatively reported that no matching official site exists."""

    raw_reply: str = ""
    reasoning_trace: List[str] = Field(default_factory=list)
    usage: Optional[UsageMetrics] = None


# =============================================================================
# Report Models
# =============================================================================


def _field(wire: str, *alternatives: str) -> Any:
    """A report field accepting its wire key plus alternative spellings."""
    return Field(
        validation_alias=AliasChoices(wire, *alternatives),
        serialization_alias=wire,
    )


class CompanyReport(BaseModel):
    """
    Structured intelligence report for one company.

    Every field is always present. Values the oracle could not substantiate
    carry the sentinel (e.g. "情報なし") instead of being omitted or null.
    Serialising with ``by_alias=True`` yields the wire keys the oracle is
    instructed to emit; unknown keys returned by the oracle are preserved.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    company_name: str = _field("companyName", "company_name")
    official_url: str = _field("officialUrl", "official_url")
    address: str = _field("address")
    industry: str = _field("Industry", "industry")
    email: str = _field("Email", "email")
    phone: str = _field("TEL", "phone", "tel")
    fax: str = _field("FAX", "fax")
    capital: str = _field("capital", "Capital")
    founding_date: str = _field("Founding date", "foundingDate", "founding_date")
    business_summary: str = _field("businessSummary", "business_summary")
    strengths: str = _field("strengths", "Strengths")

    @field_validator("*", mode="before")
    @classmethod
    def _stringify_scalars(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return str(value).lower()
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, list):
            return ", ".join(str(v) for v in value)
        if isinstance(value, dict):
            return json.dumps(value, ensure_ascii=False)
        return value

    @classmethod
    def wire_keys(cls) -> Dict[str, List[str]]:
        """Map field name -> accepted input keys, wire key first."""
        keys = {}
        for name, info in cls.model_fields.items():
            choices = [c for c in info.validation_alias.choices]  # type: ignore[union-attr]
            keys[name] = [str(c) for c in choices]
        return keys

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], sentinel: str) -> "CompanyReport":
        """Validate an oracle payload, filling unknown fields with the sentinel.

        Args:
            payload: Parsed JSON object from the oracle
            sentinel: Value used for fields that are missing, null or blank

        Returns:
            CompanyReport with every field populated
        """
        data = dict(payload)
        for name, choices in cls.wire_keys().items():
            present = [k for k in choices if k in data]
            usable = [
                k for k in present
                if data[k] is not None and not (isinstance(data[k], str) and not data[k].strip())
            ]
            if usable:
                continue
            for key in present:
                del data[key]
            data[choices[0]] = sentinel
        return cls.model_validate(data)

    def to_wire(self) -> Dict[str, Any]:
        """Dump using the wire keys (the JSON shape the oracle emits)."""
        return self.model_dump(by_alias=True)

    def missing_fields(self, sentinel: str) -> List[str]:
        """Names of the fields that carry the sentinel."""
        return [
            name for name in type(self).model_fields
            if getattr(self, name) == sentinel
        ]


# =============================================================================
# Cache / Result Models
# =============================================================================


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheEntry(BaseModel):
    """Last verified research outcome for one normalized company name."""

    model_config = ConfigDict(populate_by_name=True)

    company_name: str = Field(alias="companyName")
    official_url: str = Field(alias="officialUrl")
    reasoning_trace: List[str] = Field(default_factory=list, alias="step1Thoughts")
    report: Optional[CompanyReport] = None
    last_updated: datetime = Field(default_factory=_utcnow, alias="lastUpdated")

    def to_document(self) -> Dict[str, Any]:
        """Serialise for the JSON cache document."""
        data = self.model_dump(by_alias=True, mode="json", exclude={"report"})
        data["report"] = self.report.to_wire() if self.report is not None else None
        return data

    def age_days(self, now: Optional[datetime] = None) -> float:
        now = now or _utcnow()
        updated = self.last_updated
        if updated.tzinfo is None:
            updated = updated.replace(tzinfo=timezone.utc)
        return (now - updated).total_seconds() / 86400


ErrorKind = Literal[
    "not_found",
    "discovery_failed",
    "extraction_failed",
    "oracle_declined",
    "transient",
    "invalid_request",
    "internal",
]


class AgentResult(BaseModel):
    """Outcome of one pipeline run, as handed to the invocation surface."""

    status: Literal["success", "error"]
    report: Optional[CompanyReport] = None
    source: Optional[Literal["cache", "live"]] = None
    message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    audit_log: List[str] = Field(default_factory=list)

    @classmethod
    def success(
        cls,
        report: CompanyReport,
        source: Literal["cache", "live"],
        audit_log: List[str],
    ) -> "AgentResult":
        return cls(status="success", report=report, source=source, audit_log=audit_log)

    @classmethod
    def error(
        cls,
        message: str,
        error_kind: ErrorKind,
        audit_log: List[str],
    ) -> "AgentResult":
        return cls(status="error", message=message, error_kind=error_kind, audit_log=audit_log)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict with the camelCase keys used by the HTTP surface."""
        if self.ok:
            return {
                "status": "success",
                "report": self.report.to_wire() if self.report else None,
                "source": self.source,
                "auditLog": list(self.audit_log),
            }
        return {
            "status": "error",
            "message": self.message,
            "errorKind": self.error_kind,
            "auditLog": list(self.audit_log),
        }
