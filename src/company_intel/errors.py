"""Shared error classes for the research pipeline."""

from __future__ import annotations


class ResearchError(RuntimeError):
    """Base exception raised by the company research pipeline."""

    def __init__(self, message: str, code: str = "RESEARCH_ERROR") -> None:
        super().__init__(message)
        self.code = code


class UrlExtractionError(ResearchError):
    """Raised when the discovery reply claims a match but carries no parsable URL."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="URL_EXTRACTION_FAILED")


class EmptyReplyError(ResearchError):
    """Raised when the oracle produced no text for the extraction instruction."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="EMPTY_REPLY")


class ReportParseError(ResearchError):
    """Raised when no JSON object can be recovered from the extraction reply."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="REPORT_PARSE_FAILED")


class OracleDeclinedError(ResearchError):
    """Raised when the oracle answers with an explicit {"error": ...} object."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason, code="ORACLE_DECLINED")
        self.reason = reason


class OracleUnavailableError(ResearchError):
    """Raised when the oracle cannot be constructed (e.g. missing API key)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="ORACLE_UNAVAILABLE")


class CacheIOError(ResearchError):
    """Raised when the fact cache cannot be read or written."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CACHE_IO_FAILED")


class ConfigurationError(ResearchError):
    """Raised when the pipeline cannot be assembled from its configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONFIG_INVALID")
