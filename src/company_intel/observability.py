"""
Structured Logging and Audit Trail for the research pipeline.

Provides:
- Pipeline flow events (step started / completed / failed, with durations)
- A per-run AuditLog of human-readable lines returned to the caller
- Token accounting lines for oracle calls

Uses Python's logging with structured output format.
"""
from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import IO, Any, Dict, Iterator, List, Optional

from company_intel.models import UsageMetrics


# =============================================================================
# Logger Setup
# =============================================================================

logger = logging.getLogger("company_intel.observability")

AUDIT_LOGGER_NAME = "company_intel.audit"

PIPELINE_PREFIX = "PIPELINE | "


class PipelineEventFormatter(logging.Formatter):
    """Render every record as one JSON object per line.

    Pipeline events already carry a JSON payload after the PIPELINE prefix,
    so that payload is emitted as-is. Any other record is wrapped.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if message.startswith(PIPELINE_PREFIX):
            return message[len(PIPELINE_PREFIX):]
        return json.dumps(
            {"level": record.levelname, "logger": record.name, "message": message},
            ensure_ascii=False,
        )


def setup_structured_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    stream: Optional[IO[str]] = None,
) -> logging.Handler:
    """Send pipeline events to a dedicated stream handler.

    The events stop propagating to the root logger, so a CLI run can keep
    its regular log output quiet while still emitting the event stream.

    Args:
        level: Logging level (default INFO)
        json_format: If True, emit JSON lines (one event per line)
        stream: Target stream (default stderr)

    Returns:
        The installed handler
    """
    handler = logging.StreamHandler(stream)
    if json_format:
        handler.setFormatter(PipelineEventFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    logger.handlers = [handler]
    logger.setLevel(level)
    logger.propagate = False
    return handler


# =============================================================================
# Structured Log Events
# =============================================================================

@dataclass
class PipelineEvent:
    """Structured log for pipeline flow events."""
    event: str  # "cache_check", "discovery", "redirect", "extraction", "persist"
    entity: Optional[str] = None
    status: str = "started"  # "started", "completed", "failed"
    details: Optional[Dict[str, Any]] = None
    duration_ms: Optional[float] = None
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()


def log_pipeline_event(
    event: str,
    status: str = "started",
    **kwargs
) -> None:
    """Log a pipeline flow event.

    Args:
        event: Event name (e.g., "discovery", "extraction")
        status: "started", "completed", or "failed"
        **kwargs: Additional fields
    """
    pipeline_event = PipelineEvent(
        event=event,
        status=status,
        **kwargs
    )

    log_data = asdict(pipeline_event)

    if status == "failed":
        logger.error(f"{PIPELINE_PREFIX}{json.dumps(log_data, ensure_ascii=False, default=str)}")
    else:
        logger.info(f"{PIPELINE_PREFIX}{json.dumps(log_data, ensure_ascii=False, default=str)}")


@contextmanager
def timed_operation(operation_name: str, **context) -> Iterator[Dict[str, Any]]:
    """Context manager for timing operations with structured logging.

    Usage:
        with timed_operation("extraction", entity="Example Corp") as timer:
            # do work
            timer["fields_missing"] = 2

    The yielded dict also receives "duration_seconds" once the block exits.

    Args:
        operation_name: Name of the operation
        **context: Additional context fields
    """
    start_time = time.perf_counter()
    result_data: Dict[str, Any] = {}

    log_pipeline_event(operation_name, status="started", details=context)

    try:
        yield result_data
        duration_ms = (time.perf_counter() - start_time) * 1000
        result_data["duration_seconds"] = round(duration_ms / 1000, 2)
        log_pipeline_event(
            operation_name,
            status="completed",
            duration_ms=round(duration_ms, 2),
            details={**context, **result_data}
        )
    except Exception as e:
        duration_ms = (time.perf_counter() - start_time) * 1000
        result_data["duration_seconds"] = round(duration_ms / 1000, 2)
        log_pipeline_event(
            operation_name,
            status="failed",
            duration_ms=round(duration_ms, 2),
            details={**context, "error": str(e)}
        )
        raise


# =============================================================================
# Audit Log
# =============================================================================

class AuditLog:
    """Append-only, human-readable trace of one pipeline run.

    Every line is mirrored to the ``company_intel.audit`` logger so the
    trail shows up in server logs as well as in the response payload.
    """

    def __init__(self, mirror: Optional[logging.Logger] = None) -> None:
        self._lines: List[str] = []
        self._mirror = mirror or logging.getLogger(AUDIT_LOGGER_NAME)
        self._start_time = time.perf_counter()
        self._timings: Dict[str, float] = {}
        self._usage: Dict[str, UsageMetrics] = {}

    def log(self, message: str) -> None:
        self._lines.append(message)
        self._mirror.info(message)

    def section(self, title: str) -> None:
        self.log("")
        self.log(f"[{title}]")

    def detail(self, message: str) -> None:
        self.log(f"  > {message}")

    def block(self, title: str, body: str) -> None:
        """Append a multi-line block (prompt text, reasoning trace)."""
        self.log(f"  > {title}\n---\n{body}\n---")

    def record_timing(self, step: str, seconds: float) -> None:
        self._timings[step] = seconds

    def record_usage(self, step: str, usage: Optional[UsageMetrics]) -> None:
        if usage is None:
            return
        previous = self._usage.get(step)
        self._usage[step] = previous + usage if previous else usage

    @property
    def elapsed_seconds(self) -> float:
        return time.perf_counter() - self._start_time

    def summarize(self) -> None:
        """Append step durations and token accounting to the trail."""
        if self._timings:
            self.section("Timings")
            for step, seconds in self._timings.items():
                self.detail(f"{step}: {seconds:.2f}s")
            self.detail(f"total: {self.elapsed_seconds:.2f}s")
        for step, usage in self._usage.items():
            self.section(f"Token usage - {step}")
            self.detail(f"input tokens: {usage.input_tokens}")
            self.detail(f"output tokens (incl. thinking): {usage.output_tokens}")
            self.detail(f"total tokens: {usage.total_tokens}")
            if usage.web_search_requests or usage.web_fetch_requests:
                self.detail(
                    f"tool requests: {usage.web_search_requests} search, "
                    f"{usage.web_fetch_requests} fetch"
                )

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __repr__(self) -> str:
        return f"AuditLog(lines={len(self)})"
