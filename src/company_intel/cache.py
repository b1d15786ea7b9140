"""
Fact Cache - permanent memory of verified company reports.

Maps a normalized company name to the last verified CacheEntry. The cache
is a memory, not a TTL cache: entries never expire unless a maximum age is
configured explicitly. Later writes for the same name overwrite earlier ones.

The persistent variant stores a single JSON document, read entirely on
open() and rewritten entirely on every put(). There is no locking; with
concurrent writers the last write wins.

Older or hand-edited records are salvaged where possible: a report missing
fields is completed with the sentinel. Records that still cannot be read
are carried along verbatim so a rewrite never drops them from disk.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from company_intel.config import DEFAULT_SENTINEL, ResearchConfig
from company_intel.errors import CacheIOError
from company_intel.models import CacheEntry, CompanyReport


logger = logging.getLogger(__name__)


def normalize_key(company_name: str) -> str:
    """Cache key for a company name (surrounding whitespace is ignored)."""
    return company_name.strip()


def salvage_entry(raw: Any, sentinel: str = DEFAULT_SENTINEL) -> Optional[CacheEntry]:
    """Rebuild an entry whose report is incomplete, or None if it is beyond repair."""
    if not isinstance(raw, dict) or not isinstance(raw.get("report"), dict):
        return None
    patched = dict(raw)
    try:
        patched["report"] = CompanyReport.from_payload(raw["report"], sentinel)
        return CacheEntry.model_validate(patched)
    except ValidationError:
        return None


class FactCache:
    """
    In-memory fact cache with an open/close lifecycle.

    Subclasses override _read/_write to persist the mapping. The in-memory
    base class is what tests and one-off runs use.
    """

    def __init__(
        self,
        max_age_days: Optional[float] = None,
        sentinel: str = DEFAULT_SENTINEL,
    ) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        # Unreadable records, written back unchanged until overwritten
        self._unreadable: Dict[str, Any] = {}
        self.max_age_days = max_age_days
        self.sentinel = sentinel
        self._open = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def open(self) -> None:
        """(Re)load the mapping from storage.

        Raises:
            CacheIOError: If storage cannot be read. The cache is left empty
                and usable, so callers may treat this as a cold cache.
        """
        self._open = True
        try:
            self._entries = self._read()
        except CacheIOError:
            self._entries = {}
            self._unreadable = {}
            raise

    def close(self) -> None:
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def __enter__(self) -> "FactCache":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Storage hooks
    # -------------------------------------------------------------------------

    def _read(self) -> Dict[str, CacheEntry]:
        return dict(self._entries)

    def _write(self) -> None:
        return None

    # -------------------------------------------------------------------------
    # Read / Write
    # -------------------------------------------------------------------------

    def get(self, company_name: str) -> Optional[CacheEntry]:
        """Get the entry for a company name, honouring max_age_days.

        Args:
            company_name: Raw company name (normalized internally)

        Returns:
            The CacheEntry if present and fresh enough, None otherwise
        """
        entry = self._entries.get(normalize_key(company_name))
        if entry is None:
            return None
        if self.max_age_days is not None and entry.age_days() > self.max_age_days:
            logger.info(
                f"Cache entry for {entry.company_name!r} is {entry.age_days():.1f} days old "
                f"(max {self.max_age_days}); ignoring"
            )
            return None
        return entry

    def get_report(self, company_name: str) -> Optional[CompanyReport]:
        """Return the cached report, or None when absent or report-less."""
        entry = self.get(company_name)
        return entry.report if entry is not None else None

    def put(self, entry: CacheEntry) -> None:
        """Store (or overwrite) the entry for its normalized name and persist.

        Raises:
            CacheIOError: If persisting fails. The in-memory mapping is still updated.
        """
        key = normalize_key(entry.company_name)
        self._unreadable.pop(key, None)
        self._entries[key] = entry
        self._write()

    def delete(self, company_name: str) -> bool:
        """Remove an entry. Returns True if something was removed."""
        key = normalize_key(company_name)
        removed = self._entries.pop(key, None) is not None
        removed = self._unreadable.pop(key, None) is not None or removed
        if removed:
            self._write()
        return removed

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def __iter__(self) -> Iterator[CacheEntry]:
        return iter(list(self._entries.values()))

    def __contains__(self, company_name: object) -> bool:
        return isinstance(company_name, str) and normalize_key(company_name) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    @property
    def unreadable_keys(self) -> List[str]:
        """Keys of stored records that could not be loaded as entries."""
        return list(self._unreadable.keys())

    def to_json(self) -> str:
        """Serialize the whole mapping as one JSON document."""
        document: Dict[str, Any] = dict(self._unreadable)
        document.update({key: entry.to_document() for key, entry in self._entries.items()})
        return json.dumps(document, indent=2, ensure_ascii=False)

    @staticmethod
    def parse_document(
        json_str: str,
        sentinel: str = DEFAULT_SENTINEL,
    ) -> Tuple[Dict[str, CacheEntry], Dict[str, Any]]:
        """Parse a cache document.

        Args:
            json_str: The whole cache document
            sentinel: Value used to complete reports with missing fields

        Returns:
            (entries, unreadable) - loaded entries, plus the raw records that
            could not be loaded even after salvage

        Raises:
            ValueError: If the document is not a JSON object
        """
        if not json_str.strip():
            return {}, {}
        document = json.loads(json_str)
        if not isinstance(document, dict):
            raise ValueError("cache document must be a JSON object")

        entries: Dict[str, CacheEntry] = {}
        unreadable: Dict[str, Any] = {}
        for key, raw in document.items():
            try:
                entries[normalize_key(key)] = CacheEntry.model_validate(raw)
                continue
            except ValidationError as e:
                error_count = e.error_count()
            salvaged = salvage_entry(raw, sentinel)
            if salvaged is not None:
                logger.info(
                    f"Completed cache entry {key!r} ({error_count} validation errors repaired)"
                )
                entries[normalize_key(key)] = salvaged
            else:
                logger.warning(
                    f"Keeping unreadable cache entry {key!r} as-is: {error_count} errors"
                )
                unreadable[normalize_key(key)] = raw
        return entries, unreadable

    def __repr__(self) -> str:
        return f"{type(self).__name__}(entries={len(self)})"


class JsonFileCache(FactCache):
    """FactCache persisted as a single JSON document on disk."""

    DEFAULT_PATH = ".cache/company_intel/knowledge-base.json"

    def __init__(
        self,
        path: Optional[str] = None,
        max_age_days: Optional[float] = None,
        sentinel: str = DEFAULT_SENTINEL,
    ) -> None:
        super().__init__(max_age_days=max_age_days, sentinel=sentinel)
        self.path = Path(path or self.DEFAULT_PATH)

    @classmethod
    def from_config(cls, config: ResearchConfig) -> "JsonFileCache":
        return cls(
            path=config.cache_path,
            max_age_days=config.cache_max_age_days,
            sentinel=config.sentinel,
        )

    def _read(self) -> Dict[str, CacheEntry]:
        self._unreadable = {}
        if not self.path.exists():
            logger.info(f"No cache document at {self.path}; starting with an empty memory")
            return {}
        try:
            content = self.path.read_text(encoding="utf-8")
            entries, self._unreadable = self.parse_document(content, self.sentinel)
        except (OSError, ValueError) as e:
            raise CacheIOError(f"Failed to read cache document {self.path}: {e}") from e
        return entries

    def _write(self) -> None:
        payload = self.to_json()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=self.path.name, suffix=".tmp", dir=str(self.path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise CacheIOError(f"Failed to write cache document {self.path}: {e}") from e
        logger.debug(f"Wrote {len(self)} cache entries to {self.path}")

    def __repr__(self) -> str:
        return f"JsonFileCache(path={self.path}, entries={len(self)})"
