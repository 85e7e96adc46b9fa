"""TTL-bounded FIFO cache of ranked search results.

Entries are keyed by normalized query text. Expiry and bounded eviction are
the only removal paths besides ``clear``; reads never promote an entry.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field

from notelens.exceptions import ErrorCode, StorageError
from notelens.models.schema import SearchResult
from notelens.utils import normalize_query

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1

CACHE_HIT = "hit"
CACHE_PARTIAL = "partial"
CACHE_MISS = "miss"


class CacheEntry(BaseModel):
    """One cached result set. Times are epoch seconds from the cache clock."""

    normalized_query: str
    results: List[SearchResult] = Field(default_factory=list)
    created_at: float
    expires_at: float
    # A semantic lookup ran successfully for this result set
    semantic: bool = False

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class ResultCache:
    """Thread-safe TTL + bounded FIFO cache.

    Usage:
        cache = ResultCache(max_entries=50, ttl_seconds=300)
        cache.insert("alpha", results)
        cache.lookup("alpha")      # exact hit
        cache.lookup("alpha kick") # substring fallback, re-filtered
    """

    def __init__(
        self,
        max_entries: int = 50,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._partial_hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, query: object) -> bool:
        if not isinstance(query, str):
            return False
        with self._lock:
            return normalize_query(query) in self._entries

    def lookup(
        self, query: str, require_semantic: bool = False
    ) -> Optional[List[SearchResult]]:
        """Return cached results for ``query`` or None on a miss.

        Expired entries are purged first. An exact key match wins; otherwise
        the newest entry whose key contains, or is contained in, the query is
        narrowed to results whose title, body or tags still contain the query.
        An empty narrowed set is a miss. With ``require_semantic`` only entries
        produced by a semantic lookup are considered.
        """
        return self.lookup_with_outcome(query, require_semantic)[0]

    def lookup_with_outcome(
        self, query: str, require_semantic: bool = False
    ) -> Tuple[Optional[List[SearchResult]], str]:
        """Like ``lookup`` but also reports ``"hit"``, ``"partial"`` or ``"miss"``."""
        key = normalize_query(query)
        with self._lock:
            self._purge_expired()
            if not key:
                self._misses += 1
                return None, CACHE_MISS

            entry = self._entries.get(key)
            if entry is not None and (entry.semantic or not require_semantic):
                self._hits += 1
                return list(entry.results), CACHE_HIT

            for cached_key in reversed(list(self._entries)):
                candidate = self._entries[cached_key]
                if require_semantic and not candidate.semantic:
                    continue
                if key not in cached_key and cached_key not in key:
                    continue
                narrowed = [r for r in candidate.results if r.matches_text(key)]
                if narrowed:
                    self._partial_hits += 1
                    logger.debug(f"Cache fallback {key!r} -> {cached_key!r} ({len(narrowed)} results)")
                    return narrowed, CACHE_PARTIAL

            self._misses += 1
            return None, CACHE_MISS

    def insert(
        self, query: str, results: Sequence[SearchResult], semantic: bool = False
    ) -> None:
        """Cache ``results`` under ``query``. Empty queries and results are ignored.

        ``semantic`` marks results that already include a semantic lookup.
        """
        key = normalize_query(query)
        if not key or not results:
            return
        with self._lock:
            self._purge_expired()
            now = self._clock()
            # Re-inserting replaces the entry and makes it the newest
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(
                normalized_query=key,
                results=list(results),
                created_at=now,
                expires_at=now + self.ttl_seconds,
                semantic=semantic,
            )
            self._evict_overflow()

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()
        logger.debug("Result cache cleared")

    def stats(self) -> Dict[str, Any]:
        """Size and counters."""
        with self._lock:
            return {
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
                "hits": self._hits,
                "partial_hits": self._partial_hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "expirations": self._expirations,
            }

    def cached_results(self) -> List[SearchResult]:
        """Every live cached result, one per note, newest entry first."""
        with self._lock:
            self._purge_expired()
            seen: Dict[str, SearchResult] = {}
            for entry in reversed(list(self._entries.values())):
                for result in entry.results:
                    seen.setdefault(result.note_id, result)
            return list(seen.values())

    # =========================================================================
    # Persistence
    # =========================================================================

    def save(self, path: Union[str, Path]) -> int:
        """Write live entries to a JSON file. Returns the number written.

        Raises:
            StorageError: If the file cannot be written.
        """
        path = Path(path)
        with self._lock:
            self._purge_expired()
            payload = {
                "version": CACHE_FORMAT_VERSION,
                "entries": [
                    entry.model_dump(mode="json") for entry in self._entries.values()
                ],
            }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(payload), encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            raise StorageError(
                f"Failed to save result cache: {e}",
                operation="save_cache",
                path=str(path),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.debug(f"Saved {len(payload['entries'])} cache entries to {path.name}")
        return len(payload["entries"])

    def load(self, path: Union[str, Path]) -> int:
        """Load entries from a JSON file written by ``save``.

        Expired entries are dropped. A missing file loads nothing. Returns
        the number of entries loaded.

        Raises:
            StorageError: If the file exists but cannot be parsed.
        """
        path = Path(path)
        if not path.exists():
            return 0
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            entries = [CacheEntry.model_validate(raw) for raw in payload.get("entries", [])]
        except (OSError, ValueError, AttributeError) as e:
            raise StorageError(
                f"Failed to load result cache: {e}",
                operation="load_cache",
                path=str(path),
                original_error=e,
            ) from e

        loaded = 0
        with self._lock:
            now = self._clock()
            for entry in sorted(entries, key=lambda e: e.created_at):
                if entry.is_expired(now) or not entry.results:
                    continue
                self._entries.pop(entry.normalized_query, None)
                self._entries[entry.normalized_query] = entry
                loaded += 1
            self._evict_overflow()
        logger.debug(f"Loaded {loaded} cache entries from {path.name}")
        return loaded

    # =========================================================================
    # Internals (caller holds the lock)
    # =========================================================================

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        self._expirations += len(expired)

    def _evict_overflow(self) -> None:
        while len(self._entries) > self.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k].created_at)
            del self._entries[oldest]
            self._evictions += 1
