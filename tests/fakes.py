"""Fake stores, providers and timers for testing.

These produce deterministic, controlled outputs without any real model or
database. FakeEmbeddingProvider uses 8-dimensional vectors derived from text
hashing, so identical inputs always produce identical vectors.

Design principles:
- Deterministic: same input -> same output, always
- Inspectable: fakes count their calls so tests can assert on them
- Failure on demand: failing and slow variants exercise the fallback paths
"""
import hashlib
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from notelens.exceptions import ErrorCode, ProviderError
from notelens.models.schema import LinkEdge, NoteSnapshot

# Fixed evaluation instant (a Saturday)
NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_note(note_id, title, body=None, tags=(), days_old=90, **kwargs):
    """Build a NoteSnapshot created and updated ``days_old`` days before NOW."""
    moment = NOW - timedelta(days=days_old)
    kwargs.setdefault("created_at", moment)
    kwargs.setdefault("updated_at", moment)
    return NoteSnapshot(id=note_id, title=title, body=body, tags=list(tags), **kwargs)


class FakeEmbeddingProvider:
    """Deterministic hash-based embedding provider.

    Produces L2-normalized vectors derived from a SHA-256 digest of the
    input text.
    """

    def __init__(self, dim: int = 8) -> None:
        self._dim = dim
        self.embed_count = 0
        self.texts: List[str] = []

    @property
    def dimension(self) -> int:
        return self._dim

    def embed(self, text: str) -> np.ndarray:
        self.embed_count += 1
        self.texts.append(text)
        chunks: List[bytes] = []
        needed = self._dim
        seed = text.encode("utf-8")
        while needed > 0:
            seed = hashlib.sha256(seed).digest()
            chunks.append(seed)
            needed -= len(seed)
        all_bytes = b"".join(chunks)[: self._dim]

        raw_bytes = np.frombuffer(all_bytes, dtype=np.uint8).astype(np.float64)
        # Map [0, 255] -> [-1, 1]
        raw = (raw_bytes / 127.5) - 1.0
        norm = np.linalg.norm(raw)
        if norm > 0:
            raw = raw / norm
        return raw.astype(np.float32)


class FailingEmbeddingProvider:
    """Embedding provider that always fails."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error or ProviderError(
            "embedding service offline", code=ErrorCode.EMBEDDING_FAILED
        )
        self.embed_count = 0

    def embed(self, text: str) -> np.ndarray:
        self.embed_count += 1
        raise self.error


class SlowEmbeddingProvider(FakeEmbeddingProvider):
    """Blocks in ``embed`` until ``release`` is set (or its wait times out)."""

    def __init__(self, dim: int = 8, wait: float = 5.0) -> None:
        super().__init__(dim)
        self.started = threading.Event()
        self.release = threading.Event()
        self._wait = wait

    def embed(self, text: str) -> np.ndarray:
        self.started.set()
        self.release.wait(self._wait)
        return super().embed(text)


class FakeVectorBackend:
    """Returns canned ``(note_id, similarity)`` matches for every query."""

    def __init__(
        self,
        matches: Optional[Sequence[Tuple[str, float]]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.matches = list(matches or [])
        self.error = error
        self.calls: List[Tuple[float, int]] = []

    def match(self, vector, threshold: float, limit: int) -> List[Tuple[str, float]]:
        self.calls.append((threshold, limit))
        if self.error is not None:
            raise self.error
        return [(nid, sim) for nid, sim in self.matches if sim >= threshold][:limit]


class InMemoryNoteStore:
    """Note store over a mutable list; counts snapshot reads."""

    def __init__(self, notes: Optional[Sequence[NoteSnapshot]] = None) -> None:
        self.notes: List[NoteSnapshot] = list(notes or [])
        self.read_count = 0
        self.error: Optional[Exception] = None

    def list_notes(self, user_scope: Optional[str] = None) -> List[NoteSnapshot]:
        self.read_count += 1
        if self.error is not None:
            raise self.error
        return list(self.notes)


class InMemoryLinkStore:
    """Link store over a mutable list."""

    def __init__(self, links: Optional[Sequence[LinkEdge]] = None) -> None:
        self.links: List[LinkEdge] = list(links or [])
        self.error: Optional[Exception] = None

    def list_links(self, user_scope: Optional[str] = None) -> List[LinkEdge]:
        if self.error is not None:
            raise self.error
        return list(self.links)


class FakeTimer:
    """Manually fired stand-in for ``threading.Timer``."""

    def __init__(self, interval: float, function: Callable[[], None]) -> None:
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.started and not self.cancelled and not self.fired:
            self.fired = True
            self.function()


class FakeTimerFactory:
    """Records every timer it creates."""

    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, interval: float, function: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]

    def fire_all(self) -> int:
        pending = self.pending
        for timer in pending:
            timer.fire()
        return len(pending)


class ManualClock:
    """Monotonic float clock advanced by hand (for the result cache)."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

