"""Inline ``[[reference]]`` autocomplete.

Detects an unterminated ``[[`` before the cursor, debounces the in-progress
query on a cancellable ``threading.Timer`` and resolves it against the fuzzy
index's title-heavy suggestion matcher.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from notelens.config import SearchConfig, config
from notelens.services.fuzzy_index import FuzzyIndex
from notelens.utils import make_excerpt

logger = logging.getLogger(__name__)

OPEN_MARKER = "[["
CLOSE_MARKER = "]]"
EXCERPT_LENGTH = 100

TimerFactory = Callable[[float, Callable[[], None]], Any]


@dataclass(frozen=True)
class BracketMatch:
    """An open reference found before the cursor.

    ``start`` is the offset of the opening marker and ``end`` the cursor.
    ``complete`` is set when a closing marker follows on the same line, in
    which case the reference is not offered for completion.
    """

    start: int
    end: int
    query: str
    complete: bool = False

    @property
    def eligible(self) -> bool:
        return not self.complete


def detect_reference(text: str, cursor: Optional[int] = None) -> Optional[BracketMatch]:
    """Find the reference the cursor is inside, if any.

    Only the cursor's line is considered. The nearest ``[[`` before the
    cursor opens the reference unless a ``]]`` already closes it before the
    cursor. Returns None when the cursor is not inside a reference.
    """
    if not text:
        return None
    cursor = len(text) if cursor is None else max(0, min(cursor, len(text)))

    line_start = text.rfind("\n", 0, cursor) + 1
    open_at = text.rfind(OPEN_MARKER, line_start, cursor)
    if open_at < 0:
        return None
    query_start = open_at + len(OPEN_MARKER)
    if CLOSE_MARKER in text[query_start:cursor]:
        return None

    line_end = text.find("\n", cursor)
    if line_end < 0:
        line_end = len(text)
    rest = text[cursor:line_end]
    close_at = rest.find(CLOSE_MARKER)
    next_open = rest.find(OPEN_MARKER)
    complete = close_at >= 0 and (next_open < 0 or close_at < next_open)

    return BracketMatch(
        start=open_at,
        end=cursor,
        query=text[query_start:cursor],
        complete=complete,
    )


class Debouncer:
    """Runs only the last of a burst of calls once ``delay`` seconds pass quietly.

    Each ``schedule`` cancels the pending timer and starts a new one. A
    generation token guards against a timer that fires after being replaced.
    """

    def __init__(self, delay: float, timer_factory: TimerFactory = threading.Timer):
        self.delay = delay
        self._timer_factory = timer_factory
        self._timer: Optional[Any] = None
        self._token = 0
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def schedule(self, fn: Callable[..., None], *args: Any) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._token += 1
            token = self._token
            self._timer = self._timer_factory(self.delay, lambda: self._fire(token, fn, args))
            self._timer.daemon = True  # Don't block process exit
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._token += 1

    def _fire(self, token: int, fn: Callable[..., None], args: tuple) -> None:
        with self._lock:
            if token != self._token:
                return
            self._timer = None
        fn(*args)


@dataclass(frozen=True)
class NoteSuggestion:
    """A note offered as the target of an in-progress reference."""

    note_id: str
    title: str
    slug: str
    excerpt: str
    score: float


class BracketResolver:
    """Debounced reference autocomplete over the current fuzzy index."""

    def __init__(
        self,
        index_provider: Callable[[], FuzzyIndex],
        delay: Optional[float] = None,
        min_length: Optional[int] = None,
        max_suggestions: Optional[int] = None,
        timer_factory: TimerFactory = threading.Timer,
        search_config: Optional[SearchConfig] = None,
    ):
        """Initialize the resolver.

        Args:
            index_provider: Returns the fuzzy index for the current snapshot;
                called when a query is dispatched, not per keystroke.
            delay: Quiet period in seconds before dispatching.
            min_length: Shortest query that is dispatched.
            max_suggestions: Maximum suggestions returned.
            timer_factory: ``threading.Timer`` compatible factory.
        """
        cfg = search_config or config
        self._index_provider = index_provider
        self.min_length = cfg.bracket_min_query_length if min_length is None else min_length
        self.max_suggestions = (
            cfg.bracket_max_suggestions if max_suggestions is None else max_suggestions
        )
        self._debouncer = Debouncer(
            cfg.debounce_seconds if delay is None else delay, timer_factory
        )

    @staticmethod
    def detect(text: str, cursor: Optional[int] = None) -> Optional[BracketMatch]:
        return detect_reference(text, cursor)

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def suggest(self, query: str) -> List[NoteSuggestion]:
        """Resolve ``query`` immediately. Short queries get no suggestions."""
        query = (query or "").strip()
        if len(query) < self.min_length:
            return []
        index = self._index_provider()
        return [
            NoteSuggestion(
                note_id=candidate.note.id,
                title=candidate.note.title,
                slug=candidate.note.slug,
                excerpt=make_excerpt(candidate.note.body, EXCERPT_LENGTH),
                score=candidate.score,
            )
            for candidate in index.suggest(query, limit=self.max_suggestions)
        ]

    def update(
        self,
        text: str,
        cursor: Optional[int],
        callback: Callable[[str, List[NoteSuggestion]], None],
    ) -> Optional[BracketMatch]:
        """Handle an edit. Schedules a debounced dispatch when eligible.

        Any pending dispatch is cancelled first. ``callback(query,
        suggestions)`` runs on the timer thread once the quiet period ends.
        Returns the detected reference, or None when the cursor is not
        inside one.
        """
        match = detect_reference(text, cursor)
        if match is None or match.complete or len(match.query.strip()) < self.min_length:
            self._debouncer.cancel()
            return match
        self._debouncer.schedule(self._dispatch, match.query, callback)
        return match

    def cancel(self) -> None:
        self._debouncer.cancel()

    def _dispatch(
        self, query: str, callback: Callable[[str, List[NoteSuggestion]], None]
    ) -> None:
        try:
            suggestions = self.suggest(query)
        except Exception as e:
            logger.warning(f"Reference suggestions failed for {query!r}: {e}")
            suggestions = []
        callback(query, suggestions)


@dataclass
class SuggestionCursor:
    """Keyboard selection over a suggestion list: wrap-around and dismiss."""

    suggestions: List[NoteSuggestion] = field(default_factory=list)
    index: int = 0
    dismissed: bool = False

    @property
    def active(self) -> bool:
        return bool(self.suggestions) and not self.dismissed

    @property
    def current(self) -> Optional[NoteSuggestion]:
        if not self.active:
            return None
        return self.suggestions[self.index]

    def next(self) -> Optional[NoteSuggestion]:
        if self.active:
            self.index = (self.index + 1) % len(self.suggestions)
        return self.current

    def previous(self) -> Optional[NoteSuggestion]:
        if self.active:
            self.index = (self.index - 1) % len(self.suggestions)
        return self.current

    def reset(self, suggestions: List[NoteSuggestion]) -> None:
        self.suggestions = list(suggestions)
        self.index = 0
        self.dismissed = False

    def dismiss(self) -> None:
        self.dismissed = True
