"""Query interpreter: turns raw search text into a structured SearchQuery.

Extracts tag filters, a relative time window, intent and category hints,
and decides whether a vector lookup is worth paying for. Malformed pieces
of syntax are left in the text and never raise.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Pattern, Tuple

from notelens.models.schema import (
    Category,
    DateRange,
    QueryIntent,
    SearchFilters,
    SearchMode,
    SearchQuery,
    utc_now,
)

logger = logging.getLogger(__name__)

# '#tag' or '-#tag' at the start of the text or after whitespace
TAG_TOKEN = re.compile(r"(?:(?<=\s)|^)(-?)#([A-Za-z][A-Za-z0-9_-]*)")

_WHITESPACE = re.compile(r"\s+")

# Checked in order; first match wins
INTENT_PATTERNS: List[Tuple[Pattern[str], QueryIntent]] = [
    (re.compile(r"^(?:create|new|add)\s+", re.IGNORECASE), QueryIntent.CREATE),
    (
        re.compile(r"^(?:find|search|look\s+for)\s+similar\s+to\b\s*", re.IGNORECASE),
        QueryIntent.FIND_SIMILAR,
    ),
    (
        re.compile(r"^(?:go\s+to|open|navigate\s+to)\s+", re.IGNORECASE),
        QueryIntent.NAVIGATE,
    ),
    (re.compile(r"^(?:find|search|show|list)\s+", re.IGNORECASE), QueryIntent.SEARCH),
]

# Intents whose prefix is noise for matching purposes
_STRIPPED_INTENTS = (QueryIntent.SEARCH, QueryIntent.FIND_SIMILAR)

SEMANTIC_INDICATORS = re.compile(
    r"\b(?:similar|related|like|about|regarding|concept|idea|topic|theme|meaning)\b",
    re.IGNORECASE,
)
SEMANTIC_MIN_LENGTH = 20

CATEGORY_KEYWORDS: List[Tuple[Category, Pattern[str]]] = [
    (
        Category.WORK,
        re.compile(r"\b(?:work|business|office|meeting)s?\b", re.IGNORECASE),
    ),
    (
        Category.PERSONAL,
        re.compile(r"\b(?:personal|private|diary|journal)s?\b", re.IGNORECASE),
    ),
    (
        Category.RESEARCH,
        re.compile(r"\b(?:research|study|analysis|investigation)s?\b", re.IGNORECASE),
    ),
]

ENTITY_PATTERNS: List[Pattern[str]] = [
    re.compile(r"(?:about|regarding|for)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)"),
    re.compile(r"(?:project|task)\s+([A-Za-z0-9]+(?:\s+[A-Za-z0-9]+)*)", re.IGNORECASE),
]

SYNONYMS = {
    "meeting": ["discussion", "call", "conference"],
    "project": ["task", "work", "assignment"],
    "note": ["memo", "document", "entry"],
    "idea": ["concept", "thought", "brainstorm"],
    "plan": ["strategy", "roadmap", "blueprint"],
}


def _days_back(days: int) -> Callable[[datetime, re.Match], Tuple[datetime, datetime]]:
    def resolve(now: datetime, match: re.Match) -> Tuple[datetime, datetime]:
        return now - timedelta(days=days), now

    return resolve


def _start_of_day(now: datetime, match: re.Match) -> Tuple[datetime, datetime]:
    return now.replace(hour=0, minute=0, second=0, microsecond=0), now


def _start_of_week(now: datetime, match: re.Match) -> Tuple[datetime, datetime]:
    start, _ = _start_of_day(now, match)
    return start - timedelta(days=now.weekday()), now


def _start_of_month(now: datetime, match: re.Match) -> Tuple[datetime, datetime]:
    start, _ = _start_of_day(now, match)
    return start.replace(day=1), now


def _n_days_ago(now: datetime, match: re.Match) -> Tuple[datetime, datetime]:
    return now - timedelta(days=int(match.group(1))), now


TEMPORAL_PATTERNS: List[
    Tuple[Pattern[str], Callable[[datetime, re.Match], Tuple[datetime, datetime]]]
] = [
    (re.compile(r"\blast\s+week\b", re.IGNORECASE), _days_back(7)),
    (re.compile(r"\bthis\s+week\b", re.IGNORECASE), _start_of_week),
    (re.compile(r"\blast\s+month\b", re.IGNORECASE), _days_back(30)),
    (re.compile(r"\bthis\s+month\b", re.IGNORECASE), _start_of_month),
    (re.compile(r"\byesterday\b", re.IGNORECASE), _days_back(1)),
    (re.compile(r"\btoday\b", re.IGNORECASE), _start_of_day),
    (re.compile(r"\brecent(?:ly)?\b", re.IGNORECASE), _days_back(7)),
    (re.compile(r"\b(\d+)\s+days?\s+ago\b", re.IGNORECASE), _n_days_ago),
]


@dataclass(frozen=True)
class TemporalRange:
    """A resolved relative-time phrase."""

    start: datetime
    end: datetime
    phrase: str

    def as_date_range(self) -> DateRange:
        return DateRange(start=self.start, end=self.end)


@dataclass
class InterpretedQuery:
    """Everything the interpreter learned about a raw query string."""

    original: str
    query: SearchQuery
    intent: QueryIntent = QueryIntent.SEARCH
    entities: List[str] = field(default_factory=list)
    temporal: Optional[TemporalRange] = None
    semantic: bool = False

    @property
    def residual(self) -> str:
        return self.query.text


class QueryInterpreter:
    """Parses raw query text into a SearchQuery plus auxiliary signals."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        """Initialize the interpreter.

        Args:
            clock: Source of the evaluation instant for relative dates.
        """
        self._clock = clock

    def interpret(
        self,
        raw: str,
        mode: SearchMode = SearchMode.COMBINED,
        now: Optional[datetime] = None,
        note_id: Optional[str] = None,
    ) -> InterpretedQuery:
        """Interpret a raw query string.

        Args:
            raw: Text as typed by the user.
            mode: Requested search mode. ``combined`` becomes ``tags`` when
                the query is only tag tokens and starts with '#'.
            now: Evaluation instant; defaults to the interpreter's clock.
            note_id: Current note, carried through to the SearchQuery.

        Returns:
            The interpreted query. Never raises on odd input.
        """
        raw = raw or ""
        now = now or self._clock()
        text = raw.strip()

        intent, text = self.detect_intent(text)
        include_tags, exclude_tags, text = self.extract_tags(text)
        temporal, text = self.extract_temporal(text, now)
        residual = _WHITESPACE.sub(" ", text).strip()

        category = self.infer_category(residual)
        semantic = self.should_use_semantic(residual, intent)

        query_mode = mode
        query_text = residual
        filter_tags = tuple(include_tags)
        if (
            mode == SearchMode.COMBINED
            and raw.strip().startswith("#")
            and not residual
            and include_tags
        ):
            query_mode = SearchMode.TAGS
            # A single tag becomes the substring tag match instead of a filter
            if len(include_tags) == 1:
                query_text = include_tags[0]
                filter_tags = ()
            else:
                query_text = ""

        filters = SearchFilters(
            tags=filter_tags,
            exclude_tags=tuple(exclude_tags),
            date_range=temporal.as_date_range() if temporal else None,
            category=category,
        )
        query = SearchQuery(
            text=query_text, filters=filters, mode=query_mode, note_id=note_id
        )
        interpreted = InterpretedQuery(
            original=raw,
            query=query,
            intent=intent,
            entities=self.extract_entities(raw),
            temporal=temporal,
            semantic=semantic,
        )
        logger.debug(
            "Interpreted %r -> text=%r mode=%s intent=%s semantic=%s",
            raw,
            query.text,
            query.mode.value,
            intent.value,
            semantic,
        )
        return interpreted

    @staticmethod
    def detect_intent(text: str) -> Tuple[QueryIntent, str]:
        """Classify the query by prefix and strip search-style prefixes."""
        for pattern, intent in INTENT_PATTERNS:
            match = pattern.match(text)
            if match:
                if intent in _STRIPPED_INTENTS:
                    return intent, text[match.end():]
                return intent, text
        return QueryIntent.SEARCH, text

    @staticmethod
    def extract_tags(text: str) -> Tuple[List[str], List[str], str]:
        """Pull ``#tag`` and ``-#tag`` tokens out of the text.

        Returns:
            (include tags, exclude tags, text with the tokens removed)
        """
        include: List[str] = []
        exclude: List[str] = []
        for match in TAG_TOKEN.finditer(text):
            target = exclude if match.group(1) else include
            if match.group(2) not in target:
                target.append(match.group(2))
        return include, exclude, TAG_TOKEN.sub("", text)

    @staticmethod
    def extract_temporal(
        text: str, now: datetime
    ) -> Tuple[Optional[TemporalRange], str]:
        """Resolve the first relative-time phrase into an absolute range.

        Only the first matching pattern in table order is used. A phrase that
        cannot be resolved (e.g. a day count too large for a datetime) is
        left in the text as ordinary words.
        """
        for pattern, resolve in TEMPORAL_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            try:
                start, end = resolve(now, match)
            except (OverflowError, ValueError) as e:
                logger.debug(f"Ignoring unresolvable temporal phrase {match.group(0)!r}: {e}")
                return None, text
            stripped = text[: match.start()] + text[match.end():]
            return TemporalRange(start=start, end=end, phrase=match.group(0)), stripped
        return None, text

    @staticmethod
    def infer_category(text: str) -> Optional[Category]:
        """First category whose keyword appears in the text."""
        for category, pattern in CATEGORY_KEYWORDS:
            if pattern.search(text):
                return category
        return None

    @staticmethod
    def should_use_semantic(text: str, intent: QueryIntent) -> bool:
        """Whether a vector lookup is likely to add anything for this text."""
        if not text:
            return False
        return (
            bool(SEMANTIC_INDICATORS.search(text))
            or intent == QueryIntent.FIND_SIMILAR
            or len(text) > SEMANTIC_MIN_LENGTH
        )

    @staticmethod
    def extract_entities(text: str) -> List[str]:
        """Names, project titles and tags mentioned in the query, deduplicated."""
        entities: List[str] = []
        for pattern in ENTITY_PATTERNS:
            for match in pattern.finditer(text):
                entities.append(match.group(1).strip())
        entities.extend(match.group(2) for match in TAG_TOKEN.finditer(text))
        return list(dict.fromkeys(e for e in entities if e))

    @staticmethod
    def expand(text: str) -> List[str]:
        """Return the query followed by single-word synonym substitutions."""
        expansions = [text]
        for word in dict.fromkeys(text.lower().split()):
            for synonym in SYNONYMS.get(word, []):
                expanded = re.sub(rf"\b{re.escape(word)}\b", synonym, text, flags=re.IGNORECASE)
                if expanded != text and expanded not in expansions:
                    expansions.append(expanded)
        return expansions
