"""In-memory weighted fuzzy index over a note snapshot.

Per-field similarity comes from rapidfuzz; fields are combined the way
Fuse-style matchers do it: each field whose distance is within the threshold
contributes ``distance ** weight`` to a running product, so a near-perfect
hit on a heavy field dominates. Distances live in [0, 1] (0 = perfect) and
are exposed as ``score = 1 - distance`` so higher is better everywhere.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from rapidfuzz import fuzz
from rapidfuzz.utils import default_process

from notelens.config import SearchConfig, config
from notelens.exceptions import IndexBuildError
from notelens.models.schema import NoteSnapshot

logger = logging.getLogger(__name__)

# Stand-in for a zero distance so a perfect field match keeps its weight
EPSILON = 2.220446049250313e-16

FIELDS = ("title", "body", "tags")

SUGGEST_WEIGHTS = {"title": 0.7, "body": 0.3}
SUGGEST_THRESHOLD = 0.4

Fingerprint = FrozenSet[Tuple[str, float]]


@dataclass
class FuzzyCandidate:
    """A lexical match with its relevance score (higher is better)."""

    note: NoteSnapshot
    score: float
    matched_tags: List[str] = field(default_factory=list)


@dataclass
class _IndexedNote:
    note: NoteSnapshot
    position: int
    title: str
    body: str
    tags: List[str]


def snapshot_fingerprint(notes: Iterable[NoteSnapshot]) -> Fingerprint:
    """Identity of a snapshot: which notes, at which revision."""
    return frozenset((note.id, note.updated_at.timestamp()) for note in notes)


class FuzzyIndex:
    """Multi-field fuzzy matcher over an immutable list of notes.

    The index never mutates its input. Build a new index whenever the
    snapshot fingerprint changes (see ``is_current_for``).
    """

    def __init__(
        self,
        notes: Sequence[NoteSnapshot],
        weights: Optional[Mapping[str, float]] = None,
        threshold: Optional[float] = None,
        search_config: Optional[SearchConfig] = None,
    ):
        """Build the index.

        Args:
            notes: The note snapshot.
            weights: Field weights for ``title``, ``body`` and ``tags``.
            threshold: Maximum per-field distance counted as a match.
            search_config: Source of defaults when weights/threshold are omitted.

        Raises:
            IndexBuildError: If the snapshot is not a sequence of NoteSnapshot.
        """
        cfg = search_config or config
        self.weights: Dict[str, float] = dict(weights or cfg.field_weights)
        unknown = set(self.weights) - set(FIELDS)
        if unknown:
            raise IndexBuildError(f"Unknown fuzzy fields: {sorted(unknown)}")
        self.threshold = cfg.fuzzy_threshold if threshold is None else threshold
        self._entries: List[_IndexedNote] = []
        self._by_id: Dict[str, NoteSnapshot] = {}

        try:
            self._build(notes)
        except IndexBuildError:
            raise
        except Exception as e:
            raise IndexBuildError(
                f"Failed to build fuzzy index: {e}", original_error=e
            ) from e
        self.fingerprint: Fingerprint = snapshot_fingerprint(self._by_id.values())
        logger.debug(f"Fuzzy index built over {len(self._entries)} notes")

    def _build(self, notes: Sequence[NoteSnapshot]) -> None:
        if notes is None:
            raise IndexBuildError("Note snapshot is missing")
        latest: Dict[str, NoteSnapshot] = {}
        order: List[str] = []
        for item in notes:
            if not isinstance(item, NoteSnapshot):
                raise IndexBuildError(
                    f"Snapshot entry is {type(item).__name__}, expected NoteSnapshot",
                    note_count=len(order),
                )
            existing = latest.get(item.id)
            if existing is None:
                order.append(item.id)
                latest[item.id] = item
            else:
                logger.warning(f"Duplicate note id {item.id!r} in snapshot; keeping newest")
                if item.updated_at > existing.updated_at:
                    latest[item.id] = item

        for position, note_id in enumerate(order):
            note = latest[note_id]
            self._entries.append(
                _IndexedNote(
                    note=note,
                    position=position,
                    title=default_process(note.title),
                    body=default_process(note.body or ""),
                    tags=[default_process(tag) for tag in note.tags],
                )
            )
            self._by_id[note_id] = note

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def notes(self) -> List[NoteSnapshot]:
        """Notes in snapshot order, one per id."""
        return [entry.note for entry in self._entries]

    @property
    def notes_by_id(self) -> Dict[str, NoteSnapshot]:
        return dict(self._by_id)

    def is_current_for(self, notes: Iterable[NoteSnapshot]) -> bool:
        """Whether this index was built from the same snapshot revision."""
        return self.fingerprint == snapshot_fingerprint(notes)

    # =========================================================================
    # Matching
    # =========================================================================

    def search(self, text: str) -> List[FuzzyCandidate]:
        """Fuzzy text search over title, body and tags.

        An empty query is a "browse all": every note comes back with score 1.0.
        """
        if not text or not text.strip():
            return [FuzzyCandidate(note=e.note, score=1.0) for e in self._entries]

        needle = text.strip().lower()
        scored = self._match(text, self.weights, self.threshold)
        return [
            FuzzyCandidate(
                note=entry.note,
                score=score,
                matched_tags=[t for t in entry.note.tags if needle in t.lower()],
            )
            for entry, score in scored
        ]

    def search_tags(self, tag_query: str) -> List[FuzzyCandidate]:
        """Strict tag-membership search.

        A note matches when any of its tags contains ``tag_query`` (case
        insensitive). Every match scores 1.0. An empty tag query matches all.
        """
        needle = (tag_query or "").strip().lstrip("#").lower()
        results: List[FuzzyCandidate] = []
        for entry in self._entries:
            matched = [t for t in entry.note.tags if needle and needle in t.lower()]
            if needle and not matched:
                continue
            results.append(FuzzyCandidate(note=entry.note, score=1.0, matched_tags=matched))
        return results

    def suggest(self, text: str, limit: int = 8) -> List[FuzzyCandidate]:
        """Title-heavy match used for inline reference autocomplete."""
        if not text or not text.strip():
            return []
        scored = self._match(text, SUGGEST_WEIGHTS, SUGGEST_THRESHOLD)
        return [FuzzyCandidate(note=entry.note, score=score) for entry, score in scored[:limit]]

    def _match(
        self, text: str, weights: Mapping[str, float], threshold: float
    ) -> List[Tuple[_IndexedNote, float]]:
        query = default_process(text)
        if not query:
            return []

        scored: List[Tuple[_IndexedNote, float]] = []
        for entry in self._entries:
            total = 1.0
            matched = False
            for field_name, weight in weights.items():
                if weight <= 0:
                    continue
                distance = self._field_distance(query, entry, field_name)
                if distance is None or distance > threshold:
                    continue
                matched = True
                total *= max(distance, EPSILON) ** weight
            if matched:
                scored.append((entry, min(1.0, max(0.0, 1.0 - total))))

        scored.sort(
            key=lambda pair: (
                -pair[1],
                -pair[0].note.updated_at.timestamp(),
                pair[0].position,
            )
        )
        return scored

    @classmethod
    def _field_distance(
        cls, query: str, entry: _IndexedNote, field_name: str
    ) -> Optional[float]:
        if field_name == "title":
            return cls._distance(query, entry.title)
        if field_name == "body":
            return cls._distance(query, entry.body)
        if field_name == "tags":
            distances = [cls._distance(query, tag) for tag in entry.tags]
            distances = [d for d in distances if d is not None]
            return min(distances) if distances else None
        return None

    @staticmethod
    def _distance(query: str, value: str) -> Optional[float]:
        """Distance in [0, 1] between a processed query and a processed field."""
        if not value:
            return None
        similarity = fuzz.token_set_ratio(query, value)
        # partial_ratio only when the query is the shorter side
        if len(query) <= len(value):
            similarity = max(similarity, fuzz.partial_ratio(query, value))
        return 1.0 - similarity / 100.0
