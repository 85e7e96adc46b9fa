"""Semantic lookup and hybrid ranking.

``SemanticMerger.fetch`` asks the external embedding provider and vector
backend for candidates; ``merge`` blends them with the fuzzy results by note
id; ``finalize`` applies the recency boost, assigns display tiers and sorts.
Provider failures are raised as ProviderError for the caller to absorb.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional, Sequence

from notelens.config import SearchConfig, config
from notelens.exceptions import ErrorCode, ProviderError
from notelens.models.schema import (
    NoteSnapshot,
    ResultTier,
    SearchResult,
    SearchType,
    utc_now,
)
from notelens.services.provider_types import EmbeddingProvider, VectorSimilarityBackend

logger = logging.getLogger(__name__)

# Lower bounds, checked from the top
TIER_THRESHOLDS = (
    (0.9, ResultTier.EXACT),
    (0.7, ResultTier.HIGH),
    (0.5, ResultTier.MEDIUM),
)


def assign_tier(score: float) -> ResultTier:
    """Display bucket for a final score. Never affects ordering."""
    for lower_bound, tier in TIER_THRESHOLDS:
        if score >= lower_bound:
            return tier
    return ResultTier.RELATED


def sort_results(results: Sequence[SearchResult]) -> List[SearchResult]:
    """Score descending, then most recently updated first; stable otherwise."""
    return sorted(
        results,
        key=lambda r: (-r.score, -r.note.updated_at.timestamp()),
    )


@dataclass(frozen=True)
class SemanticCandidate:
    """A vector-similarity match resolved against the current snapshot."""

    note: NoteSnapshot
    similarity: float


class SemanticMerger:
    """Blends vector-similarity candidates into fuzzy results."""

    def __init__(
        self,
        embedder: Optional[EmbeddingProvider] = None,
        backend: Optional[VectorSimilarityBackend] = None,
        search_config: Optional[SearchConfig] = None,
    ):
        self.embedder = embedder
        self.backend = backend
        self.config = search_config or config

    @property
    def available(self) -> bool:
        """Whether both collaborators are present and semantic search is on."""
        return (
            self.config.semantic_enabled
            and self.embedder is not None
            and self.backend is not None
        )

    def fetch(
        self, text: str, notes_by_id: Mapping[str, NoteSnapshot]
    ) -> List[SemanticCandidate]:
        """Embed ``text`` and resolve the backend's matches to snapshot notes.

        Ids missing from ``notes_by_id`` are stale vectors and are dropped.
        Duplicate ids keep their highest similarity.

        Raises:
            ProviderError: If semantic search is unavailable or either
                collaborator fails.
        """
        if not self.available:
            raise ProviderError(
                "Semantic search is not configured",
                code=ErrorCode.SEMANTIC_UNAVAILABLE,
                operation="fetch",
            )
        if not text or not text.strip():
            return []

        try:
            vector = self.embedder.embed(text)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(
                f"Query embedding failed: {e}",
                code=ErrorCode.EMBEDDING_FAILED,
                operation="embed",
                original_error=e,
            ) from e

        try:
            matches = self.backend.match(
                vector, self.config.semantic_threshold, self.config.semantic_limit
            )
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(
                f"Vector similarity lookup failed: {e}",
                code=ErrorCode.VECTOR_BACKEND_FAILED,
                operation="match",
                original_error=e,
            ) from e

        best: Dict[str, float] = {}
        stale = 0
        for note_id, similarity in matches or []:
            if note_id not in notes_by_id:
                stale += 1
                continue
            similarity = min(1.0, max(0.0, float(similarity)))
            if similarity > best.get(note_id, -1.0):
                best[note_id] = similarity
        if stale:
            logger.debug(f"Dropped {stale} semantic matches for notes not in the snapshot")

        candidates = [
            SemanticCandidate(note=notes_by_id[note_id], similarity=similarity)
            for note_id, similarity in best.items()
        ]
        candidates.sort(key=lambda c: -c.similarity)
        return candidates[: self.config.semantic_limit]

    def merge(
        self,
        fuzzy_results: Sequence[SearchResult],
        semantic: Sequence[SemanticCandidate],
        text: str = "",
    ) -> List[SearchResult]:
        """Combine fuzzy and semantic results keyed by note id.

        Notes in both sets score ``semantic_weight * similarity +
        fuzzy_weight * fuzzy_score`` and become hybrid; the rest pass
        through unchanged. Fuzzy order is kept, semantic-only notes follow.
        """
        merged: Dict[str, SearchResult] = {r.note_id: r for r in fuzzy_results}
        needle = text.strip().lower()

        for candidate in semantic:
            note_id = candidate.note.id
            existing = merged.get(note_id)
            if existing is None:
                merged[note_id] = SearchResult(
                    note=candidate.note,
                    score=candidate.similarity,
                    matched_tags=[
                        t for t in candidate.note.tags if needle and needle in t.lower()
                    ],
                    search_type=SearchType.SEMANTIC,
                    semantic_similarity=candidate.similarity,
                )
                continue
            combined = (
                self.config.semantic_weight * candidate.similarity
                + self.config.fuzzy_weight * existing.score
            )
            merged[note_id] = existing.model_copy(
                update={
                    "score": combined,
                    "search_type": SearchType.HYBRID,
                    "semantic_similarity": candidate.similarity,
                }
            )
        return list(merged.values())

    def finalize(
        self, results: Sequence[SearchResult], now: Optional[datetime] = None
    ) -> List[SearchResult]:
        """Apply the recency boost once, assign tiers and sort."""
        now = now or utc_now()
        window = timedelta(days=self.config.recency_window_days)
        finalized: List[SearchResult] = []
        for result in results:
            score = result.score
            if now - result.note.updated_at <= window:
                score *= self.config.recency_boost
            finalized.append(
                result.model_copy(update={"score": score, "tier": assign_tier(score)})
            )
        return sort_results(finalized)
