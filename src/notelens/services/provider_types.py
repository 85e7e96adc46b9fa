"""Type protocols for the engine's external collaborators.

Defines the structural contracts that note stores, link stores, embedding
providers and vector-similarity backends must satisfy. Uses Protocol
(PEP 544) for structural subtyping; implementations don't need to inherit
from these.

This module is importable without numpy installed (annotations are
deferred via __future__).
"""
from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
    runtime_checkable,
)

if TYPE_CHECKING:
    import numpy as np

    from notelens.models.schema import LinkEdge, NoteSnapshot

Vector = Union["np.ndarray", Sequence[float]]


@runtime_checkable
class NoteStore(Protocol):
    """Read contract of the external note store."""

    def list_notes(self, user_scope: Optional[str] = None) -> Sequence[NoteSnapshot]:
        """Return every note visible to ``user_scope``.

        An eventually-consistent snapshot is acceptable; the engine reads it
        once per query and never writes back.
        """
        ...


@runtime_checkable
class LinkStore(Protocol):
    """Read contract of the external link store."""

    def list_links(self, user_scope: Optional[str] = None) -> Sequence[LinkEdge]:
        """Return every link edge visible to ``user_scope``."""
        ...


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Contract for embedding query text into a dense vector."""

    def embed(self, text: str) -> Vector:
        """Embed a single text.

        Raises:
            ProviderError: (or any exception) when the provider is unavailable.
                The search pipeline treats every failure as degradable.
        """
        ...


@runtime_checkable
class VectorSimilarityBackend(Protocol):
    """Contract for nearest-neighbour lookup over note vectors."""

    def match(
        self, vector: Vector, threshold: float, limit: int
    ) -> List[Tuple[str, float]]:
        """Find notes whose vectors are similar to ``vector``.

        Args:
            vector: Query embedding.
            threshold: Minimum similarity to return.
            limit: Maximum number of matches.

        Returns:
            ``(note_id, similarity)`` pairs, best first.
        """
        ...
