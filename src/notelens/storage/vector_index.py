"""In-memory cosine-similarity vector backend.

A small reference implementation of the ``VectorSimilarityBackend``
protocol for hosts that keep note vectors in process. Vectors are
L2-normalised on insert so matching is a single matrix-vector product.
"""
from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from notelens.exceptions import ErrorCode, ProviderError
from notelens.services.provider_types import Vector

logger = logging.getLogger(__name__)


def _normalise(vector: Vector) -> np.ndarray:
    arr = np.asarray(vector, dtype=np.float32).reshape(-1)
    norm = float(np.linalg.norm(arr))
    if norm == 0.0 or not np.isfinite(norm):
        raise ValueError("Vector must be finite and non-zero")
    return arr / norm


class InMemoryVectorIndex:
    """Thread-safe note-id -> vector store with cosine matching."""

    def __init__(self, dimension: Optional[int] = None):
        self._dimension = dimension
        self._ids: List[str] = []
        self._rows: Dict[str, int] = {}
        self._matrix: Optional[np.ndarray] = None
        self._lock = threading.Lock()

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def __contains__(self, note_id: object) -> bool:
        with self._lock:
            return note_id in self._rows

    def add(self, note_id: str, vector: Vector) -> None:
        """Store (or replace) the vector for ``note_id``.

        Raises:
            ProviderError: On a zero, non-finite or wrongly sized vector.
        """
        self.add_many([(note_id, vector)])

    def add_many(self, items: Iterable[Tuple[str, Vector]]) -> int:
        """Store several vectors at once. Returns the number stored.

        The batch is all or nothing: an invalid vector anywhere in it leaves
        the index unchanged.
        """
        prepared: List[Tuple[str, np.ndarray]] = []
        for note_id, vector in items:
            try:
                prepared.append((note_id, _normalise(vector)))
            except (TypeError, ValueError) as e:
                raise ProviderError(
                    f"Invalid vector for note {note_id}: {e}",
                    code=ErrorCode.VECTOR_BACKEND_FAILED,
                    operation="add",
                    original_error=e,
                ) from e

        with self._lock:
            expected = self._dimension
            if expected is None and prepared:
                expected = prepared[0][1].shape[0]
            for note_id, arr in prepared:
                if arr.shape[0] != expected:
                    raise ProviderError(
                        f"Vector for note {note_id} has dimension {arr.shape[0]}, "
                        f"expected {expected}",
                        code=ErrorCode.VECTOR_BACKEND_FAILED,
                        operation="add",
                    )
            self._dimension = expected
            for note_id, arr in prepared:
                row = self._rows.get(note_id)
                if row is not None:
                    self._matrix[row] = arr
                    continue
                self._rows[note_id] = len(self._ids)
                self._ids.append(note_id)
                arr = arr.reshape(1, -1)
                self._matrix = arr if self._matrix is None else np.vstack([self._matrix, arr])
        return len(prepared)

    def remove(self, note_id: str) -> bool:
        """Forget a note's vector. Returns False if it was not stored."""
        with self._lock:
            row = self._rows.pop(note_id, None)
            if row is None:
                return False
            self._ids.pop(row)
            self._matrix = np.delete(self._matrix, row, axis=0)
            if not self._ids:
                self._matrix = None
            self._rows = {nid: i for i, nid in enumerate(self._ids)}
            return True

    def match(self, vector: Vector, threshold: float, limit: int) -> List[Tuple[str, float]]:
        """Notes whose cosine similarity to ``vector`` is at least ``threshold``.

        Returns:
            Up to ``limit`` ``(note_id, similarity)`` pairs, most similar first.

        Raises:
            ProviderError: If the query vector is unusable.
        """
        try:
            query = _normalise(vector)
        except (TypeError, ValueError) as e:
            raise ProviderError(
                f"Invalid query vector: {e}",
                code=ErrorCode.VECTOR_BACKEND_FAILED,
                operation="match",
                original_error=e,
            ) from e

        with self._lock:
            if self._matrix is None or limit <= 0:
                return []
            if query.shape[0] != self._dimension:
                raise ProviderError(
                    f"Query vector has dimension {query.shape[0]}, expected {self._dimension}",
                    code=ErrorCode.VECTOR_BACKEND_FAILED,
                    operation="match",
                )
            similarities = self._matrix @ query
            ids = list(self._ids)

        # Stable sort keeps insertion order among equal similarities
        order = np.argsort(-similarities, kind="stable")
        matches: List[Tuple[str, float]] = []
        for row in order:
            similarity = float(similarities[row])
            if similarity < threshold:
                break
            matches.append((ids[row], similarity))
            if len(matches) >= limit:
                break
        return matches
