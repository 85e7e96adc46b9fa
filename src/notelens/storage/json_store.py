"""Note and link snapshot store backed by a single JSON file.

File layout::

    {
      "notes": [{"id": "1", "title": "...", "tags": ["work"], ...}],
      "links": [{"source_id": "1", "target_id": "2", "anchor_text": "..."}]
    }

Notes may carry a ``user_scope`` key; ``list_notes(user_scope)`` then
returns only matching notes (notes without one are visible to every scope).
Without a "links" key, edges are derived from ``[[reference]]`` markup.
"""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from notelens.exceptions import ErrorCode, StorageError
from notelens.models.schema import LinkEdge, NoteSnapshot
from notelens.utils import extract_bracket_links

logger = logging.getLogger(__name__)

SCOPE_KEY = "user_scope"


def derive_links(notes: Sequence[NoteSnapshot]) -> List[LinkEdge]:
    """Build link edges from the ``[[reference]]`` markup in note bodies.

    A reference resolves to the note whose slug matches its own. Unresolved
    references are skipped.
    """
    by_slug: Dict[str, NoteSnapshot] = {}
    for note in notes:
        by_slug.setdefault(note.slug, note)
    edges: List[LinkEdge] = []
    for note in notes:
        for ref in extract_bracket_links(note.body or ""):
            target = by_slug.get(ref.slug)
            if target is None:
                continue
            edges.append(
                LinkEdge(
                    source_id=note.id,
                    target_id=target.id,
                    anchor_text=ref.text,
                    canonical_title=target.title,
                )
            )
    return edges


class JsonSnapshotStore:
    """Implements both ``NoteStore`` and ``LinkStore`` over one JSON file.

    The file is re-read only when its modification time changes.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._mtime: Optional[float] = None
        self._notes: List[Tuple[Optional[str], NoteSnapshot]] = []
        self._links: List[LinkEdge] = []

    def list_notes(self, user_scope: Optional[str] = None) -> List[NoteSnapshot]:
        """Notes visible to ``user_scope``.

        Raises:
            StorageError: If the file is missing or malformed.
        """
        self._refresh()
        with self._lock:
            return [
                note
                for scope, note in self._notes
                if user_scope is None or scope is None or scope == user_scope
            ]

    def list_links(self, user_scope: Optional[str] = None) -> List[LinkEdge]:
        """Every link edge; scoping happens through the notes they join."""
        self._refresh()
        with self._lock:
            return list(self._links)

    def _refresh(self) -> None:
        try:
            mtime = self.path.stat().st_mtime
        except OSError as e:
            raise StorageError(
                f"Snapshot file not readable: {e}",
                operation="stat",
                path=str(self.path),
                original_error=e,
            ) from e

        with self._lock:
            if self._mtime == mtime:
                return
            self._notes, self._links = self._read()
            self._mtime = mtime
        logger.debug(
            f"Loaded {len(self._notes)} notes and {len(self._links)} links from {self.path.name}"
        )

    def _read(self) -> Tuple[List[Tuple[Optional[str], NoteSnapshot]], List[LinkEdge]]:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(
                f"Failed to read snapshot: {e}",
                operation="read",
                path=str(self.path),
                original_error=e,
            ) from e
        if not isinstance(payload, dict):
            raise StorageError(
                "Snapshot must be a JSON object with 'notes' and 'links'",
                operation="read",
                path=str(self.path),
            )

        try:
            notes = []
            for raw in payload.get("notes", []):
                raw = dict(raw)
                scope = raw.pop(SCOPE_KEY, None)
                notes.append((scope, NoteSnapshot.model_validate(raw)))
            if "links" in payload:
                links = [LinkEdge.model_validate(raw) for raw in payload["links"]]
            else:
                links = derive_links([note for _, note in notes])
        except (PydanticValidationError, TypeError, ValueError) as e:
            raise StorageError(
                f"Invalid snapshot content: {e}",
                operation="parse",
                path=str(self.path),
                original_error=e,
            ) from e
        return notes, links

    @staticmethod
    def write(
        path: Union[str, Path],
        notes: Sequence[NoteSnapshot],
        links: Sequence[LinkEdge] = (),
    ) -> Path:
        """Serialize a snapshot in the format this store reads.

        Raises:
            StorageError: If the file cannot be written.
        """
        path = Path(path)
        payload: Dict[str, Any] = {
            "notes": [note.model_dump(mode="json") for note in notes],
            "links": [link.model_dump(mode="json") for link in links],
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            raise StorageError(
                f"Failed to write snapshot: {e}",
                operation="write",
                path=str(path),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        return path
