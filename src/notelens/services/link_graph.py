"""Link graph derived from a note and link snapshot.

Builds incoming/outgoing adjacency lists once per snapshot and answers the
connection-based questions the search pipeline asks: backlink context,
Jaccard similarity over connected notes, hub notes and orphans.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set

from notelens.models.schema import (
    Backlink,
    ConnectedNote,
    HubNote,
    LinkContext,
    LinkEdge,
    NoteSnapshot,
    SimilarNote,
)

logger = logging.getLogger(__name__)

_SENTENCE_BOUNDARY = re.compile(r"[.!?]+")


def extract_context(body: Optional[str], anchor_text: Optional[str]) -> str:
    """Return the sentences around the first mention of ``anchor_text``.

    The body is split on runs of ``.``, ``!`` and ``?``; blank segments are
    dropped. The result joins the sentence before, the matching sentence and
    the sentence after with ``". "``. A missing body, missing anchor or an
    anchor that never appears yields an empty string.
    """
    if not body or not anchor_text:
        return ""
    sentences = [s.strip() for s in _SENTENCE_BOUNDARY.split(body) if s.strip()]
    needle = anchor_text.lower()
    for index, sentence in enumerate(sentences):
        if needle in sentence.lower():
            start = max(0, index - 1)
            return ". ".join(sentences[start: index + 2]).strip()
    return ""


@dataclass
class Adjacency:
    """Ordered incoming and outgoing links of one note."""

    incoming: List[Backlink] = field(default_factory=list)
    outgoing: List[ConnectedNote] = field(default_factory=list)

    @property
    def connection_count(self) -> int:
        return len(self.incoming) + len(self.outgoing)


class LinkGraph:
    """Adjacency view over one snapshot of notes and links.

    Read-only after construction; safe to share between threads.
    """

    def __init__(self, notes: Sequence[NoteSnapshot], edges: Iterable[LinkEdge]):
        self._notes: Dict[str, NoteSnapshot] = {}
        for note in notes:
            self._notes.setdefault(note.id, note)
        self._adjacency: Dict[str, Adjacency] = {
            note_id: Adjacency() for note_id in self._notes
        }
        self._connections: Dict[str, Set[str]] = {
            note_id: set() for note_id in self._notes
        }
        self.dangling_edges = 0
        self._build(edges)

    def _build(self, edges: Iterable[LinkEdge]) -> None:
        for edge in edges:
            source = self._notes.get(edge.source_id)
            target = self._notes.get(edge.target_id)
            if source is None or target is None:
                self.dangling_edges += 1
                continue

            self._adjacency[source.id].outgoing.append(
                ConnectedNote(
                    note_id=target.id,
                    title=target.title,
                    anchor_text=edge.anchor_text or None,
                )
            )
            self._adjacency[target.id].incoming.append(
                Backlink(
                    note_id=source.id,
                    source_title=source.title,
                    anchor_text=edge.anchor_text or None,
                    context=extract_context(source.body, edge.anchor_text),
                )
            )
            if source.id != target.id:
                self._connections[source.id].add(target.id)
                self._connections[target.id].add(source.id)

        if self.dangling_edges:
            logger.debug(f"Skipped {self.dangling_edges} links to notes outside the snapshot")

    def __contains__(self, note_id: object) -> bool:
        return note_id in self._notes

    def note(self, note_id: str) -> Optional[NoteSnapshot]:
        return self._notes.get(note_id)

    def adjacency(self, note_id: str) -> Adjacency:
        """Adjacency of a note; empty for notes outside the snapshot."""
        return self._adjacency.get(note_id) or Adjacency()

    def connection_count(self, note_id: str) -> int:
        """``|incoming| + |outgoing|``, counting every edge."""
        return self.adjacency(note_id).connection_count

    def connected_ids(self, note_id: str) -> Set[str]:
        """Distinct notes linked to or from ``note_id``, excluding itself."""
        return set(self._connections.get(note_id, ()))

    def is_orphan(self, note_id: str) -> bool:
        return self.connection_count(note_id) == 0

    def jaccard(self, note_a: str, note_b: str) -> float:
        """Jaccard index of two notes' connected-note sets (0 when both empty)."""
        a = self._connections.get(note_a, set())
        b = self._connections.get(note_b, set())
        union = a | b
        if not union:
            return 0.0
        return len(a & b) / len(union)

    def similar_notes(self, note_id: str, limit: int = 10) -> List[SimilarNote]:
        """Notes sharing connections with ``note_id``, strongest first.

        Only strictly positive similarities are returned. Ties keep
        snapshot order.
        """
        if note_id not in self._notes:
            return []
        similar: List[SimilarNote] = []
        for other_id, other in self._notes.items():
            if other_id == note_id:
                continue
            strength = self.jaccard(note_id, other_id)
            if strength > 0:
                similar.append(
                    SimilarNote(note_id=other_id, title=other.title, strength=strength)
                )
        similar.sort(key=lambda s: -s.strength)
        return similar[:limit]

    def most_connected(self, limit: Optional[int] = 10) -> List[HubNote]:
        """Notes ranked by total connections; unconnected notes are left out."""
        hubs = [
            HubNote(note_id=note_id, title=note.title, connection_count=count)
            for note_id, note in self._notes.items()
            if (count := self.connection_count(note_id)) > 0
        ]
        hubs.sort(key=lambda h: -h.connection_count)
        return hubs if limit is None else hubs[:limit]

    def orphans(self) -> List[NoteSnapshot]:
        """Notes with no incoming and no outgoing links, in snapshot order."""
        return [note for note_id, note in self._notes.items() if self.is_orphan(note_id)]

    def link_context(
        self,
        note_id: str,
        current_note_id: Optional[str] = None,
        limit: int = 5,
    ) -> LinkContext:
        """Connection metadata for decorating a search result.

        Args:
            note_id: The result's note.
            current_note_id: Note the user is looking at; when given and
                different from ``note_id``, the shared-connection strength
                with it is included.
            limit: Maximum connected notes and backlinks listed.
        """
        adjacency = self.adjacency(note_id)
        shared: Optional[List[SimilarNote]] = None
        if current_note_id and current_note_id != note_id:
            shared = []
            strength = self.jaccard(note_id, current_note_id)
            current = self._notes.get(current_note_id)
            if strength > 0 and current is not None:
                shared.append(
                    SimilarNote(note_id=current.id, title=current.title, strength=strength)
                )
        return LinkContext(
            incoming_count=len(adjacency.incoming),
            outgoing_count=len(adjacency.outgoing),
            total_connections=adjacency.connection_count,
            connected_notes=list(adjacency.outgoing[:limit]),
            backlinks=list(adjacency.incoming[:limit]),
            shared_connections=shared,
        )
