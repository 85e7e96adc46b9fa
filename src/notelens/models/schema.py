"""Data models for the notelens search engine."""

import datetime
from datetime import timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from notelens.utils import slugify


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    Note stores that hand out naive timestamps are assumed to be in UTC.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same datetime with UTC timezone if it was naive, otherwise unchanged.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


class Category(str, Enum):
    """Coarse category a note is filed under."""

    PERSONAL = "personal"
    WORK = "work"
    RESEARCH = "research"
    NONE = "none"


class SearchMode(str, Enum):
    """How a query should be matched against the snapshot."""

    TEXT = "text"  # Fuzzy (and optionally semantic) text matching
    TAGS = "tags"  # Strict tag membership
    COMBINED = "combined"  # Text matching; a leading '#' switches to tags
    SIMILARITY = "similarity"  # Shared-connection similarity to a note
    CONNECTIONS = "connections"  # Connected notes ranked by degree


class SearchType(str, Enum):
    """Which signal produced a result."""

    FUZZY = "fuzzy"
    SEMANTIC = "semantic"
    HYBRID = "hybrid"


class ResultTier(str, Enum):
    """Display bucket derived from the final score."""

    EXACT = "exact"
    HIGH = "high"
    MEDIUM = "medium"
    RELATED = "related"


class QueryIntent(str, Enum):
    """What the user most likely wants to do with a query."""

    SEARCH = "search"
    CREATE = "create"
    NAVIGATE = "navigate"
    FIND_SIMILAR = "find_similar"


class NoteSnapshot(BaseModel):
    """Read-only view of a note for the duration of one query."""

    id: str = Field(..., description="Opaque note identifier")
    title: str = Field(..., description="Title of the note")
    body: Optional[str] = Field(default=None, description="Note body text")
    tags: Tuple[str, ...] = Field(default=(), description="Tags, in display order")
    slug: str = Field(default="", description="URL slug derived from the title")
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)
    pinned: bool = Field(default=False)
    category: Category = Field(default=Category.NONE)
    semantic_enabled: bool = Field(
        default=False, description="Whether a vector exists for this note"
    )

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate that the ID is not blank."""
        if not v or not v.strip():
            raise ValueError("Note ID cannot be empty")
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def dedupe_tags(cls, v: Any) -> Tuple[str, ...]:
        """Accept any iterable of tags; drop blanks and duplicates, keep order."""
        if v is None:
            return ()
        seen: Dict[str, None] = {}
        for tag in v:
            tag = str(tag).strip()
            if tag:
                seen.setdefault(tag, None)
        return tuple(seen)

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamps(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    @model_validator(mode="before")
    @classmethod
    def fill_slug(cls, data: Any) -> Any:
        """Derive the slug from the title when the store does not supply one."""
        if isinstance(data, dict) and not data.get("slug") and data.get("title"):
            data = {**data, "slug": slugify(str(data["title"]))}
        return data


class LinkEdge(BaseModel):
    """A directed link from one note to another."""

    source_id: str = Field(..., description="ID of the linking note")
    target_id: str = Field(..., description="ID of the linked note")
    anchor_text: Optional[str] = Field(
        default=None, description="Text used for the link inside the source body"
    )
    canonical_title: Optional[str] = Field(
        default=None, description="Title of the target at link time"
    )

    model_config = {"frozen": True, "extra": "forbid"}


class DateRange(BaseModel):
    """An absolute time window, inclusive on both ends."""

    start: datetime.datetime
    end: datetime.datetime

    model_config = {"frozen": True}

    @field_validator("start", "end")
    @classmethod
    def validate_bounds(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError("DateRange start must not be after end")
        return self

    def contains(self, moment: datetime.datetime) -> bool:
        return self.start <= ensure_timezone_aware(moment) <= self.end


class ConnectionCountRange(BaseModel):
    """Bounds on a note's total link count; either side may be open."""

    min: Optional[int] = Field(default=None, ge=0)
    max: Optional[int] = Field(default=None, ge=0)

    model_config = {"frozen": True}

    def contains(self, count: int) -> bool:
        if self.min is not None and count < self.min:
            return False
        if self.max is not None and count > self.max:
            return False
        return True


class SearchFilters(BaseModel):
    """Filters applied after matching, before ranking."""

    tags: Tuple[str, ...] = Field(default=(), description="All must be present")
    exclude_tags: Tuple[str, ...] = Field(default=(), description="None may be present")
    date_range: Optional[DateRange] = Field(
        default=None, description="Window on created_at"
    )
    category: Optional[Category] = None
    pinned: Optional[bool] = None
    connected_to: Optional[str] = Field(
        default=None, description="Keep notes that link to this note ID"
    )
    connected_from: Optional[str] = Field(
        default=None, description="Keep notes linked from this note ID"
    )
    connection_count: Optional[ConnectionCountRange] = None
    orphaned_only: bool = False
    most_connected: bool = Field(
        default=False, description="Sort by total connections instead of score"
    )

    model_config = {"frozen": True, "extra": "forbid"}

    @property
    def has_link_filters(self) -> bool:
        return bool(
            self.connected_to
            or self.connected_from
            or self.connection_count
            or self.orphaned_only
        )


class SearchQuery(BaseModel):
    """A single search request. Never mutated once dispatched."""

    text: str = Field(default="", description="Residual query text")
    filters: SearchFilters = Field(default_factory=SearchFilters)
    mode: SearchMode = Field(default=SearchMode.COMBINED)
    note_id: Optional[str] = Field(
        default=None, description="Current note for similarity and shared connections"
    )

    model_config = {"frozen": True, "extra": "forbid"}

    @property
    def is_tag_query(self) -> bool:
        """Whether matching is strict tag membership."""
        if self.mode == SearchMode.TAGS:
            return True
        return self.mode == SearchMode.COMBINED and self.text.lstrip().startswith("#")

    @property
    def tag_text(self) -> str:
        """Tag query without the leading '#', lower-cased."""
        return self.text.strip().lstrip("#").strip().lower()


class ConnectedNote(BaseModel):
    """An outgoing link as shown on a result."""

    note_id: str
    title: str
    anchor_text: Optional[str] = None


class Backlink(BaseModel):
    """An incoming link with a short excerpt of the linking note."""

    note_id: str
    source_title: str
    anchor_text: Optional[str] = None
    context: str = ""


class SimilarNote(BaseModel):
    """A note sharing connections with another, scored by Jaccard index."""

    note_id: str
    title: str
    strength: float


class HubNote(BaseModel):
    """A note ranked by how many links touch it."""

    note_id: str
    title: str
    connection_count: int


class LinkContext(BaseModel):
    """Link-graph metadata attached to a search result."""

    incoming_count: int = 0
    outgoing_count: int = 0
    total_connections: int = 0
    connected_notes: List[ConnectedNote] = Field(default_factory=list)
    backlinks: List[Backlink] = Field(default_factory=list)
    shared_connections: Optional[List[SimilarNote]] = None


class SearchResult(BaseModel):
    """A ranked note."""

    note: NoteSnapshot
    score: float
    matched_tags: List[str] = Field(default_factory=list)
    search_type: SearchType = SearchType.FUZZY
    tier: Optional[ResultTier] = None
    link_context: Optional[LinkContext] = None
    semantic_similarity: Optional[float] = None

    @property
    def note_id(self) -> str:
        return self.note.id

    def matches_text(self, needle: str) -> bool:
        """Whether title, body or any tag still contains ``needle`` (lower-case)."""
        note = self.note
        if needle in note.title.lower():
            return True
        if note.body and needle in note.body.lower():
            return True
        return any(needle in tag.lower() for tag in note.tags)
