"""Configuration module for the notelens search engine."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notelens import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, shared by every host embedding the engine
_USER_ENV = Path.home() / ".notelens" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.getenv(name, default))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class SearchConfig(BaseModel):
    """Configuration for the hybrid search engine."""

    engine_name: str = Field(default=os.getenv("NOTELENS_ENGINE_NAME", "notelens"))
    engine_version: str = Field(default=__version__)

    # Fuzzy index: per-field weights and the maximum accepted distance
    title_weight: float = Field(
        default_factory=lambda: _env_float("NOTELENS_TITLE_WEIGHT", "0.4")
    )
    body_weight: float = Field(
        default_factory=lambda: _env_float("NOTELENS_BODY_WEIGHT", "0.3")
    )
    tags_weight: float = Field(
        default_factory=lambda: _env_float("NOTELENS_TAGS_WEIGHT", "0.3")
    )
    fuzzy_threshold: float = Field(
        default_factory=lambda: _env_float("NOTELENS_FUZZY_THRESHOLD", "0.3")
    )

    # Semantic search
    semantic_enabled: bool = Field(
        default_factory=lambda: _env_bool("NOTELENS_SEMANTIC_ENABLED", "true")
    )
    # When True the length/keyword heuristic is bypassed and every non-empty
    # query attempts a vector lookup.
    always_attempt_semantic: bool = Field(
        default_factory=lambda: _env_bool("NOTELENS_ALWAYS_SEMANTIC", "false")
    )
    semantic_threshold: float = Field(
        default_factory=lambda: _env_float("NOTELENS_SEMANTIC_THRESHOLD", "0.3")
    )
    semantic_limit: int = Field(
        default_factory=lambda: _env_int("NOTELENS_SEMANTIC_LIMIT", "20")
    )
    semantic_weight: float = Field(
        default_factory=lambda: _env_float("NOTELENS_SEMANTIC_WEIGHT", "0.6")
    )
    fuzzy_weight: float = Field(
        default_factory=lambda: _env_float("NOTELENS_FUZZY_WEIGHT", "0.4")
    )
    semantic_timeout: float = Field(
        default_factory=lambda: _env_float("NOTELENS_SEMANTIC_TIMEOUT", "5.0")
    )
    semantic_workers: int = Field(
        default_factory=lambda: _env_int("NOTELENS_SEMANTIC_WORKERS", "2")
    )

    # Ranking
    recency_window_days: int = Field(
        default_factory=lambda: _env_int("NOTELENS_RECENCY_WINDOW_DAYS", "30")
    )
    recency_boost: float = Field(
        default_factory=lambda: _env_float("NOTELENS_RECENCY_BOOST", "1.1")
    )

    # Result cache
    cache_max_entries: int = Field(
        default_factory=lambda: _env_int("NOTELENS_CACHE_MAX_ENTRIES", "50")
    )
    cache_ttl_seconds: float = Field(
        default_factory=lambda: _env_float("NOTELENS_CACHE_TTL_SECONDS", "300")
    )
    # Cached entries are matched on query text only; re-run tag/date/link
    # filters over a cache hit so a narrowing query does not leak old results.
    reapply_filters_on_cache_hit: bool = Field(
        default_factory=lambda: _env_bool("NOTELENS_CACHE_REAPPLY_FILTERS", "true")
    )
    cache_path: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTELENS_CACHE_PATH"))
            if os.getenv("NOTELENS_CACHE_PATH")
            else None
        )
    )

    # Bracket resolver
    debounce_seconds: float = Field(
        default_factory=lambda: _env_float("NOTELENS_DEBOUNCE_SECONDS", "0.3")
    )
    bracket_min_query_length: int = Field(
        default_factory=lambda: _env_int("NOTELENS_BRACKET_MIN_LENGTH", "2")
    )
    bracket_max_suggestions: int = Field(
        default_factory=lambda: _env_int("NOTELENS_BRACKET_MAX_SUGGESTIONS", "8")
    )

    # Link graph
    link_context_limit: int = Field(
        default_factory=lambda: _env_int("NOTELENS_LINK_CONTEXT_LIMIT", "5")
    )
    similar_notes_limit: int = Field(
        default_factory=lambda: _env_int("NOTELENS_SIMILAR_NOTES_LIMIT", "10")
    )

    # Bookkeeping
    recent_searches_limit: int = Field(
        default_factory=lambda: _env_int("NOTELENS_RECENT_SEARCHES", "10")
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTELENS_LOG_DIR")) if os.getenv("NOTELENS_LOG_DIR") else None
        )
    )

    @model_validator(mode="after")
    def _validate_ranking_config(self) -> "SearchConfig":
        """Reject weights and bounds the ranking pipeline cannot honour."""
        for name in ("title_weight", "body_weight", "tags_weight"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if not 0.0 <= self.fuzzy_threshold <= 1.0:
            raise ValueError("fuzzy_threshold must be within [0, 1]")
        if abs(self.semantic_weight + self.fuzzy_weight - 1.0) > 1e-6:
            raise ValueError("semantic_weight and fuzzy_weight must sum to 1.0")
        if self.cache_max_entries < 1:
            raise ValueError("cache_max_entries must be >= 1")
        if self.semantic_limit < 1:
            raise ValueError("semantic_limit must be >= 1")
        if self.semantic_timeout <= 0:
            raise ValueError("semantic_timeout must be > 0")
        if self.debounce_seconds < 0:
            raise ValueError("debounce_seconds must be >= 0")

        if self.cache_ttl_seconds < 1:
            logger.warning(
                "Result cache TTL of %.2fs is shorter than a typical query; "
                "cache hits will be rare.",
                self.cache_ttl_seconds,
            )
        return self

    @property
    def field_weights(self) -> dict:
        """Weights of the fuzzy-matched note fields."""
        return {
            "title": self.title_weight,
            "body": self.body_weight,
            "tags": self.tags_weight,
        }


# Create a global config instance
config = SearchConfig()
