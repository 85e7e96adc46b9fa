"""Common test fixtures for the notelens search engine."""

import pytest

from notelens.config import SearchConfig
from notelens.models.schema import Category, LinkEdge
from notelens.services.result_cache import ResultCache
from notelens.services.search_service import SearchService
from tests.fakes import (
    FakeEmbeddingProvider,
    FakeTimerFactory,
    FakeVectorBackend,
    InMemoryLinkStore,
    InMemoryNoteStore,
    ManualClock,
    NOW,
    make_note,
)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def search_config():
    """Config with the documented defaults, independent of the environment."""
    return SearchConfig(
        title_weight=0.4,
        body_weight=0.3,
        tags_weight=0.3,
        fuzzy_threshold=0.3,
        semantic_enabled=True,
        always_attempt_semantic=False,
        semantic_threshold=0.3,
        semantic_limit=20,
        semantic_weight=0.6,
        fuzzy_weight=0.4,
        semantic_timeout=2.0,
        semantic_workers=2,
        recency_window_days=30,
        recency_boost=1.1,
        cache_max_entries=50,
        cache_ttl_seconds=300,
        reapply_filters_on_cache_hit=True,
        cache_path=None,
        debounce_seconds=0.3,
        bracket_min_query_length=2,
        bracket_max_suggestions=8,
        link_context_limit=5,
        similar_notes_limit=10,
        recent_searches_limit=10,
        log_dir=None,
    )


@pytest.fixture
def alpha_notes():
    """The two-note scenario: a work kickoff and a research note."""
    return [
        make_note("1", "Project Alpha Kickoff", "We started the project today.", ["work"]),
        make_note(
            "2",
            "Alpha Testing Notes",
            "Findings from the testing round.",
            ["research"],
            days_old=100,
            category=Category.RESEARCH,
        ),
    ]


@pytest.fixture
def note_store(alpha_notes):
    return InMemoryNoteStore(alpha_notes)


@pytest.fixture
def link_store():
    return InMemoryLinkStore()


@pytest.fixture
def timer_factory():
    return FakeTimerFactory()


@pytest.fixture
def cache_clock():
    return ManualClock()


@pytest.fixture
def result_cache(cache_clock):
    return ResultCache(max_entries=50, ttl_seconds=300, clock=cache_clock)


@pytest.fixture
def search_service(note_store, link_store, result_cache, search_config, timer_factory):
    """Fuzzy-only service over the two-note scenario."""
    service = SearchService(
        note_store,
        link_store,
        cache=result_cache,
        search_config=search_config,
        timer_factory=timer_factory,
        clock=lambda: NOW,
    )
    yield service
    service.shutdown()


@pytest.fixture
def fake_embedder():
    return FakeEmbeddingProvider(dim=8)


@pytest.fixture
def vector_backend():
    return FakeVectorBackend()


@pytest.fixture
def semantic_service(
    note_store, link_store, result_cache, search_config, timer_factory, fake_embedder, vector_backend
):
    """Service with a fake embedder and a canned vector backend."""
    service = SearchService(
        note_store,
        link_store,
        embedder=fake_embedder,
        vector_backend=vector_backend,
        cache=result_cache,
        search_config=search_config,
        timer_factory=timer_factory,
        clock=lambda: NOW,
    )
    yield service
    service.shutdown()


@pytest.fixture
def linked_notes():
    """Three notes; 1 -> 2 with anchor text, 3 unconnected."""
    notes = [
        make_note("1", "Project Alpha Kickoff", "Kickoff notes. See the testing plan. Next steps follow.", ["work"]),
        make_note("2", "Alpha Testing Notes", "Findings from testing.", ["research"]),
        make_note("3", "Gardening Journal", "Tomatoes and basil.", ["personal"]),
    ]
    links = [LinkEdge(source_id="1", target_id="2", anchor_text="testing")]
    return notes, links
