"""Service for searching and discovering notes.

Wires the query interpreter, fuzzy index, semantic merger, link graph,
bracket resolver and result cache into one facade. Each search reads the
note and link stores once and runs entirely against that snapshot.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional, Sequence

from notelens.config import SearchConfig, config
from notelens.exceptions import (
    ConfigurationError,
    ErrorCode,
    IndexBuildError,
    NoteNotFoundError,
    ProviderError,
    SearchError,
)
from notelens.models.schema import (
    HubNote,
    LinkEdge,
    NoteSnapshot,
    SearchFilters,
    SearchMode,
    SearchQuery,
    SearchResult,
    SearchType,
    SimilarNote,
    utc_now,
)
from notelens.observability import timed_operation, traced
from notelens.services.bracket_resolver import (
    BracketMatch,
    BracketResolver,
    NoteSuggestion,
    TimerFactory,
)
from notelens.services.fuzzy_index import FuzzyCandidate, FuzzyIndex
from notelens.services.link_graph import LinkGraph
from notelens.services.provider_types import (
    EmbeddingProvider,
    LinkStore,
    NoteStore,
    VectorSimilarityBackend,
)
from notelens.services.query_interpreter import InterpretedQuery, QueryInterpreter
from notelens.services.result_cache import ResultCache
from notelens.services.semantic_merger import (
    SemanticCandidate,
    SemanticMerger,
    assign_tier,
    sort_results,
)

logger = logging.getLogger(__name__)

# Normalizes connection counts into the score range for connections mode
CONNECTION_SCORE_SCALE = 10.0
MAX_TAG_SUGGESTIONS = 8



@dataclass
class SearchMetrics:
    """Counters describing one search."""

    total_notes: int = 0
    notes_with_embeddings: int = 0
    search_time_ms: float = 0.0
    fuzzy_matches: int = 0
    semantic_matches: int = 0


@dataclass
class SearchResponse:
    """Ranked results plus how they were produced.

    Attributes:
        results: Final, decorated results.
        search_type: ``hybrid`` when semantic candidates were merged,
            ``fuzzy`` otherwise.
        semantic_fallback: A semantic lookup was attempted and failed or
            timed out; results are fuzzy only.
        from_cache: Results were served by the result cache.
        cache_outcome: ``"hit"``, ``"partial"`` or ``"miss"`` when the cache
            was consulted, else None.
        semantic_timed_out: The semantic lookup exceeded ``semantic_timeout``.
        superseded: A newer search started before this one finished; the
            results were not published to ``latest_results`` or the cache.
    """

    results: List[SearchResult] = field(default_factory=list)
    search_type: SearchType = SearchType.FUZZY
    semantic_fallback: bool = False
    from_cache: bool = False
    cache_outcome: Optional[str] = None
    semantic_timed_out: bool = False
    superseded: bool = False
    metrics: SearchMetrics = field(default_factory=SearchMetrics)

    def __len__(self) -> int:
        return len(self.results)

    @property
    def note_ids(self) -> List[str]:
        return [r.note_id for r in self.results]


def _outcomes(response: SearchResponse) -> List[str]:
    """Outcome labels counted by the metrics collector for one search."""
    labels = []
    if response.cache_outcome:
        labels.append(f"cache_{response.cache_outcome}")
    if response.semantic_timed_out:
        labels.append("semantic_timeout")
    elif response.semantic_fallback:
        labels.append("semantic_fallback")
    if response.search_type == SearchType.HYBRID:
        labels.append("hybrid")
    if response.superseded:
        labels.append("superseded")
    return labels


@dataclass
class _Snapshot:
    notes: List[NoteSnapshot]
    index: FuzzyIndex
    graph: LinkGraph


class SearchService:
    """Hybrid search over an external note store."""

    def __init__(
        self,
        note_store: NoteStore,
        link_store: Optional[LinkStore] = None,
        embedder: Optional[EmbeddingProvider] = None,
        vector_backend: Optional[VectorSimilarityBackend] = None,
        cache: Optional[ResultCache] = None,
        user_scope: Optional[str] = None,
        search_config: Optional[SearchConfig] = None,
        timer_factory: TimerFactory = threading.Timer,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the search service.

        Args:
            note_store: Source of the note snapshot.
            link_store: Source of link edges. Without one every note is an orphan.
            embedder: Optional embedding provider for semantic search.
            vector_backend: Optional vector-similarity backend; required
                together with ``embedder``.
            cache: Result cache. A private one is created when omitted.
            user_scope: Passed through to the stores.
            search_config: Overrides the global config.
            timer_factory: ``threading.Timer`` compatible factory for the
                reference autocomplete debounce.
            clock: Evaluation instant for relative dates and recency.

        Raises:
            ConfigurationError: If only one of embedder/vector_backend is given.
        """
        if (embedder is None) != (vector_backend is None):
            raise ConfigurationError(
                "embedder and vector_backend must be provided together",
                config_key="vector_backend" if vector_backend is None else "embedder",
            )
        self.config = search_config or config
        self.note_store = note_store
        self.link_store = link_store
        self.user_scope = user_scope
        self.cache = cache if cache is not None else ResultCache(
            max_entries=self.config.cache_max_entries,
            ttl_seconds=self.config.cache_ttl_seconds,
        )
        self._clock = clock
        self.interpreter = QueryInterpreter(clock=clock)
        self.merger = SemanticMerger(embedder, vector_backend, search_config=self.config)
        self.resolver = BracketResolver(
            index_provider=self._current_index,
            timer_factory=timer_factory,
            search_config=self.config,
        )

        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()
        self._generation = 0
        self._inflight: Optional[Future] = None
        self._index: Optional[FuzzyIndex] = None
        self._index_lock = threading.Lock()
        self._latest_results: List[SearchResult] = []
        self._recent: Deque[str] = deque(maxlen=self.config.recent_searches_limit)

    @property
    def has_semantic_search(self) -> bool:
        """Whether semantic search is available (providers configured and enabled)."""
        return self.merger.available

    @property
    def latest_results(self) -> List[SearchResult]:
        """Results of the most recent search that was not superseded."""
        with self._lock:
            return list(self._latest_results)

    @property
    def recent_searches(self) -> List[str]:
        """Recent query texts, newest first."""
        with self._lock:
            return list(self._recent)

    # =========================================================================
    # Search
    # =========================================================================

    def search_text(
        self,
        raw: str,
        *,
        mode: SearchMode = SearchMode.COMBINED,
        semantic: Optional[bool] = None,
        note_id: Optional[str] = None,
        use_cache: bool = True,
        on_fuzzy: Optional[Callable[[List[SearchResult]], None]] = None,
        limit: Optional[int] = None,
    ) -> SearchResponse:
        """Interpret raw query text and search with it.

        A semantic lookup is attempted when the interpreter deems it useful,
        when ``always_attempt_semantic`` is configured, or when the caller
        forces it with ``semantic=True``. ``semantic=False`` disables it.
        """
        interpreted = self.interpret(raw, mode=mode, note_id=note_id)
        if semantic is None:
            semantic = interpreted.semantic or self.config.always_attempt_semantic
        return self.search(
            interpreted.query,
            semantic=semantic,
            use_cache=use_cache,
            on_fuzzy=on_fuzzy,
            limit=limit,
        )

    def interpret(
        self,
        raw: str,
        mode: SearchMode = SearchMode.COMBINED,
        note_id: Optional[str] = None,
    ) -> InterpretedQuery:
        return self.interpreter.interpret(raw, mode=mode, now=self._clock(), note_id=note_id)

    def search(
        self,
        query: SearchQuery,
        *,
        semantic: Optional[bool] = None,
        use_cache: bool = True,
        on_fuzzy: Optional[Callable[[List[SearchResult]], None]] = None,
        limit: Optional[int] = None,
    ) -> SearchResponse:
        """Run a search.

        Fuzzy results are computed (and handed to ``on_fuzzy``) before any
        semantic lookup is awaited. Starting a new search cancels the
        previous one's outstanding semantic lookup.

        Args:
            query: The query to run.
            semantic: Force (True) or skip (False) the semantic lookup. None
                attempts it for any non-empty text query when available.
            use_cache: Consult and populate the result cache.
            on_fuzzy: Receives the decorated fuzzy-only results early.
            limit: Maximum results returned.

        Returns:
            A SearchResponse. Degradable failures show up as flags, never raise.

        Raises:
            SearchError: If the note store cannot be read.
            IndexBuildError: If the snapshot cannot be indexed.
        """
        generation = self._begin_generation()
        started = time.perf_counter()
        with timed_operation("search", mode=query.mode.value) as op:
            snapshot = self._load_snapshot()
            if query.mode == SearchMode.SIMILARITY:
                response = SearchResponse(results=self._similarity_results(query, snapshot))
            elif query.mode == SearchMode.CONNECTIONS:
                response = SearchResponse(results=self._connection_results(query, snapshot))
            else:
                response = self._ranked_search(
                    query, snapshot, generation, semantic, use_cache, on_fuzzy
                )

            response.results = self._decorate(response.results, query, snapshot.graph)
            if limit is not None:
                response.results = response.results[:limit]

            response.metrics.total_notes = len(snapshot.notes)
            response.metrics.notes_with_embeddings = sum(
                1 for note in snapshot.notes if note.semantic_enabled
            )
            response.metrics.search_time_ms = (time.perf_counter() - started) * 1000

            if not self._publish(generation, query, response.results):
                response.superseded = True
            op["result_count"] = len(response.results)
            op["search_type"] = response.search_type.value
            op["outcomes"] = _outcomes(response)
        return response

    def _ranked_search(
        self,
        query: SearchQuery,
        snapshot: _Snapshot,
        generation: int,
        semantic: Optional[bool],
        use_cache: bool,
        on_fuzzy: Optional[Callable[[List[SearchResult]], None]],
    ) -> SearchResponse:
        cache_key = self._cache_key(query)
        text = "" if query.is_tag_query else query.text.strip()
        wants_semantic = self._wants_semantic(text, query, semantic)
        cache_outcome: Optional[str] = None
        if use_cache and cache_key:
            # Fuzzy-only entries cannot answer a search that runs the semantic lookup
            cached, cache_outcome = self.cache.lookup_with_outcome(
                cache_key, require_semantic=wants_semantic
            )
            if cached is not None:
                logger.debug(f"Cache {cache_outcome} for {cache_key!r}")
                response = self._cached_response(cached, query, snapshot)
                response.cache_outcome = cache_outcome
                return response

        now = self._clock()
        candidates = self._fuzzy_candidates(query, snapshot.index)
        fuzzy_results = [self._to_result(c) for c in candidates]

        future: Optional[Future] = None
        if wants_semantic:
            future = self._submit_semantic(text, snapshot.index)

        fuzzy_ranked = self.merger.finalize(fuzzy_results, now)
        response = SearchResponse(
            results=self._filtered(fuzzy_ranked, query.filters, snapshot.graph),
            cache_outcome=cache_outcome,
        )
        response.metrics.fuzzy_matches = len(fuzzy_results)
        if on_fuzzy is not None:
            on_fuzzy(self._decorate(response.results, query, snapshot.graph))

        ranked = fuzzy_ranked
        if future is not None:
            semantic_candidates = self._await_semantic(future, generation, response)
            if semantic_candidates and self._is_current(generation):
                merged = self.merger.merge(fuzzy_results, semantic_candidates, text)
                ranked = self.merger.finalize(merged, now)
                response.results = self._filtered(ranked, query.filters, snapshot.graph)
                response.search_type = SearchType.HYBRID
                response.metrics.semantic_matches = len(semantic_candidates)

        if (
            use_cache
            and cache_key
            and not response.semantic_fallback
            and self._is_current(generation)
        ):
            self.cache.insert(cache_key, ranked, semantic=future is not None)
        return response

    def _cached_response(
        self, cached: Sequence[SearchResult], query: SearchQuery, snapshot: _Snapshot
    ) -> SearchResponse:
        """Serve cached results against the current snapshot.

        Each result is re-bound to the note as it is now, so filters and
        callers see current tags, category and text.
        """
        notes = snapshot.index.notes_by_id
        current = [
            r.model_copy(update={"note": notes[r.note_id]})
            for r in cached
            if r.note_id in notes
        ]
        search_type = (
            SearchType.HYBRID
            if any(r.search_type != SearchType.FUZZY for r in current)
            else SearchType.FUZZY
        )
        if self.config.reapply_filters_on_cache_hit:
            results = self._filtered(current, query.filters, snapshot.graph)
        else:
            results = self._with_filter_tags(current, query.filters)
        return SearchResponse(results=results, search_type=search_type, from_cache=True)

    def _filtered(
        self, results: Sequence[SearchResult], filters: SearchFilters, graph: LinkGraph
    ) -> List[SearchResult]:
        return self._with_filter_tags(self._apply_filters(results, filters, graph), filters)

    @staticmethod
    def _with_filter_tags(
        results: Sequence[SearchResult], filters: SearchFilters
    ) -> List[SearchResult]:
        """Add the query's include tags a note carries to its ``matched_tags``."""
        wanted = {t.lower() for t in filters.tags}
        if not wanted:
            return list(results)
        enriched: List[SearchResult] = []
        for result in results:
            extra = [
                tag
                for tag in result.note.tags
                if tag.lower() in wanted and tag not in result.matched_tags
            ]
            if extra:
                result = result.model_copy(
                    update={"matched_tags": list(result.matched_tags) + extra}
                )
            enriched.append(result)
        return enriched

    def _fuzzy_candidates(self, query: SearchQuery, index: FuzzyIndex) -> List[FuzzyCandidate]:
        try:
            if query.is_tag_query:
                return index.search_tags(query.tag_text)
            return index.search(query.text)
        except SearchError:
            raise
        except Exception as e:
            raise SearchError(
                f"Fuzzy matching failed: {e}", query=query.text, original_error=e
            ) from e

    @staticmethod
    def _to_result(candidate: FuzzyCandidate) -> SearchResult:
        return SearchResult(
            note=candidate.note,
            score=candidate.score,
            matched_tags=list(candidate.matched_tags),
            search_type=SearchType.FUZZY,
        )


    # =========================================================================
    # Semantic lookup
    # =========================================================================

    def _wants_semantic(
        self, text: str, query: SearchQuery, semantic: Optional[bool]
    ) -> bool:
        if not text or query.is_tag_query or not self.merger.available:
            return False
        return True if semantic is None else semantic

    def _submit_semantic(self, text: str, index: FuzzyIndex) -> Future:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.semantic_workers,
                    thread_name_prefix="notelens-semantic",
                )
            future = self._executor.submit(self.merger.fetch, text, index.notes_by_id)
            self._inflight = future
        return future

    def _await_semantic(
        self, future: Future, generation: int, response: SearchResponse
    ) -> List[SemanticCandidate]:
        try:
            return future.result(timeout=self.config.semantic_timeout)
        except FutureTimeoutError:
            future.cancel()
            response.semantic_timed_out = True
            logger.warning(
                f"Semantic lookup timed out after {self.config.semantic_timeout}s; "
                "using fuzzy results"
            )
        except CancelledError:
            logger.debug(f"Semantic lookup for generation {generation} was cancelled")
            return []
        except ProviderError as e:
            logger.warning(f"Semantic search unavailable, using fuzzy results: {e}")
        except Exception as e:
            logger.warning(f"Semantic search failed, using fuzzy results: {e}")
        finally:
            with self._lock:
                if self._inflight is future:
                    self._inflight = None
        response.semantic_fallback = True
        return []

    # =========================================================================
    # Generations
    # =========================================================================

    def _begin_generation(self) -> int:
        with self._lock:
            self._generation += 1
            if self._inflight is not None:
                self._inflight.cancel()
                self._inflight = None
            return self._generation

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _publish(
        self, generation: int, query: SearchQuery, results: List[SearchResult]
    ) -> bool:
        with self._lock:
            if generation != self._generation:
                return False
            self._latest_results = list(results)
            text = query.text.strip()
            if text:
                label = f"#{text}" if query.is_tag_query and not text.startswith("#") else text
                if label in self._recent:
                    self._recent.remove(label)
                self._recent.appendleft(label)
            return True

    def cancel(self) -> None:
        """Cancel any outstanding semantic lookup and pending autocomplete."""
        self._begin_generation()
        self.resolver.cancel()

    def shutdown(self) -> None:
        """Cancel pending work and stop the worker pool."""
        self.cancel()
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        logger.info("SearchService shut down")

    # =========================================================================
    # Snapshot
    # =========================================================================

    def _load_snapshot(self) -> _Snapshot:
        try:
            raw_notes = self.note_store.list_notes(self.user_scope)
        except Exception as e:
            raise SearchError(
                f"Failed to read notes: {e}",
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e
        if raw_notes is None:
            raise IndexBuildError("Note store returned no snapshot")
        try:
            notes = list(raw_notes)
        except TypeError as e:
            raise IndexBuildError(
                "Note store returned a snapshot that is not a sequence", original_error=e
            ) from e

        index = self._index_for(notes)
        graph = LinkGraph(index.notes, self._load_links())
        return _Snapshot(notes=index.notes, index=index, graph=graph)

    def _load_links(self) -> List[LinkEdge]:
        if self.link_store is None:
            return []
        try:
            edges = self.link_store.list_links(self.user_scope) or []
        except Exception as e:
            logger.warning(f"Failed to read links, continuing without link graph: {e}")
            return []
        valid = [edge for edge in edges if isinstance(edge, LinkEdge)]
        if len(valid) != len(edges):
            logger.warning(f"Ignored {len(edges) - len(valid)} malformed link edges")
        return valid

    def _index_for(self, notes: Sequence[NoteSnapshot]) -> FuzzyIndex:
        with self._index_lock:
            index = self._index
            if (
                index is not None
                and all(isinstance(note, NoteSnapshot) for note in notes)
                and index.is_current_for(notes)
            ):
                return index
            with timed_operation("build_index", note_count=len(notes)):
                index = FuzzyIndex(notes, search_config=self.config)
            self._index = index
            return index

    def _current_index(self) -> FuzzyIndex:
        try:
            raw_notes = self.note_store.list_notes(self.user_scope)
        except Exception as e:
            raise SearchError(
                f"Failed to read notes: {e}",
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e
        return self._index_for(list(raw_notes or []))

    # =========================================================================
    # Filters and decoration
    # =========================================================================

    @staticmethod
    def _apply_filters(
        results: Sequence[SearchResult], filters: SearchFilters, graph: LinkGraph
    ) -> List[SearchResult]:
        """Keep results that pass every filter; order is preserved."""
        include = {t.lower() for t in filters.tags}
        exclude = {t.lower() for t in filters.exclude_tags}
        kept: List[SearchResult] = []
        for result in results:
            note = result.note
            note_tags = {t.lower() for t in note.tags}
            if include and not include <= note_tags:
                continue
            if exclude & note_tags:
                continue
            if filters.date_range and not filters.date_range.contains(note.created_at):
                continue
            if filters.category is not None and note.category != filters.category:
                continue
            if filters.pinned is not None and note.pinned != filters.pinned:
                continue
            if filters.has_link_filters:
                adjacency = graph.adjacency(note.id)
                if filters.connected_to and not any(
                    link.note_id == filters.connected_to for link in adjacency.outgoing
                ):
                    continue
                if filters.connected_from and not any(
                    link.note_id == filters.connected_from for link in adjacency.incoming
                ):
                    continue
                if filters.connection_count and not filters.connection_count.contains(
                    adjacency.connection_count
                ):
                    continue
                if filters.orphaned_only and adjacency.connection_count:
                    continue
            kept.append(result)
        return kept

    def _decorate(
        self, results: Sequence[SearchResult], query: SearchQuery, graph: LinkGraph
    ) -> List[SearchResult]:
        decorated = [
            result.model_copy(
                update={
                    "link_context": graph.link_context(
                        result.note_id,
                        current_note_id=query.note_id,
                        limit=self.config.link_context_limit,
                    )
                }
            )
            for result in results
        ]
        if query.filters.most_connected:
            decorated.sort(key=lambda r: -r.link_context.total_connections)
        return decorated

    @staticmethod
    def _cache_key(query: SearchQuery) -> str:
        if query.mode in (SearchMode.SIMILARITY, SearchMode.CONNECTIONS):
            return ""
        if query.is_tag_query:
            tag = query.tag_text
            return f"#{tag}" if tag else ""
        return query.text.strip()

    # =========================================================================
    # Link graph modes
    # =========================================================================

    def _similarity_results(self, query: SearchQuery, snapshot: _Snapshot) -> List[SearchResult]:
        if not query.note_id:
            return []
        similar = snapshot.graph.similar_notes(query.note_id, self.config.similar_notes_limit)
        results: List[SearchResult] = []
        for item in similar:
            note = snapshot.graph.note(item.note_id)
            if note is None:
                continue
            results.append(
                SearchResult(
                    note=note,
                    score=item.strength,
                    tier=assign_tier(item.strength),
                    semantic_similarity=item.strength,
                )
            )
        return self._apply_filters(results, query.filters, snapshot.graph)

    def _connection_results(
        self, query: SearchQuery, snapshot: _Snapshot
    ) -> List[SearchResult]:
        results: List[SearchResult] = []
        for hub in snapshot.graph.most_connected(limit=None):
            note = snapshot.graph.note(hub.note_id)
            score = hub.connection_count / CONNECTION_SCORE_SCALE
            results.append(SearchResult(note=note, score=score, tier=assign_tier(score)))
        return self._apply_filters(results, query.filters, snapshot.graph)

    @traced("find_similar")
    def find_similar(self, note_id: str, limit: Optional[int] = None) -> List[SimilarNote]:
        """Notes sharing connections with ``note_id``, strongest first.

        Raises:
            NoteNotFoundError: If the note is not in the current snapshot.
        """
        graph = self._load_snapshot().graph
        if note_id not in graph:
            raise NoteNotFoundError(note_id)
        return graph.similar_notes(note_id, limit or self.config.similar_notes_limit)

    @traced("most_connected")
    def most_connected(self, limit: int = 10) -> List[HubNote]:
        """Hub notes ranked by total connections."""
        return self._load_snapshot().graph.most_connected(limit)

    @traced("orphaned_notes")
    def orphaned_notes(self) -> List[NoteSnapshot]:
        """Notes with no incoming or outgoing links, most recently updated first."""
        orphans = self._load_snapshot().graph.orphans()
        return sorted(orphans, key=lambda n: -n.updated_at.timestamp())

    # =========================================================================
    # References and suggestions
    # =========================================================================

    def resolve_reference(
        self,
        text: str,
        cursor: Optional[int],
        callback: Callable[[str, List[NoteSuggestion]], None],
    ) -> Optional[BracketMatch]:
        """Debounced ``[[reference]]`` autocomplete; see ``BracketResolver.update``."""
        return self.resolver.update(text, cursor, callback)

    def suggest_references(self, text: str, cursor: Optional[int] = None) -> List[NoteSuggestion]:
        """Immediate suggestions for the reference at the cursor, if eligible."""
        match = self.resolver.detect(text, cursor)
        if match is None or match.complete:
            return []
        return self.resolver.suggest(match.query)

    def tag_suggestions(self, text: str, limit: int = MAX_TAG_SUGGESTIONS) -> List[str]:
        """Known tags containing ``text``; prefix matches first."""
        needle = (text or "").strip().lstrip("#").lower()
        if not needle:
            return []
        counts: Dict[str, int] = {}
        for note in self._current_index().notes:
            for tag in note.tags:
                counts[tag] = counts.get(tag, 0) + 1
        prefix = [t for t in counts if t.lower().startswith(needle)]
        contains = [t for t in counts if needle in t.lower() and t not in prefix]
        prefix.sort(key=lambda t: (-counts[t], t.lower()))
        contains.sort(key=lambda t: (-counts[t], t.lower()))
        return (prefix + contains)[:limit]

    def expand_query(self, text: str) -> List[str]:
        """The query followed by synonym variants."""
        return self.interpreter.expand(text)

    def cached_results(self) -> List[SearchResult]:
        """Results still held by the cache, usable while the stores are unreachable."""
        return sort_results(self.cache.cached_results())
