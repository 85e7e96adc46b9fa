"""Tests for [[reference]] detection, debouncing and suggestion navigation."""
import pytest

from notelens.services.bracket_resolver import (
    BracketResolver,
    Debouncer,
    NoteSuggestion,
    SuggestionCursor,
    detect_reference,
)
from notelens.services.fuzzy_index import FuzzyIndex


@pytest.fixture
def resolver(alpha_notes, search_config, timer_factory):
    index = FuzzyIndex(alpha_notes, search_config=search_config)
    return BracketResolver(
        lambda: index, timer_factory=timer_factory, search_config=search_config
    )


class TestDetect:
    def test_open_reference_at_end(self):
        match = detect_reference("See [[alp")
        assert match.query == "alp"
        assert match.start == 4
        assert match.end == 9
        assert match.eligible

    def test_cursor_inside_completed_reference(self):
        text = "See [[alpha]] now"
        match = detect_reference(text, cursor=text.index("]]"))
        assert match.query == "alpha"
        assert match.complete
        assert not match.eligible

    def test_closed_before_cursor(self):
        assert detect_reference("See [[alpha]] and more") is None

    def test_no_marker(self):
        assert detect_reference("plain text") is None
        assert detect_reference("") is None

    def test_marker_on_previous_line_is_ignored(self):
        assert detect_reference("[[alpha\nnext line") is None

    def test_nearest_marker_wins(self):
        match = detect_reference("[[one]] then [[two")
        assert match.query == "two"

    def test_closing_marker_after_next_open_does_not_complete(self):
        text = "[[al [[beta]]"
        match = detect_reference(text, cursor=4)
        assert match.query == "al"
        assert not match.complete

    def test_cursor_is_clamped(self):
        assert detect_reference("[[abc", cursor=99).query == "abc"


class TestDebouncer:
    def test_only_last_call_runs(self, timer_factory):
        calls = []
        debouncer = Debouncer(0.3, timer_factory)
        debouncer.schedule(calls.append, "a")
        debouncer.schedule(calls.append, "ab")
        assert debouncer.pending
        assert timer_factory.fire_all() == 1
        assert calls == ["ab"]
        assert not debouncer.pending

    def test_timers_are_daemons_with_delay(self, timer_factory):
        Debouncer(0.3, timer_factory).schedule(lambda: None)
        assert timer_factory.timers[0].daemon
        assert timer_factory.timers[0].interval == 0.3

    def test_cancel(self, timer_factory):
        calls = []
        debouncer = Debouncer(0.3, timer_factory)
        debouncer.schedule(calls.append, "a")
        debouncer.cancel()
        assert timer_factory.fire_all() == 0
        assert calls == []

    def test_replaced_timer_firing_late_is_ignored(self, timer_factory):
        calls = []
        debouncer = Debouncer(0.3, timer_factory)
        debouncer.schedule(calls.append, "a")
        first = timer_factory.timers[0]
        debouncer.schedule(calls.append, "ab")
        # A real timer can fire after cancel() lost the race
        first.function()
        assert calls == []


class TestResolver:
    def test_typing_dispatches_once(self, resolver, timer_factory):
        received = []
        for text in ("See [[a", "See [[al", "See [[alp"):
            resolver.update(text, None, lambda q, s: received.append((q, s)))
        assert timer_factory.fire_all() == 1
        assert len(received) == 1
        query, suggestions = received[0]
        assert query == "alp"
        assert {s.note_id for s in suggestions} == {"1", "2"}

    def test_abc_dispatches_exactly_once(self, resolver, timer_factory):
        dispatched = []
        text = ""
        for char in "[[abc":
            text += char
            resolver.update(text, len(text), lambda q, s: dispatched.append(q))
        timer_factory.fire_all()
        assert dispatched == ["abc"]

    def test_short_query_is_not_scheduled(self, resolver, timer_factory):
        resolver.update("See [[a", None, lambda q, s: None)
        assert timer_factory.pending == []
        assert not resolver.pending

    def test_leaving_reference_cancels(self, resolver, timer_factory):
        resolver.update("See [[alp", None, lambda q, s: None)
        resolver.update("See [[alp]]", None, lambda q, s: None)
        assert timer_factory.pending == []

    def test_suggestion_fields(self, resolver):
        suggestions = resolver.suggest("alpha test")
        top = suggestions[0]
        assert isinstance(top, NoteSuggestion)
        assert top.note_id == "2"
        assert top.slug == "alpha-testing-notes"
        assert top.excerpt == "Findings from the testing round."

    def test_provider_failure_yields_empty_suggestions(self, timer_factory, search_config):
        def broken():
            raise RuntimeError("index unavailable")

        resolver = BracketResolver(broken, timer_factory=timer_factory, search_config=search_config)
        received = []
        resolver.update("[[alpha", None, lambda q, s: received.append(s))
        timer_factory.fire_all()
        assert received == [[]]


def _suggestion(note_id):
    return NoteSuggestion(note_id=note_id, title=note_id, slug=note_id, excerpt="", score=1.0)


class TestSuggestionCursor:
    def test_wraps_around(self):
        cursor = SuggestionCursor([_suggestion("a"), _suggestion("b"), _suggestion("c")])
        assert cursor.current.note_id == "a"
        assert cursor.previous().note_id == "c"
        assert cursor.next().note_id == "a"
        cursor.next()
        cursor.next()
        assert cursor.next().note_id == "a"

    def test_dismiss(self):
        cursor = SuggestionCursor([_suggestion("a")])
        cursor.dismiss()
        assert not cursor.active
        assert cursor.current is None
        assert cursor.next() is None

    def test_reset(self):
        cursor = SuggestionCursor([_suggestion("a"), _suggestion("b")])
        cursor.next()
        cursor.dismiss()
        cursor.reset([_suggestion("x")])
        assert cursor.active
        assert cursor.current.note_id == "x"

    def test_empty(self):
        assert SuggestionCursor().current is None
