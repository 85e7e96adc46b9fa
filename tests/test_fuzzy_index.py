"""Tests for the weighted fuzzy index."""
import pytest

from notelens.exceptions import IndexBuildError
from notelens.services.fuzzy_index import FuzzyIndex
from tests.fakes import make_note


@pytest.fixture
def index(alpha_notes, search_config):
    return FuzzyIndex(alpha_notes, search_config=search_config)


class TestSearch:
    def test_alpha_matches_both_notes(self, index):
        results = index.search("alpha")
        assert [r.note.id for r in results] == ["1", "2"]
        assert all(r.score > 0 for r in results)
        assert all(r.matched_tags == [] for r in results)

    def test_unrelated_text_matches_nothing(self, index):
        assert index.search("zzzz qqqq") == []

    def test_typo_tolerance(self, index):
        results = index.search("kickof")
        assert [r.note.id for r in results] == ["1"]

    def test_empty_text_browses_all(self, index):
        results = index.search("   ")
        assert [r.note.id for r in results] == ["1", "2"]
        assert all(r.score == 1.0 for r in results)

    def test_matched_tags_contain_query(self, search_config):
        notes = [make_note("1", "Weekly sync", tags=["meeting", "work"])]
        results = FuzzyIndex(notes, search_config=search_config).search("meeting")
        assert results[0].matched_tags == ["meeting"]

    def test_scores_are_bounded_and_ordered(self, search_config):
        notes = [
            make_note("1", "Gardening basics"),
            make_note("2", "Advanced gardening techniques for small balconies"),
            make_note("3", "Garden"),
        ]
        results = FuzzyIndex(notes, search_config=search_config).search("gardening")
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)
        assert all(0.0 <= s <= 1.0 for s in scores)

    def test_ties_prefer_recent_updates(self, search_config):
        notes = [
            make_note("old", "Alpha", days_old=50),
            make_note("new", "Alpha", days_old=5),
        ]
        results = FuzzyIndex(notes, search_config=search_config).search("alpha")
        assert [r.note.id for r in results] == ["new", "old"]


class TestTagSearch:
    def test_tag_membership(self, index):
        results = index.search_tags("work")
        assert [r.note.id for r in results] == ["1"]
        assert results[0].matched_tags == ["work"]
        assert results[0].score == 1.0

    def test_tag_substring(self, index):
        results = index.search_tags("#res")
        assert [r.note.id for r in results] == ["2"]
        assert results[0].matched_tags == ["research"]

    def test_empty_tag_query_matches_all(self, index):
        assert len(index.search_tags("")) == 2


class TestSuggest:
    def test_title_weighted_suggestions(self, index):
        results = index.suggest("alpha test", limit=8)
        assert results[0].note.id == "2"

    def test_limit(self, search_config):
        notes = [make_note(str(i), f"Alpha {i}") for i in range(12)]
        index = FuzzyIndex(notes, search_config=search_config)
        assert len(index.suggest("alpha", limit=8)) == 8

    def test_blank_query(self, index):
        assert index.suggest("  ") == []


class TestBuild:
    def test_non_note_entry_raises(self, search_config):
        with pytest.raises(IndexBuildError):
            FuzzyIndex([{"id": "1", "title": "dict"}], search_config=search_config)

    def test_none_snapshot_raises(self, search_config):
        with pytest.raises(IndexBuildError):
            FuzzyIndex(None, search_config=search_config)

    def test_unknown_field_weight_raises(self, alpha_notes):
        with pytest.raises(IndexBuildError):
            FuzzyIndex(alpha_notes, weights={"summary": 1.0})

    def test_duplicate_ids_keep_newest(self, search_config):
        notes = [
            make_note("1", "Old title", days_old=10),
            make_note("1", "New title", days_old=1),
        ]
        index = FuzzyIndex(notes, search_config=search_config)
        assert len(index) == 1
        assert index.notes[0].title == "New title"

    def test_fingerprint_tracks_updates(self, alpha_notes, search_config):
        index = FuzzyIndex(alpha_notes, search_config=search_config)
        assert index.is_current_for(list(alpha_notes))
        edited = alpha_notes[0].model_copy(
            update={"updated_at": alpha_notes[0].updated_at.replace(year=2025)}
        )
        assert not index.is_current_for([edited, alpha_notes[1]])
        assert not index.is_current_for(alpha_notes[:1])

    def test_does_not_mutate_input(self, alpha_notes, search_config):
        before = list(alpha_notes)
        FuzzyIndex(alpha_notes, search_config=search_config).search("alpha")
        assert alpha_notes == before
