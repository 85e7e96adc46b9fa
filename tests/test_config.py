"""Tests for configuration: environment overrides, .env loading and validation."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from notelens.config import SearchConfig


class TestEnvironment:
    """SearchConfig reads NOTELENS_* variables at construction time."""

    def test_user_env_path_is_correct(self):
        """_USER_ENV points to ~/.notelens/.env."""
        from notelens.config import _USER_ENV

        assert _USER_ENV == Path.home() / ".notelens" / ".env"

    def test_env_overrides(self, monkeypatch):
        """Values from the process environment are picked up."""
        monkeypatch.setenv("NOTELENS_FUZZY_THRESHOLD", "0.5")
        monkeypatch.setenv("NOTELENS_ALWAYS_SEMANTIC", "yes")
        monkeypatch.setenv("NOTELENS_CACHE_PATH", "/tmp/notelens-cache.json")

        cfg = SearchConfig()
        assert cfg.fuzzy_threshold == 0.5
        assert cfg.always_attempt_semantic is True
        assert cfg.cache_path == Path("/tmp/notelens-cache.json")

    def test_load_dotenv_does_not_override_existing(self, tmp_path, monkeypatch):
        """Process env takes priority over a user .env file."""
        from dotenv import load_dotenv

        monkeypatch.setenv("NOTELENS_SEMANTIC_LIMIT", "7")
        user_env = tmp_path / ".env"
        user_env.write_text("NOTELENS_SEMANTIC_LIMIT=99\n")
        load_dotenv(user_env)

        assert SearchConfig().semantic_limit == 7

    def test_explicit_values_win(self, monkeypatch):
        monkeypatch.setenv("NOTELENS_RECENCY_BOOST", "2.0")
        assert SearchConfig(recency_boost=1.1).recency_boost == 1.1

    def test_field_weights(self):
        cfg = SearchConfig(title_weight=0.5, body_weight=0.2, tags_weight=0.3)
        assert cfg.field_weights == {"title": 0.5, "body": 0.2, "tags": 0.3}


class TestValidation:
    """Ranking settings the pipeline cannot honour are rejected."""

    @pytest.mark.parametrize(
        "overrides",
        [
            {"title_weight": -0.1},
            {"fuzzy_threshold": 1.5},
            {"semantic_weight": 0.7, "fuzzy_weight": 0.4},
            {"cache_max_entries": 0},
            {"semantic_limit": 0},
            {"semantic_timeout": 0},
            {"debounce_seconds": -1},
        ],
    )
    def test_invalid(self, overrides):
        with pytest.raises(ValidationError):
            SearchConfig(**overrides)

    def test_short_ttl_only_warns(self, caplog):
        with caplog.at_level("WARNING", logger="notelens.config"):
            cfg = SearchConfig(cache_ttl_seconds=0.5)
        assert cfg.cache_ttl_seconds == 0.5
        assert "cache hits will be rare" in caplog.text
