"""Tests for the observability module.

Tests for metrics collection, timing, tracing and logging configuration.
"""
import json
import logging
import time
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

import pytest

from notelens.observability import (
    ROOT_LOGGER_NAME,
    MetricsCollector,
    configure_logging,
    timed_operation,
    traced,
)


@pytest.fixture
def collector():
    """A fresh collector patched in as the global one."""
    fresh = MetricsCollector()
    with patch("notelens.observability.metrics", fresh):
        yield fresh


@pytest.fixture
def clean_logger():
    """Remove handlers added to the notelens logger by a test."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    before = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    def test_record_successful_operation(self):
        """Test recording a successful operation."""
        metrics = MetricsCollector()
        metrics.record_operation("search", 100.0, True)

        data = metrics.get_metrics()
        assert data["search"]["count"] == 1
        assert data["search"]["success_count"] == 1
        assert data["search"]["error_count"] == 0
        assert data["search"]["avg_duration_ms"] == 100.0

    def test_record_failed_operation(self):
        """Test recording a failed operation with error."""
        metrics = MetricsCollector()
        metrics.record_operation("search", 50.0, False, "store offline")

        data = metrics.get_metrics()["search"]
        assert data["error_count"] == 1
        assert data["last_error"] == "store offline"
        assert data["last_error_time"] is not None

    def test_multiple_operations_aggregated(self):
        """Test that multiple operations are aggregated correctly."""
        metrics = MetricsCollector()
        for duration in (100.0, 200.0):
            metrics.record_operation("find_similar", duration, True)
        metrics.record_operation("find_similar", 300.0, False, "Error")

        data = metrics.get_metrics()["find_similar"]
        assert data["count"] == 3
        assert data["avg_duration_ms"] == 200.0
        assert data["min_duration_ms"] == 100.0
        assert data["max_duration_ms"] == 300.0

    def test_get_summary(self):
        """Test getting metrics summary."""
        metrics = MetricsCollector()
        metrics.record_operation("search", 100.0, True)
        metrics.record_operation("build_index", 200.0, False, "Error")

        summary = metrics.get_summary()
        assert summary["total_operations"] == 2
        assert summary["total_errors"] == 1
        assert summary["overall_success_rate"] == 0.5
        assert set(summary["operations_tracked"]) == {"search", "build_index"}

    def test_empty_summary(self):
        """An idle collector reports full success."""
        assert MetricsCollector().get_summary()["overall_success_rate"] == 1.0

    def test_outcomes_are_tallied(self):
        """Outcome labels accumulate per operation."""
        metrics = MetricsCollector()
        metrics.record_operation("search", 5.0, True, outcomes=["cache_miss", "hybrid"])
        metrics.record_operation("search", 1.0, True, outcomes=["cache_hit"])
        metrics.record_operation("search", 1.0, True, outcomes=["cache_hit"])

        assert metrics.get_metrics()["search"]["outcomes"] == {
            "cache_miss": 1,
            "hybrid": 1,
            "cache_hit": 2,
        }

    def test_save_metrics(self, tmp_path):
        """Summary and operations are written as JSON."""
        path = tmp_path / "metrics" / "metrics.json"
        metrics = MetricsCollector()
        metrics.record_operation("search", 10.0, True, outcomes=["cache_miss"])

        assert metrics.save_metrics(path)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["summary"]["total_operations"] == 1
        assert data["operations"]["search"]["outcomes"] == {"cache_miss": 1}
        assert not path.with_suffix(".json.tmp").exists()

    def test_save_failure_returns_false(self, tmp_path):
        """An unwritable target is logged, not raised."""
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        assert not MetricsCollector().save_metrics(blocker / "metrics.json")


class TestTimedOperation:
    """Tests for timed_operation context manager."""

    def test_records_success(self, collector):
        """Successful operations are timed and recorded."""
        with timed_operation("search", mode="combined") as op:
            time.sleep(0.01)
            op["result_count"] = 2

        assert op["duration_ms"] >= 10
        data = collector.get_metrics()["search"]
        assert data["success_count"] == 1

    def test_outcomes_are_recorded_not_logged(self, collector, caplog):
        """An ``outcomes`` entry reaches the collector."""
        with caplog.at_level(logging.DEBUG, logger="notelens.observability"):
            with timed_operation("search") as op:
                op["outcomes"] = ["semantic_timeout"]

        assert collector.get_metrics()["search"]["outcomes"] == {"semantic_timeout": 1}
        assert "outcomes=" not in caplog.text

    def test_records_failure(self, collector):
        """Failed operations are recorded and the error propagates."""
        with pytest.raises(ValueError):
            with timed_operation("build_index"):
                raise ValueError("bad snapshot")

        data = collector.get_metrics()["build_index"]
        assert data["error_count"] == 1
        assert "bad snapshot" in data["last_error"]


class TestTraced:
    """Tests for the traced decorator."""

    def test_records_under_given_name(self, collector):
        @traced("lookup")
        def lookup(note_id):
            return [note_id]

        assert lookup(note_id="1") == ["1"]
        assert collector.get_metrics()["lookup"]["count"] == 1

    def test_defaults_to_function_name(self, collector):
        @traced()
        def orphaned():
            return None

        orphaned()
        assert "orphaned" in collector.get_metrics()

    def test_service_operations_are_traced(self, collector, search_service):
        search_service.most_connected(limit=5)
        search_service.orphaned_notes()
        recorded = collector.get_metrics()
        assert recorded["most_connected"]["count"] == 1
        assert recorded["orphaned_notes"]["count"] == 1
        assert "build_index" in recorded

    def test_search_outcomes_are_recorded(self, collector, search_service):
        """Searches report how the cache answered them."""
        search_service.search_text("alpha")
        search_service.search_text("alpha")
        search_service.search_text("alpha kick")
        outcomes = collector.get_metrics()["search"]["outcomes"]
        assert outcomes == {"cache_miss": 1, "cache_hit": 1, "cache_partial": 1}


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_creates_directory_and_file(self, tmp_path, clean_logger):
        """The log directory is created and returned."""
        log_dir = tmp_path / "logs"
        result = configure_logging(log_dir=log_dir, console=False)

        assert result == log_dir
        assert (log_dir / "notelens.log").exists()

    def test_sets_level(self, tmp_path, clean_logger):
        """The notelens logger gets the requested level."""
        configure_logging(log_dir=tmp_path, level=logging.DEBUG, console=False)
        assert clean_logger.level == logging.DEBUG

    def test_reconfigure_replaces_file_handler(self, tmp_path, clean_logger):
        """Calling twice leaves a single rotating file handler."""
        configure_logging(log_dir=tmp_path / "a", console=False)
        configure_logging(log_dir=tmp_path / "b", console=False)
        handlers = [h for h in clean_logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(handlers) == 1
        assert handlers[0].baseFilename.endswith(str(tmp_path / "b" / "notelens.log"))
