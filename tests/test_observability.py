"""Tests for the observability module.

Tests for metrics collection, operation timing, tracing and logging setup.
"""
import logging
import time
from logging.handlers import RotatingFileHandler
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from zettelhub.config import config
from zettelhub.observability import (
    ROOT_LOGGER_NAME,
    MetricsCollector,
    configure_logging,
    timed_operation,
    traced,
)


@pytest.fixture
def collector():
    """A fresh collector patched in as the global one."""
    collector = MetricsCollector()
    with patch("zettelhub.observability.metrics", collector):
        yield collector


@pytest.fixture
def restore_logger():
    """Remove handlers added to the zettelhub logger during a test."""
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield root_logger
    for handler in root_logger.handlers:
        if handler not in handlers:
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.setLevel(level)


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_record_successful_operation(self):
        """Test recording a successful operation."""
        metrics = MetricsCollector()
        metrics.record_operation("index_note", 100.0, True)

        result = metrics.get_metrics()
        assert result["index_note"]["count"] == 1
        assert result["index_note"]["success_count"] == 1
        assert result["index_note"]["error_count"] == 0
        assert result["index_note"]["avg_duration_ms"] == 100.0

    def test_record_failed_operation(self):
        """Test recording a failed operation with error."""
        metrics = MetricsCollector()
        metrics.record_operation("query", 50.0, False, "bad query")

        result = metrics.get_metrics()
        assert result["query"]["error_count"] == 1
        assert result["query"]["last_error"] == "bad query"
        assert result["query"]["last_error_time"] is not None

    def test_multiple_operations_aggregated(self):
        """Test that multiple operations are aggregated correctly."""
        metrics = MetricsCollector()
        metrics.record_operation("op", 100.0, True)
        metrics.record_operation("op", 200.0, True)
        metrics.record_operation("op", 300.0, False, "Error")

        result = metrics.get_metrics()["op"]
        assert result["count"] == 3
        assert result["success_count"] == 2
        assert result["avg_duration_ms"] == 200.0
        assert result["max_duration_ms"] == 300.0

    def test_reset(self):
        metrics = MetricsCollector()
        metrics.record_operation("op", 1.0, True)
        metrics.reset()
        assert metrics.get_metrics() == {}


class TestTimedOperation:
    """Tests for timed_operation context manager."""

    def test_records_success(self, collector):
        """Test that successful operations are timed and recorded."""
        with timed_operation("reindex") as op:
            time.sleep(0.01)
            op["indexed"] = 3
            assert len(op["correlation_id"]) == 8

        result = collector.get_metrics()["reindex"]
        assert result["success_count"] == 1
        assert result["avg_duration_ms"] >= 10

    def test_records_failure_and_reraises(self, collector):
        """Test that failed operations are recorded with error."""
        with pytest.raises(ValueError):
            with timed_operation("reindex"):
                raise ValueError("Test error")

        result = collector.get_metrics()["reindex"]
        assert result["error_count"] == 1
        assert result["last_error"] == "Test error"


class TestTraced:
    """Tests for the traced decorator."""

    def test_records_under_given_name(self, collector):
        class Service:
            @traced("index_note")
            def index(self, note):
                return ["a", "b"]

        assert Service().index(SimpleNamespace(id="aaaa1111")) == ["a", "b"]
        assert collector.get_metrics()["index_note"]["success_count"] == 1

    def test_defaults_to_function_name(self, collector):
        @traced()
        def remove(ids):
            return None

        remove(["x"])
        assert "remove" in collector.get_metrics()

    def test_note_id_in_log_context(self, collector, caplog):
        class Service:
            @traced()
            def index_note(self, note):
                return None

        caplog.set_level(logging.DEBUG, logger="zettelhub.observability")
        Service().index_note(note=SimpleNamespace(id="cafe0123"))

        assert any("note_id=cafe0123" in r.getMessage() for r in caplog.records)


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_creates_directory_and_file(self, tmp_path, restore_logger):
        """Test that configure_logging creates the log directory and file."""
        log_dir = tmp_path / "logs"

        result = configure_logging(log_dir=log_dir)

        assert result == log_dir
        assert (log_dir / "zettelhub.log").exists()

    def test_sets_level(self, tmp_path, restore_logger):
        configure_logging(log_dir=tmp_path, level=logging.DEBUG)
        assert restore_logger.level == logging.DEBUG

    def test_no_duplicate_handlers(self, tmp_path, restore_logger):
        """Configuring twice with the same directory adds one file handler."""
        configure_logging(log_dir=tmp_path)
        configure_logging(log_dir=tmp_path)

        file_handlers = [
            h for h in restore_logger.handlers
            if isinstance(h, RotatingFileHandler)
            and h.baseFilename == str((tmp_path / "zettelhub.log").resolve())
        ]
        assert len(file_handlers) == 1

    def test_defaults_from_config(self, tmp_path, restore_logger, monkeypatch):
        """Directory and level come from config when not passed."""
        monkeypatch.setattr(config, "log_dir", tmp_path / "configured")
        monkeypatch.setattr(config, "log_level", "WARNING")

        result = configure_logging()

        assert result == tmp_path / "configured"
        assert (tmp_path / "configured" / "zettelhub.log").exists()
        assert restore_logger.level == logging.WARNING
