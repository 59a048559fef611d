"""
Unit tests for the metrics module.
"""

import json
import os
import time
from tempfile import TemporaryDirectory
from unittest.mock import MagicMock, patch

import pytest

from core.metrics import MetricsCollector


@pytest.fixture
def mock_logger():
    """Fixture to provide a mock structlog logger."""
    logger = MagicMock()
    logger.info.return_value = None
    return logger


@pytest.fixture
def metrics_collector(mock_logger):
    """Fixture to provide a MetricsCollector instance with mock logger."""
    with patch("structlog.get_logger", return_value=mock_logger):
        collector = MetricsCollector(config={"max_attempt_samples": 3})
        # Set a fixed session_id for testing
        collector.session_id = "test_session"
        collector.start_time = time.time() - 60  # Started 60 seconds ago
        return collector


class TestMetricsCollector:
    """Tests for the MetricsCollector class."""

    def test_record_recovery_success(self, metrics_collector):
        """Test recording a successful recovery."""
        metrics_collector.record_recovery("css=#save", "success", 2)

        metrics = metrics_collector.get_locator_metrics("css=#save")
        assert metrics["recoveries"] == 1
        assert metrics["recovery_failures"] == 0
        assert metrics["recovery_success_rate"] == 100.0
        assert metrics["avg_attempts"] == 2
        assert metrics["max_attempts"] == 2

    def test_record_recovery_failure(self, metrics_collector):
        """Test the success rate once a recovery failed."""
        metrics_collector.record_recovery("css=#save", "success", 1)
        metrics_collector.record_recovery("css=#save", "failure", 5)

        metrics = metrics_collector.get_locator_metrics("css=#save")
        assert metrics["recovery_failures"] == 1
        assert metrics["recovery_success_rate"] == 50.0
        assert metrics["avg_attempts"] == 3.0
        assert metrics["max_attempts"] == 5

    def test_attempt_samples_are_limited(self, metrics_collector):
        """Test that only the most recent attempt counts are kept."""
        for attempts in (1, 2, 3, 4, 5):
            metrics_collector.record_recovery("css=li", "success", attempts)

        assert metrics_collector.locator_metrics["css=li"]["attempts"] == [3, 4, 5]
        assert metrics_collector.get_locator_metrics("css=li")["recoveries"] == 5

    def test_record_click_workaround(self, metrics_collector):
        """Test that click workarounds are counted per locator and globally."""
        metrics_collector.record_click_workaround("css=#submit", "javascript_fallback")
        metrics_collector.record_click_workaround("css=#submit", "javascript_fallback")
        metrics_collector.record_click_workaround("css=#cancel", "javascript_fallback")

        assert metrics_collector.get_locator_metrics("css=#submit")["click_workarounds"] == {"javascript_fallback": 2}
        assert metrics_collector.workarounds == {"javascript_fallback": 3}

    def test_record_test(self, metrics_collector):
        """Test recording test outcomes."""
        metrics_collector.record_test("test01", "passed", 120.0)
        metrics_collector.record_test("test02", "failed", 80.0, category="failure")
        metrics_collector.record_test("test03", "skipped", 0.0)

        summary = metrics_collector.test_metrics["tests"]
        assert summary["total"] == 3
        assert (summary["passed"], summary["failed"], summary["skipped"]) == (1, 1, 1)
        assert summary["total_duration_ms"] == 200.0
        assert summary["categories"] == {"failure": 1}
        assert metrics_collector.test_metrics["test02"]["category"] == "failure"

    def test_get_all_locator_metrics(self, metrics_collector):
        """Test getting the metrics of every locator."""
        metrics_collector.record_recovery("css=a", "success", 1)
        metrics_collector.record_recovery("css=b", "failure", 5)

        assert set(metrics_collector.get_locator_metrics()) == {"css=a", "css=b"}
        assert metrics_collector.get_locator_metrics("css=unknown") == metrics_collector.get_locator_metrics()

    def test_get_aggregated_metrics(self, metrics_collector):
        """Test getting aggregated metrics."""
        metrics_collector.record_recovery("css=a", "success", 1)
        metrics_collector.record_click_workaround("css=a", "javascript_fallback")

        aggregated = metrics_collector.get_aggregated_metrics()

        assert aggregated["session_id"] == "test_session"
        assert aggregated["duration_seconds"] >= 60
        assert "css=a" in aggregated["locators"]
        assert aggregated["click_workarounds"] == {"javascript_fallback": 1}
        assert aggregated["tests"]["total"] == 0

    def test_export_metrics_to_json(self, metrics_collector, mock_logger):
        """Test exporting metrics to a JSON file."""
        metrics_collector.record_recovery("css=a", "success", 1)
        metrics_collector.record_test("test01", "passed", 10.0)

        with TemporaryDirectory() as temp_dir:
            file_path = os.path.join(temp_dir, "nested", "metrics.json")
            exported_path = metrics_collector.export_metrics_to_json(file_path)

            assert exported_path == file_path
            with open(file_path, "r") as f:
                data = json.load(f)

        assert data["aggregated_metrics"]["session_id"] == "test_session"
        assert data["aggregated_metrics"]["tests"]["passed"] == 1
        mock_logger.info.assert_called_with("metrics_exported", file_path=file_path)

    def test_export_uses_configured_path(self, app_config, tmp_path):
        """Test the default export path comes from the logging configuration."""
        target = tmp_path / "metrics.json"
        app_config.logging.metrics_file_path = target
        collector = MetricsCollector(app_config)

        assert collector.export_metrics_to_json() == str(target)
        assert target.exists()
