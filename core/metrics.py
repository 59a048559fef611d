"""
Metrics collection and aggregation for scenario executions.

This module provides functionality for collecting, aggregating, and exporting
metrics about element recoveries, click workarounds and test outcomes.
"""

import json
import os
import threading
import time
from typing import Any, Dict, Optional

import structlog

from config import AppConfig


class MetricsCollector:
    """
    Collects and aggregates metrics of a scenario execution.

    This class tracks how often element handles had to recover, how many
    attempts the recoveries took, which click workarounds were needed and
    how tests ended. It provides both real-time access to metrics and export
    to JSON files.
    """

    def __init__(self, app_config: Optional[AppConfig] = None, config: Optional[Dict[str, Any]] = None):
        """
        Initialize a new metrics collector.

        Args:
            app_config: Application configuration, used for the default export path
            config: Optional configuration dictionary for metrics collection
        """
        self.app_config = app_config
        self.config = config or {}
        self.logger = structlog.get_logger(__name__)
        self.locator_metrics: Dict[str, Dict[str, Any]] = {}
        self.test_metrics: Dict[str, Dict[str, Any]] = {}
        self.workarounds: Dict[str, int] = {}
        self.lock = threading.RLock()  # Scenarios may share one collector
        self.session_id = f"session_{int(time.time())}"
        self.start_time = time.time()

    def _locator_entry(self, locator: str) -> Dict[str, Any]:
        if locator not in self.locator_metrics:
            self.locator_metrics[locator] = {
                "recoveries": 0,
                "recovery_failures": 0,
                "attempts": [],  # For average calculation
                "click_workarounds": {},
                "last_event_time": time.time(),
            }
        return self.locator_metrics[locator]

    def record_recovery(self, locator: str, status: str, attempts: int) -> None:
        """
        Record the end of an element recovery.

        Args:
            locator: Full locator of the recovered element
            status: "success" or "failure"
            attempts: Number of recovery attempts made
        """
        with self.lock:
            metrics = self._locator_entry(locator)
            metrics["last_event_time"] = time.time()
            if status == "success":
                metrics["recoveries"] += 1
            elif status == "failure":
                metrics["recovery_failures"] += 1
            metrics["attempts"].append(attempts)

            # Limit size of attempts array to prevent memory issues
            max_samples = self.config.get("max_attempt_samples", 100)
            if len(metrics["attempts"]) > max_samples:
                metrics["attempts"] = metrics["attempts"][-max_samples:]

    def record_click_workaround(self, locator: str, state: str) -> None:
        """
        Record a click that only succeeded thanks to a workaround.

        Args:
            locator: Full locator of the clicked element
            state: Workaround state the click succeeded in
        """
        with self.lock:
            metrics = self._locator_entry(locator)
            metrics["last_event_time"] = time.time()
            metrics["click_workarounds"][state] = metrics["click_workarounds"].get(state, 0) + 1
            self.workarounds[state] = self.workarounds.get(state, 0) + 1

    def record_test(self, name: str, status: str, duration_ms: float, category: Optional[str] = None) -> None:
        """
        Record metrics for a test execution.

        Args:
            name: Name of the test
            status: Status of the test ("passed", "failed", "skipped")
            duration_ms: Duration of the test, retries included, in milliseconds
            category: Failure category of the last failure, if any
        """
        with self.lock:
            if "tests" not in self.test_metrics:
                self.test_metrics["tests"] = {
                    "total": 0,
                    "passed": 0,
                    "failed": 0,
                    "skipped": 0,
                    "total_duration_ms": 0,
                    "categories": {},
                }
            summary = self.test_metrics["tests"]
            summary["total"] += 1
            summary["total_duration_ms"] += duration_ms
            if status in ("passed", "failed", "skipped"):
                summary[status] += 1
            if category:
                summary["categories"][category] = summary["categories"].get(category, 0) + 1

            self.test_metrics[name] = {
                "status": status,
                "duration_ms": duration_ms,
                "category": category,
                "timestamp": time.time(),
            }

    def get_locator_metrics(self, locator: Optional[str] = None) -> Dict[str, Any]:
        """
        Get metrics for a specific locator or all locators.

        Args:
            locator: Locator to get metrics for, or None for all

        Returns:
            Dictionary with locator metrics
        """
        with self.lock:
            if locator and locator in self.locator_metrics:
                return self._calculate_derived_metrics(locator)
            return {name: self._calculate_derived_metrics(name) for name in self.locator_metrics}

    def _calculate_derived_metrics(self, locator: str) -> Dict[str, Any]:
        metrics = self.locator_metrics[locator]
        attempts = metrics["attempts"]
        total = metrics["recoveries"] + metrics["recovery_failures"]
        return {
            "recoveries": metrics["recoveries"],
            "recovery_failures": metrics["recovery_failures"],
            "recovery_success_rate": round(metrics["recoveries"] / max(total, 1) * 100, 2),
            "avg_attempts": round(sum(attempts) / len(attempts), 2) if attempts else None,
            "max_attempts": max(attempts) if attempts else None,
            "click_workarounds": dict(metrics["click_workarounds"]),
            "last_event_time": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(metrics["last_event_time"])),
        }

    def get_aggregated_metrics(self) -> Dict[str, Any]:
        """
        Get aggregated metrics for the current session.

        Returns:
            Dictionary with all aggregated metrics
        """
        with self.lock:
            return {
                "session_id": self.session_id,
                "start_time": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.start_time)),
                "current_time": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time())),
                "duration_seconds": int(time.time() - self.start_time),
                "locators": self.get_locator_metrics(),
                "click_workarounds": dict(self.workarounds),
                "tests": self.test_metrics.get("tests", {
                    "total": 0,
                    "passed": 0,
                    "failed": 0,
                    "skipped": 0,
                }),
            }

    def export_metrics_to_json(self, file_path: Optional[str] = None) -> str:
        """
        Export metrics to a JSON file.

        Args:
            file_path: Path to save the JSON file, defaults to the configured metrics file

        Returns:
            Path to the exported metrics file
        """
        if not file_path:
            app_config = self.app_config or AppConfig()
            file_path = str(app_config.logging.metrics_file_path)

        # Ensure directory exists
        directory = os.path.dirname(file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(file_path, "w") as f:
            json.dump({"aggregated_metrics": self.get_aggregated_metrics()}, f, indent=2)

        self.logger.info("metrics_exported", file_path=file_path)
        return file_path
