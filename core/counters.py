"""
Failure counters and thresholds of one scenario execution.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import structlog

from config import ThresholdsConfig
from diagnostics import Severity


class FailureCategory(str, Enum):
    """Classification bucket assigned by the orchestrator to a failure."""

    ALERT = "alert"
    SESSION_UNREACHABLE = "session_unreachable"
    BROWSER_ERROR = "browser_error"
    FAILURE = "failure"
    RETRYABLE = "retryable"
    RETRYABLE_FAILURE = "retryable_failure"
    MULTIPLE_ELEMENTS = "multiple_elements"
    FATAL = "fatal"
    SKIPPED = "skipped"
    UNCLASSIFIED = "unclassified"


# Categories bounded by a threshold, with the matching ThresholdsConfig field
THRESHOLD_FIELDS = {
    FailureCategory.ALERT: "alerts",
    FailureCategory.BROWSER_ERROR: "browser_errors",
    FailureCategory.FAILURE: "failures",
    FailureCategory.RETRYABLE: "retriable_errors",
    FailureCategory.RETRYABLE_FAILURE: "retriable_failures",
    FailureCategory.MULTIPLE_ELEMENTS: "multiples",
}

# Categories whose counter starts again from zero for each test
PER_TEST_CATEGORIES = (FailureCategory.RETRYABLE,)


@dataclass
class CategoryCounter:
    threshold: int
    count: int = 0

    def increment(self) -> int:
        self.count += 1
        return self.count

    @property
    def exceeded(self) -> bool:
        return self.count > self.threshold

    @property
    def severity(self) -> Severity:
        """Snapshot severity matching how close the counter is to its threshold."""
        if self.exceeded:
            return Severity.FAILURE
        if self.count >= self.threshold:
            return Severity.WARNING
        return Severity.INFO


class ExecutionCounters:
    """
    Per-category failure counters plus test tallies.

    Only the orchestrator mutates the counters. They live for one scenario
    execution, except the per-test categories which :meth:`start_test` resets.
    """

    def __init__(self, thresholds: Optional[ThresholdsConfig] = None):
        self.thresholds = thresholds or ThresholdsConfig()
        self.logger = structlog.get_logger(__name__)
        self.reset()

    def reset(self) -> None:
        self._counters: Dict[FailureCategory, CategoryCounter] = {
            category: CategoryCounter(threshold=getattr(self.thresholds, field))
            for category, field in THRESHOLD_FIELDS.items()
        }
        self.defined_tests = 0
        self.executed_tests = 0
        self.passed_tests = 0
        self.failed_tests = 0
        self.skipped_tests = 0

    def start_test(self) -> None:
        for category in PER_TEST_CATEGORIES:
            self._counters[category].count = 0

    def counter(self, category: FailureCategory) -> CategoryCounter:
        try:
            return self._counters[category]
        except KeyError:
            raise ValueError(f"Category '{category.value}' has no threshold") from None

    def count(self, category: FailureCategory) -> int:
        return self.counter(category).count

    def threshold(self, category: FailureCategory) -> int:
        return self.counter(category).threshold

    def record_failure(self, category: FailureCategory) -> bool:
        """
        Count one more failure of ``category``.

        Returns:
            True if the counter is now over its threshold.
        """
        counter = self.counter(category)
        counter.increment()
        self.logger.debug(
            "failure_counted", category=category.value, count=counter.count, threshold=counter.threshold
        )
        return counter.exceeded

    def record_test(self, status: str) -> None:
        """Tally a test outcome: ``passed``, ``failed`` or ``skipped``."""
        if status == "passed":
            self.executed_tests += 1
            self.passed_tests += 1
        elif status == "failed":
            self.executed_tests += 1
            self.failed_tests += 1
        elif status == "skipped":
            self.skipped_tests += 1
        else:
            raise ValueError(f"Unknown test status: {status}")

    def snapshot(self) -> Dict[str, Any]:
        """Read-only copy of the counters for end-of-scenario reporting."""
        return {
            "tests": {
                "defined": self.defined_tests,
                "executed": self.executed_tests,
                "passed": self.passed_tests,
                "failed": self.failed_tests,
                "skipped": self.skipped_tests,
            },
            "categories": {
                category.value: {"count": counter.count, "threshold": counter.threshold}
                for category, counter in self._counters.items()
            },
        }

    def log_results(self) -> None:
        data = self.snapshot()
        self.logger.info("scenario_results", **data["tests"])
        for name, values in data["categories"].items():
            if values["count"]:
                self.logger.info("scenario_failure_category", category=name, **values)
