"""
Unit tests for the execution counters.
"""

import pytest
from pydantic import ValidationError

from config import ThresholdsConfig
from core.counters import CategoryCounter, ExecutionCounters, FailureCategory
from diagnostics import Severity


@pytest.fixture
def counters():
    return ExecutionCounters(ThresholdsConfig(failures=2, retriable_errors=1))


def test_threshold_is_exceeded_after_threshold_plus_one_failures(counters):
    results = [counters.record_failure(FailureCategory.FAILURE) for _ in range(3)]

    assert results == [False, False, True]
    assert counters.count(FailureCategory.FAILURE) == 3


def test_zero_threshold_is_exceeded_at_first_failure():
    counters = ExecutionCounters(ThresholdsConfig(multiples=0))

    assert counters.record_failure(FailureCategory.MULTIPLE_ELEMENTS) is True


def test_thresholds_come_from_configuration(counters):
    assert counters.threshold(FailureCategory.FAILURE) == 2
    assert counters.threshold(FailureCategory.RETRYABLE) == 1
    assert counters.threshold(FailureCategory.ALERT) == 10


def test_category_without_threshold_is_rejected(counters):
    with pytest.raises(ValueError):
        counters.record_failure(FailureCategory.FATAL)


def test_start_test_only_resets_per_test_categories(counters):
    counters.record_failure(FailureCategory.RETRYABLE)
    counters.record_failure(FailureCategory.FAILURE)
    counters.record_failure(FailureCategory.RETRYABLE_FAILURE)

    counters.start_test()

    assert counters.count(FailureCategory.RETRYABLE) == 0
    assert counters.count(FailureCategory.FAILURE) == 1
    assert counters.count(FailureCategory.RETRYABLE_FAILURE) == 1


def test_reset_clears_everything(counters):
    counters.record_failure(FailureCategory.FAILURE)
    counters.record_test("passed")

    counters.reset()

    assert counters.count(FailureCategory.FAILURE) == 0
    assert counters.executed_tests == 0


def test_record_test_tallies(counters):
    for status in ("passed", "failed", "skipped", "passed"):
        counters.record_test(status)

    snapshot = counters.snapshot()["tests"]
    assert snapshot == {"defined": 0, "executed": 3, "passed": 2, "failed": 1, "skipped": 1}


def test_record_test_rejects_unknown_status(counters):
    with pytest.raises(ValueError):
        counters.record_test("flaky")


def test_snapshot_lists_every_bounded_category(counters):
    counters.record_failure(FailureCategory.ALERT)

    categories = counters.snapshot()["categories"]

    assert categories["alert"] == {"count": 1, "threshold": 10}
    assert set(categories) == {"alert", "browser_error", "failure", "retryable", "retryable_failure", "multiple_elements"}


@pytest.mark.parametrize(
    "count, severity",
    [(0, Severity.INFO), (1, Severity.INFO), (2, Severity.WARNING), (3, Severity.FAILURE)],
)
def test_counter_severity(count, severity):
    assert CategoryCounter(threshold=2, count=count).severity is severity


def test_negative_threshold_is_rejected():
    with pytest.raises(ValidationError):
        ThresholdsConfig(failures=-1)
