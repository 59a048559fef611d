"""
Unit tests for the wait condition primitive.
"""

import time
from unittest.mock import MagicMock

import pytest

from core.errors import WaitTimeoutError
from core.wait import WaitCondition, elapsed_exceeds, wait_until, wait_while


class TestWaitCondition:
    def test_returns_at_once_when_condition_already_true(self):
        predicate = MagicMock(return_value=True)

        assert WaitCondition(predicate, "ready", poll_interval=0.01).wait_until(1) is True
        predicate.assert_called_once()

    def test_polls_until_condition_becomes_true(self):
        predicate = MagicMock(side_effect=[False, False, True])

        assert WaitCondition(predicate, "ready", poll_interval=0.01).wait_until(1) is True
        assert predicate.call_count == 3

    def test_wait_while_condition_stays_true(self):
        predicate = MagicMock(side_effect=[True, False])

        assert WaitCondition(predicate, "busy", poll_interval=0.01).wait_while(1) is True

    def test_timeout_raises_with_label(self):
        condition = WaitCondition(lambda: False, "dialog closed", poll_interval=0.01)

        with pytest.raises(WaitTimeoutError, match='"dialog closed" was still false after 0.05 seconds'):
            condition.wait_until(0.05)

    def test_timeout_returns_false_when_not_failing(self):
        condition = WaitCondition(lambda: True, "spinner shown", fail=False, poll_interval=0.01)

        assert condition.wait_while(0.05) is False

    def test_zero_timeout_checks_once(self):
        predicate = MagicMock(return_value=False)

        assert WaitCondition(predicate, "ready", fail=False, poll_interval=0.01).wait_until(0) is False
        predicate.assert_called_once()

    def test_predicate_errors_propagate(self):
        def broken():
            raise RuntimeError("remote gone")

        with pytest.raises(RuntimeError, match="remote gone"):
            WaitCondition(broken, "ready", poll_interval=0.01).wait_until(1)

    def test_sleep_is_replaceable(self):
        sleep = MagicMock()
        predicate = MagicMock(side_effect=[False, True])

        WaitCondition(predicate, "ready", poll_interval=0.5, sleep=sleep).wait_until(10)

        sleep.assert_called_once_with(0.5)


def test_shortcuts():
    assert wait_until(lambda: True, 1, "ready") is True
    assert wait_while(lambda: False, 1, "busy") is True
    assert wait_until(lambda: False, 0.02, "ready", fail=False, poll_interval=0.01) is False


def test_elapsed_exceeds():
    start = time.monotonic() - 5

    assert elapsed_exceeds(start, 1) is True
    assert elapsed_exceeds(start, 60) is False
    assert elapsed_exceeds(start, None) is False
