"""
Poll-until-true/false timing primitive.

``WaitCondition`` has no retry or classification logic of its own: it polls a
predicate until it reaches the expected value or the deadline computed at call
time elapses. The polling loop is a ``tenacity.Retrying`` driven by the
predicate result.
"""

import time
from typing import Callable, Optional

from tenacity import RetryError, Retrying, retry_if_result, stop_after_delay, wait_fixed

from core.errors import WaitTimeoutError
from core.logger import get_structured_logger

logger = get_structured_logger(__name__)

DEFAULT_POLL_INTERVAL = 1.0


class WaitCondition:
    """
    Wait for a boolean condition.

    Args:
        predicate: Callable returning the current value of the condition.
        label: Human readable description used in logs and timeout messages.
        fail: When True a timeout raises ``WaitTimeoutError``, otherwise the
            wait methods return False.
        poll_interval: Seconds between two evaluations of the predicate.
        sleep: Sleep function, replaceable in tests.
    """

    def __init__(
        self,
        predicate: Callable[[], bool],
        label: str,
        fail: bool = True,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.predicate = predicate
        self.label = label
        self.fail = fail
        self.poll_interval = poll_interval
        self._sleep = sleep

    def wait_until(self, timeout: float) -> bool:
        """Wait until the condition becomes true."""
        return self._wait(timeout, expected=True)

    def wait_while(self, timeout: float) -> bool:
        """Wait while the condition stays true."""
        return self._wait(timeout, expected=False)

    def failure_message(self, timeout: float, expected: bool) -> str:
        still = "false" if expected else "true"
        return f'Condition "{self.label}" was still {still} after {timeout:g} seconds, give up.'

    def _check(self, expected: bool) -> bool:
        return bool(self.predicate()) is expected

    def _wait(self, timeout: float, expected: bool) -> bool:
        start = time.monotonic()
        retryer = Retrying(
            stop=stop_after_delay(max(timeout, 0)),
            wait=wait_fixed(self.poll_interval),
            retry=retry_if_result(lambda reached: not reached),
            sleep=self._sleep,
        )
        try:
            retryer(self._check, expected)
        except RetryError:
            waited = time.monotonic() - start
            logger.debug("wait_condition_timeout", condition=self.label, expected=expected, waited_s=round(waited, 3))
            if self.fail:
                raise WaitTimeoutError(self.failure_message(timeout, expected)) from None
            return False
        waited = time.monotonic() - start
        if waited > self.poll_interval:
            logger.debug("wait_condition_met", condition=self.label, expected=expected, waited_s=round(waited, 3))
        return True


def wait_until(
    predicate: Callable[[], bool],
    timeout: float,
    label: str,
    fail: bool = True,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> bool:
    """Shortcut for ``WaitCondition(...).wait_until(timeout)``."""
    return WaitCondition(predicate, label, fail=fail, poll_interval=poll_interval).wait_until(timeout)


def wait_while(
    predicate: Callable[[], bool],
    timeout: float,
    label: str,
    fail: bool = True,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> bool:
    """Shortcut for ``WaitCondition(...).wait_while(timeout)``."""
    return WaitCondition(predicate, label, fail=fail, poll_interval=poll_interval).wait_while(timeout)


def elapsed_exceeds(start: float, limit: Optional[float]) -> bool:
    """Tell whether more than ``limit`` seconds passed since ``start`` (a ``time.monotonic`` value)."""
    if limit is None:
        return False
    return (time.monotonic() - start) > limit
