"""
Cross-test dependency synchronization.

A test may depend on blocker tests run by other scenarios. Before such a
test runs, the orchestrator waits for every blocker to have signaled that it
finished; after a test passes, it signals the tests it unblocks.
"""

import threading
from typing import Iterable, Protocol, Set

from core.errors import SynchronizationError, WaitTimeoutError
from core.logger import get_structured_logger
from core.wait import WaitCondition


class DependencyBroker(Protocol):
    def await_blockers(self, blockers: Iterable[str], timeout: float) -> None: ...

    def signal(self, dependents: Iterable[str]) -> None: ...


class InProcessDependencyBroker:
    """
    Named signal store shared by the scenarios of one process.

    Args:
        poll_interval: Seconds between two checks of the awaited signals.
    """

    def __init__(self, poll_interval: float = 1.0):
        self.poll_interval = poll_interval
        self.logger = get_structured_logger(__name__)
        self._signals: Set[str] = set()
        self._lock = threading.RLock()

    def signaled(self, name: str) -> bool:
        with self._lock:
            return name in self._signals

    def pending(self, blockers: Iterable[str]) -> Set[str]:
        with self._lock:
            return set(blockers) - self._signals

    def signal(self, dependents: Iterable[str]) -> None:
        names = set(dependents)
        if not names:
            return
        with self._lock:
            self._signals.update(names)
        self.logger.info("dependency_signaled", names=sorted(names))

    def await_blockers(self, blockers: Iterable[str], timeout: float) -> None:
        """
        Block until every name in ``blockers`` was signaled.

        Raises:
            SynchronizationError: If some blockers are still pending after ``timeout`` seconds.
        """
        names = set(blockers)
        if not names:
            return
        self.logger.info("dependency_waiting", blockers=sorted(names), timeout=timeout)
        condition = WaitCondition(
            lambda: not self.pending(names),
            f"blockers {', '.join(sorted(names))} finished",
            poll_interval=self.poll_interval,
        )
        try:
            condition.wait_until(timeout)
        except WaitTimeoutError as exc:
            missing = sorted(self.pending(names))
            raise SynchronizationError(
                f"Blocker tests did not finish in {timeout:g} seconds: {', '.join(missing)}",
                details={"missing": missing},
            ) from exc
