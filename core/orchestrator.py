"""
Retry orchestration of scenario tests.

The ``RetryOrchestrator`` runs one test (a unit of work) at a time. When the
test fails it classifies the error into a ``FailureCategory``, counts it,
applies the category remediation (alert purge, window cleanup, refresh,
session restart) and runs the test again, until the category threshold is
exceeded or the failure cannot be retried. It also decides whether the whole
scenario must stop, or whether the remaining tests of the current step must
be skipped.
"""

import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from config import AppConfig
from core.counters import ExecutionCounters, FailureCategory
from core.errors import (
    BrowserConnectionError,
    BrowserError,
    ElementNotFoundError,
    FailureKind,
    ScenarioError,
    ScenarioFailedError,
    ServerMessageError,
    SkippedTestError,
    SynchronizationError,
)
from core.lifecycle import SessionLifecycle
from core.logger import bind_context, get_structured_logger
from core.metrics import MetricsCollector
from core.synchronization import DependencyBroker
from core.wait import elapsed_exceeds
from diagnostics import Severity

# Remote error messages telling that the browser connection is gone
CONNECTION_PATTERNS = (
    re.compile(r"^Failed to connect to binary", re.IGNORECASE),
    re.compile(r"^chrome not reachable", re.IGNORECASE),
    re.compile(r"connection refused", re.IGNORECASE),
    re.compile(r"ECONNREFUSED|ECONNRESET"),
)

# Error kinds reported by the remote driver itself
REMOTE_KINDS = (
    FailureKind.REMOTE_DRIVER,
    FailureKind.STALE_REFERENCE,
    FailureKind.NOT_CLICKABLE,
)


class OutcomeStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class Remediation(str, Enum):
    """What to do on the remote session before running a test again."""

    NONE = "none"
    PURGE_ALERTS = "purge_alerts"
    RESTART_SESSION = "restart_session"
    PAUSE_AND_RESTART = "pause_and_restart"
    CLEANUP_AND_REFRESH = "cleanup_and_refresh"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TestMetadata:
    """
    Execution flags of a test.

    ``time_limit`` (seconds) only produces a slow execution warning, it never
    interrupts the test. ``depends_on`` names the blockers to wait for before
    running and ``unblocks`` the names to signal once the test passed.
    """

    __test__ = False  # not a pytest test class

    name: str
    step: str
    non_rerunnable: bool = False
    mandatory: bool = False
    step_blocker: bool = False
    time_limit: Optional[float] = None
    depends_on: Tuple[str, ...] = ()
    unblocks: Tuple[str, ...] = ()


@dataclass
class Outcome:
    status: OutcomeStatus
    error: Optional[BaseException] = None
    reason: Optional[str] = None
    attempts: int = 0
    stop_scenario: bool = False
    category: Optional[FailureCategory] = None

    @property
    def passed(self) -> bool:
        return self.status is OutcomeStatus.PASSED

    @property
    def skipped(self) -> bool:
        return self.status is OutcomeStatus.SKIPPED


@dataclass(frozen=True)
class Classification:
    category: FailureCategory
    remediation: Remediation = Remediation.NONE
    # Counter the failure is bounded by, None for failures never retried
    counter: Optional[FailureCategory] = None


def classify(error: BaseException) -> Classification:
    """Map an error raised by a test to its failure category. First match wins."""
    kind = error.kind if isinstance(error, ScenarioError) else None

    if kind is FailureKind.UNEXPECTED_ALERT:
        return Classification(FailureCategory.ALERT, Remediation.PURGE_ALERTS, FailureCategory.ALERT)
    if kind is FailureKind.CANNOT_START_SESSION:
        return Classification(FailureCategory.FATAL)
    if kind is FailureKind.SESSION_UNREACHABLE:
        return Classification(
            FailureCategory.SESSION_UNREACHABLE, Remediation.RESTART_SESSION, FailureCategory.BROWSER_ERROR
        )
    if isinstance(error, BrowserError):
        if error.fatal:
            return Classification(FailureCategory.FATAL)
        if isinstance(error, BrowserConnectionError):
            return Classification(
                FailureCategory.BROWSER_ERROR, Remediation.PAUSE_AND_RESTART, FailureCategory.BROWSER_ERROR
            )
        return Classification(FailureCategory.BROWSER_ERROR, Remediation.NONE, FailureCategory.BROWSER_ERROR)
    if kind in REMOTE_KINDS or (isinstance(error, ElementNotFoundError) and not isinstance(error, ScenarioFailedError)):
        message = str(error)
        if any(pattern.search(message) for pattern in CONNECTION_PATTERNS):
            return Classification(
                FailureCategory.BROWSER_ERROR, Remediation.PAUSE_AND_RESTART, FailureCategory.BROWSER_ERROR
            )
        return Classification(FailureCategory.FAILURE, Remediation.CLEANUP_AND_REFRESH, FailureCategory.FAILURE)
    if kind is FailureKind.TRANSIENT_RETRYABLE:
        return Classification(FailureCategory.RETRYABLE, Remediation.CLEANUP_AND_REFRESH, FailureCategory.RETRYABLE)
    if kind is FailureKind.MULTIPLE_RESULTS:
        return Classification(
            FailureCategory.MULTIPLE_ELEMENTS, Remediation.REFRESH, FailureCategory.MULTIPLE_ELEMENTS
        )
    if kind is FailureKind.FATAL:
        return Classification(FailureCategory.FATAL)
    if kind is FailureKind.SKIPPED:
        return Classification(FailureCategory.SKIPPED)
    return Classification(FailureCategory.UNCLASSIFIED)


class RetryOrchestrator:
    """
    Run tests with failure classification and bounded retries.

    Args:
        app_config: The application configuration object.
        lifecycle: Session lifecycle used by the remediation steps.
        broker: Optional dependency broker, used when synchronization is enabled.
        metrics: Optional metrics collector for test outcomes.
        counters: Counters of the scenario execution. Created from the configured
            thresholds when not given.
        sleep: Sleep function, replaceable in tests.
    """

    def __init__(
        self,
        app_config: AppConfig,
        lifecycle: SessionLifecycle,
        broker: Optional[DependencyBroker] = None,
        metrics: Optional[MetricsCollector] = None,
        counters: Optional[ExecutionCounters] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.app_config = app_config
        self.lifecycle = lifecycle
        self.broker = broker
        self.metrics = metrics
        self.counters = counters or ExecutionCounters(app_config.thresholds)
        self._sleep = sleep
        self.logger = get_structured_logger(__name__)
        self._stop_scenario = False
        self.blocked_step: Optional[str] = None
        self.slow_server = False
        self._current_test: Optional[Tuple[str, str]] = None

    def reset(self) -> None:
        """Forget the state of a previous scenario: counters, stop and step block."""
        self.counters.reset()
        self._stop_scenario = False
        self.blocked_step = None
        self.slow_server = False
        self._current_test = None

    @property
    def stop_scenario(self) -> bool:
        return self._stop_scenario

    def _stop(self, reason: str) -> None:
        if not self._stop_scenario:
            self.logger.error("scenario_stopping", reason=reason)
        self._stop_scenario = True

    # Entry point

    def run(self, unit_of_work: Callable[[], None], metadata: TestMetadata) -> Outcome:
        """
        Run ``unit_of_work`` until it passes or its failure cannot be retried.

        Returns:
            The outcome of the test. The error of a failed test is the one the
            test raised, never a different one.
        """
        log = bind_context(self.logger, step=metadata.step, test=metadata.name)
        started = time.monotonic()

        skipped = self._check_skipped(metadata, log)
        if skipped is not None:
            return self._finish(metadata, skipped, started)

        # Runs of the same test share its retry budget
        test_key = (metadata.step, metadata.name)
        if test_key != self._current_test:
            self.counters.start_test()
            self._current_test = test_key

        try:
            self._await_dependencies(metadata)
        except SynchronizationError as error:
            log.error("test_synchronization_failed", error=str(error))
            self._stop("synchronization error")
            outcome = Outcome(
                OutcomeStatus.FAILED, error, str(error), 0, stop_scenario=True, category=FailureCategory.FATAL
            )
            return self._finish(metadata, outcome, started)

        log.info("test_started")
        attempts = 0
        while True:
            attempts += 1
            attempt_start = time.monotonic()
            try:
                unit_of_work()
            except Exception as error:
                classification = classify(error)
                if classification.category is FailureCategory.SKIPPED:
                    log.info("test_skipped_by_test", reason=str(error))
                    outcome = Outcome(OutcomeStatus.SKIPPED, error, str(error), attempts, self._stop_scenario)
                    break
                try:
                    retry = self._handle_failure(error, classification, metadata, attempt_start, log)
                except ScenarioError as remediation_error:
                    log.error(
                        "remediation_failed",
                        category=classification.category.value,
                        error=str(remediation_error),
                        **remediation_error.context(),
                    )
                    self._stop("remediation failed")
                    retry = False
                if retry:
                    log.warning("test_rerun", attempt=attempts + 1, category=classification.category.value)
                    continue
                outcome = Outcome(
                    OutcomeStatus.FAILED,
                    error,
                    str(error),
                    attempts,
                    stop_scenario=self._stop_scenario,
                    category=classification.category,
                )
                break
            else:
                self._check_server_speed(attempt_start, metadata.time_limit, log)
                log.info("test_passed", attempts=attempts, duration_s=round(time.monotonic() - attempt_start, 3))
                outcome = Outcome(OutcomeStatus.PASSED, attempts=attempts, stop_scenario=self._stop_scenario)
                outcome = self._after_pass(metadata, outcome, log)
                break

        return self._finish(metadata, outcome, started)

    def _check_skipped(self, metadata: TestMetadata, log) -> Optional[Outcome]:
        if self._stop_scenario:
            log.info("test_skipped", reason="scenario stopped")
            return Outcome(OutcomeStatus.SKIPPED, reason="scenario stopped", stop_scenario=True)
        if self.blocked_step is not None:
            if self.blocked_step == metadata.step:
                message = (
                    f"Test case '{metadata.name}' is skipped due to previous test has failed and was a step blocker"
                )
                log.warning("test_skipped", reason="step blocked")
                return Outcome(OutcomeStatus.SKIPPED, SkippedTestError(message), message)
            log.info("step_block_cleared", blocked_step=self.blocked_step)
            self.blocked_step = None
        return None

    def _after_pass(self, metadata: TestMetadata, outcome: Outcome, log) -> Outcome:
        try:
            self._signal_dependents(metadata)
        except SynchronizationError as error:
            log.error("test_synchronization_failed", error=str(error))
            self._stop("synchronization error")
            outcome.stop_scenario = True
        pause = self.app_config.execution.pause_between_tests_seconds
        if pause > 0:
            self._sleep(pause)
        return outcome

    def _finish(self, metadata: TestMetadata, outcome: Outcome, started: float) -> Outcome:
        self.counters.record_test(outcome.status.value)
        if self.metrics is not None:
            self.metrics.record_test(
                metadata.name,
                outcome.status.value,
                (time.monotonic() - started) * 1000,
                outcome.category.value if outcome.category else None,
            )
        return outcome

    # Failure handling

    def _handle_failure(
        self,
        error: BaseException,
        classification: Classification,
        metadata: TestMetadata,
        start: float,
        log,
    ) -> bool:
        """
        Apply the policy of the failure category.

        Returns:
            True if the test must be run again.
        """
        category = classification.category
        session = self.lifecycle.session
        log.warning(
            "test_failed",
            category=category.value,
            error_type=type(error).__name__,
            error=str(error),
            duration_s=round(time.monotonic() - start, 3),
        )
        if isinstance(error, ServerMessageError):
            log.error("server_error_message", summary=error.summary, details=error.details_text)

        if category is FailureCategory.ALERT:
            return self._handle_alert(error, metadata)

        # The session is gone, nothing to purge nor capture
        if category is not FailureCategory.SESSION_UNREACHABLE and session is not None:
            session.purge_alerts(f"After having got exception '{error}'")

        if category is FailureCategory.FATAL:
            self._snapshot(Severity.FAILURE, metadata, error)
            self._stop(f"fatal error: {type(error).__name__}")
            return False

        if category in (FailureCategory.SESSION_UNREACHABLE, FailureCategory.BROWSER_ERROR):
            return self._handle_browser_error(error, classification, metadata)

        if classification.counter is not None:
            return self._handle_bounded(error, classification, metadata)

        self._snapshot(Severity.FAILURE, metadata, error)
        self._give_up(error, metadata, is_exception=not isinstance(error, (ScenarioFailedError, AssertionError)))
        return False

    def _handle_alert(self, error: BaseException, metadata: TestMetadata) -> bool:
        session = self.lifecycle.session
        if session is None:
            self.logger.warning("no_session_to_handle_alert")
        else:
            session.purge_alerts(f"Running test {metadata.name}")
        if self.counters.record_failure(FailureCategory.ALERT):
            self._snapshot(Severity.FAILURE, metadata, error)
            if self.app_config.execution.stop_on_failure or metadata.mandatory:
                self._stop("too many alerts")
            return False
        self._snapshot(Severity.WARNING, metadata, error)
        return True

    def _handle_browser_error(self, error: BaseException, classification: Classification, metadata: TestMetadata) -> bool:
        session = self.lifecycle.session
        page = session.current_page if session is not None else None
        exceeded = self.counters.record_failure(FailureCategory.BROWSER_ERROR)
        if exceeded or page is None or metadata.non_rerunnable:
            self.logger.error(
                "browser_error_cannot_be_worked_around",
                test=metadata.name,
                threshold_exceeded=exceeded,
                page_known=page is not None,
                non_rerunnable=metadata.non_rerunnable,
            )
            if classification.category is not FailureCategory.SESSION_UNREACHABLE:
                self._snapshot(Severity.FAILURE, metadata, error)
            self._stop("browser error")
            return False

        if classification.category is not FailureCategory.SESSION_UNREACHABLE:
            self._snapshot(self.counters.counter(FailureCategory.BROWSER_ERROR).severity, metadata, error)
        if classification.remediation is Remediation.PAUSE_AND_RESTART:
            self._sleep(self.app_config.execution.restart_pause_seconds)
        if classification.remediation in (Remediation.RESTART_SESSION, Remediation.PAUSE_AND_RESTART):
            self.logger.warning("session_restart", page=page.key, url=page.url)
            self.lifecycle.open_new_session(page.user)
            self.lifecycle.reload_page(page, page.user)
        return True

    def _handle_bounded(self, error: BaseException, classification: Classification, metadata: TestMetadata) -> bool:
        session = self.lifecycle.session
        counter = self.counters.counter(classification.counter)
        exceeded = self.counters.record_failure(classification.counter)
        cannot_rerun = metadata.non_rerunnable or session is None

        if exceeded or cannot_rerun:
            self._snapshot(Severity.FAILURE, metadata, error)
            if exceeded and classification.category is FailureCategory.RETRYABLE:
                self.logger.error("too_many_retryable_errors", test=metadata.name, count=counter.count)
                if self.counters.record_failure(FailureCategory.RETRYABLE_FAILURE):
                    self._stop("too many tests failed on retryable errors")
            self._give_up(error, metadata, is_exception=False)
            return False

        self._snapshot(counter.severity, metadata, error)
        self.logger.warning(
            "test_workaround",
            category=classification.category.value,
            remediation=classification.remediation.value,
            retry=counter.count,
            threshold=counter.threshold,
        )
        if classification.remediation is Remediation.CLEANUP_AND_REFRESH:
            self.lifecycle.close_other_windows()
            session.refresh()
        elif classification.remediation is Remediation.REFRESH:
            session.refresh()
        return True

    def _give_up(self, error: BaseException, metadata: TestMetadata, is_exception: bool) -> None:
        """Decide between stopping the scenario and blocking the rest of the step."""
        execution = self.app_config.execution
        stop_flag = execution.stop_on_exception if is_exception else execution.stop_on_failure
        if stop_flag or metadata.mandatory or self.lifecycle.session is None:
            if metadata.mandatory:
                reason = "test is mandatory"
            elif self.lifecycle.session is None:
                reason = "no browser session available"
            else:
                reason = "stop on exception is set" if is_exception else "stop on failure is set"
            self._stop(reason)
        elif metadata.step_blocker:
            self.logger.warning("step_blocked", step=metadata.step, test=metadata.name)
            self.blocked_step = metadata.step

    def _snapshot(self, severity: Severity, metadata: TestMetadata, error: BaseException) -> None:
        session = self.lifecycle.session
        if session is not None:
            session.snapshot(severity, f"{metadata.step}.{metadata.name}", error=error)

    # Supplementary checks

    def _check_server_speed(self, start: float, time_limit: Optional[float], log) -> None:
        if time_limit is None:
            return
        if elapsed_exceeds(start, time_limit):
            log.warning("slow_execution", time_limit=time_limit, duration_s=round(time.monotonic() - start, 3))
            self.slow_server = True
        else:
            self.slow_server = False

    def _synchronization_enabled(self) -> bool:
        return self.broker is not None and self.app_config.synchronization.enabled

    def _await_dependencies(self, metadata: TestMetadata) -> None:
        if not metadata.depends_on or not self._synchronization_enabled():
            return
        try:
            self.broker.await_blockers(metadata.depends_on, self.app_config.synchronization.timeout)
        except SynchronizationError:
            raise
        except Exception as exc:
            raise SynchronizationError(f"Cannot wait for blockers of {metadata.name}: {exc}") from exc

    def _signal_dependents(self, metadata: TestMetadata) -> None:
        if not metadata.unblocks or not self._synchronization_enabled():
            return
        try:
            self.broker.signal(metadata.unblocks)
        except SynchronizationError:
            raise
        except Exception as exc:
            raise SynchronizationError(f"Cannot signal dependents of {metadata.name}: {exc}") from exc
