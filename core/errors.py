"""
Failure taxonomy shared by element handles and the retry orchestrator.

Every exception raised by this package carries a ``kind`` so that the
orchestrator can classify it without inspecting the remote session again.
"""

from enum import Enum
from typing import Any, Dict, Optional


class FailureKind(str, Enum):
    """What went wrong, independent of the policy applied to it."""

    STALE_REFERENCE = "stale_reference"
    NOT_FOUND = "not_found"
    MULTIPLE_RESULTS = "multiple_results"
    NOT_CLICKABLE = "not_clickable"
    SESSION_UNREACHABLE = "session_unreachable"
    CANNOT_START_SESSION = "cannot_start_session"
    REMOTE_DRIVER = "remote_driver"
    TRANSIENT_RETRYABLE = "transient_retryable"
    UNEXPECTED_ALERT = "unexpected_alert"
    FATAL = "fatal"
    SKIPPED = "skipped"
    UNCLASSIFIED = "unclassified"


class ScenarioError(Exception):
    """Base exception for all scenario execution errors."""

    kind: FailureKind = FailureKind.UNCLASSIFIED

    def __init__(
        self,
        message: str,
        locator: Optional[Any] = None,
        frame: Optional[Any] = None,
        attempts: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.locator = locator
        self.frame = frame
        self.attempts = attempts
        self.details = details or {}

    def context(self) -> Dict[str, Any]:
        """Return the non-empty context fields, suitable for structured logging."""
        ctx: Dict[str, Any] = {"kind": self.kind.value}
        if self.locator is not None:
            ctx["locator"] = str(self.locator)
        if self.frame is not None:
            ctx["frame"] = str(self.frame)
        if self.attempts is not None:
            ctx["attempts"] = self.attempts
        ctx.update(self.details)
        return ctx

    def __str__(self) -> str:
        if self.locator is not None:
            return f"{self.message} (locator: {self.locator})"
        return self.message


class ScenarioFailedError(ScenarioError):
    """A check performed by a test failed."""


class StaleReferenceError(ScenarioError):
    """The remote element reference is no longer valid."""

    kind = FailureKind.STALE_REFERENCE


class ElementNotFoundError(ScenarioError):
    """The locator matched nothing."""

    kind = FailureKind.NOT_FOUND


class WaitTimeoutError(ScenarioFailedError):
    """A wait condition did not become true (or false) in time."""

    kind = FailureKind.NOT_FOUND


class MultipleElementsFoundError(ScenarioError):
    """The locator matched several elements where a single one was expected."""

    kind = FailureKind.MULTIPLE_RESULTS

    def __init__(self, message: str = "Unexpected multiple elements found.", count: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.count = count
        if count is not None:
            self.details.setdefault("found", count)


class NotClickableError(ScenarioError):
    """Another element would receive the click, or the element is not interactable."""

    kind = FailureKind.NOT_CLICKABLE


class SessionUnreachableError(ScenarioError):
    """The remote browser process is gone."""

    kind = FailureKind.SESSION_UNREACHABLE


class CannotStartSessionError(ScenarioError):
    """A new remote browser session could not be created."""

    kind = FailureKind.CANNOT_START_SESSION


class RemoteDriverError(ScenarioError):
    """Any other error reported by the remote driver."""

    kind = FailureKind.REMOTE_DRIVER


class UnexpectedAlertError(RemoteDriverError):
    """A modal dialog was open when the driver tried to interact with the page."""

    kind = FailureKind.UNEXPECTED_ALERT


class RetryableError(ScenarioFailedError):
    """Explicit signal from a higher layer that the failure is likely spurious."""

    kind = FailureKind.TRANSIENT_RETRYABLE


class IntermittentError(RetryableError):
    """A known intermittent problem."""


class WorkaroundFailedError(RetryableError):
    """A workaround was applied but did not solve the problem."""


class ServerMessageError(ScenarioFailedError):
    """The application displayed a server error message; cannot be retried."""

    kind = FailureKind.FATAL

    def __init__(self, summary: str, details_text: Optional[str] = None, **kwargs):
        super().__init__(summary, **kwargs)
        self.summary = summary
        self.details_text = details_text


class ImplementationError(ScenarioError):
    """The scenario or framework is used in a way it does not support."""

    kind = FailureKind.FATAL


class SynchronizationError(ScenarioError):
    """Cross-test dependency synchronization failed."""

    kind = FailureKind.FATAL


class BrowserError(ScenarioFailedError):
    """The browser itself misbehaved."""

    kind = FailureKind.REMOTE_DRIVER

    def __init__(self, message: str, fatal: bool = False, **kwargs):
        super().__init__(message, **kwargs)
        self.fatal = fatal


class BrowserConnectionError(BrowserError):
    """The browser connection was lost; a session restart may help."""


class SkippedTestError(ScenarioError):
    """The test was not run because a previous step blocker failed."""

    kind = FailureKind.SKIPPED
