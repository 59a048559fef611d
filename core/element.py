"""
Self-healing element handles.

An ``ElementHandle`` wraps one remote element reference together with the
information needed to find it again: its locator, its search context (the
whole document or a parent handle), its frame and, when it came out of a
multi-element search, its position in that list.

Every public operation runs through :meth:`ElementHandle._execute`, which
selects the handle frame, invokes the remote operation and, when the remote
reference went stale, recovers the handle and retries the operation. Several
read operations return a neutral value instead of raising once the recovery
attempts are exhausted; see each operation for its behavior.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Sequence, Tuple, TypeVar

from core.errors import (
    ElementNotFoundError,
    ImplementationError,
    NotClickableError,
    RemoteDriverError,
    ScenarioFailedError,
    StaleReferenceError,
    UnexpectedAlertError,
)
from core.frames import Frame
from core.logger import get_structured_logger
from core.remote import Locator, RemoteElement
from core.wait import WaitCondition
from diagnostics import Severity

if TYPE_CHECKING:
    from core.session import BrowserSession

T = TypeVar("T")

NOT_IN_LIST = -1
MAX_RECOVERY_ATTEMPTS = 5

JAVASCRIPT_CLICK = "arguments[0].click();"
SCROLL_INTO_VIEW = "arguments[0].scrollIntoView(true);"

NBSP = "\u00a0"
ZERO_WIDTH_SPACE = "\u200b"

_RAISE = object()


class ClickWorkaroundState(str, Enum):
    """States of the workaround applied when a click is intercepted."""

    NONE = "none"
    INIT = "init"
    JAVASCRIPT_FALLBACK = "javascript_fallback"
    FAILED = "failed"


def normalize_text(text: Optional[str]) -> str:
    """Trim ``text`` and turn the special whitespace markers into plain text."""
    if not text:
        return ""
    return text.replace(NBSP, " ").replace(ZERO_WIDTH_SPACE, "").strip()


class ElementHandle:
    """
    Resilient reference to an element of the remote session.

    Args:
        session: The browser session the element belongs to.
        locator: How the element was found.
        context: Parent handle the locator is relative to, None for the whole document.
        frame: Frame the element lives in. Must be the parent frame when a context is given.
        remote_ref: Already resolved remote element. When None the element is
            searched immediately.
        sibling_count: Size of the list the element was found in, for list results.
        sibling_index: Position of the element in that list, for list results.

    Raises:
        ImplementationError: If the context is not a handle, if its frame differs
            from ``frame`` or if ``remote_ref`` is itself a handle.
    """

    def __init__(
        self,
        session: "BrowserSession",
        locator: Locator,
        context: Optional["ElementHandle"] = None,
        frame: Optional[Frame] = None,
        remote_ref: Optional[RemoteElement] = None,
        sibling_count: int = NOT_IN_LIST,
        sibling_index: int = NOT_IN_LIST,
    ):
        if context is not None:
            if not isinstance(context, ElementHandle):
                raise ImplementationError(
                    f"Unexpected search context type {type(context).__name__}", locator=locator, frame=frame
                )
            if context.frame != frame:
                raise ImplementationError(
                    f"Element {frame} differs from its parent {context.frame}", locator=locator, frame=frame
                )
        self.session = session
        self.locator = locator
        self.context = context
        self.sibling_count = sibling_count
        self.sibling_index = sibling_index
        self.logger = get_structured_logger(__name__)
        self._frame = frame
        if remote_ref is None:
            with session.frames.selected(frame):
                remote_ref = session.driver.find_element(self._search_root(), locator)
        self._remote_ref: RemoteElement = self._checked(remote_ref)

    # Identity

    @property
    def frame(self) -> Optional[Frame]:
        return self._frame

    @property
    def remote_ref(self) -> RemoteElement:
        return self._remote_ref

    @property
    def max_attempts(self) -> int:
        return self.session.app_config.recovery.max_attempts

    @property
    def in_list(self) -> bool:
        return self.sibling_count != NOT_IN_LIST

    def full_locator(self) -> str:
        """Locator chain from the document root down to this element."""
        if self.context is None:
            return str(self.locator)
        return f"{self.context.full_locator()} >> {self.locator}"

    def __repr__(self) -> str:
        parts = [f"locator={self.full_locator()!r}"]
        if self._frame is not None:
            parts.append(f"frame={self._frame.name!r}")
        if self.in_list:
            parts.append(f"index={self.sibling_index}/{self.sibling_count}")
        return f"ElementHandle({', '.join(parts)})"

    # Operation envelope

    def _search_root(self) -> Optional[RemoteElement]:
        return self.context.remote_ref if self.context is not None else None

    def _execute(
        self,
        title: str,
        operation: Callable[[RemoteElement], T],
        fallback: Any = _RAISE,
        recovery: bool = True,
    ) -> T:
        """
        Run ``operation`` on the remote reference inside the handle frame.

        A stale reference triggers a recovery and another try. When the
        recovery is exhausted (or disabled) the stale error is raised, unless a
        ``fallback`` value is given, in which case it is returned instead.
        Unexpected alerts are purged and the operation retried.
        """
        failures = 0
        alerts = 0
        frames = self.session.frames
        with frames.selected(self._frame):
            while True:
                frames.switch_active(self._frame)
                try:
                    return operation(self._remote_ref)
                except StaleReferenceError as error:
                    failures += 1
                    try:
                        if not recovery:
                            raise
                        self._recover_after(error, title, failures)
                    except StaleReferenceError:
                        if fallback is _RAISE:
                            raise
                        self.logger.info(
                            "element_operation_fallback",
                            operation=title,
                            locator=self.full_locator(),
                            fallback=repr(fallback),
                        )
                        return fallback
                except UnexpectedAlertError:
                    alerts += 1
                    if alerts > self.session.app_config.thresholds.alerts or self.session.purge_alerts(title) == 0:
                        raise

    def _recover_after(self, error: StaleReferenceError, title: str, failures: int) -> None:
        max_attempts = self.max_attempts
        if failures > max_attempts:
            self.logger.warning(
                "element_recovery_too_many_failures", operation=title, locator=self.full_locator(), failures=failures
            )
            error.attempts = failures
            raise error

        pause = self.session.app_config.recovery.pause_seconds
        self.logger.info("element_recovery_started", operation=title, locator=self.full_locator(), failure=failures)
        start = time.monotonic()
        self.session.pause(pause)
        for attempt in range(1, max_attempts + 1):
            try:
                if self.recover(attempt):
                    duration_ms = (time.monotonic() - start) * 1000
                    self.logger.info(
                        "element_recovered",
                        operation=title,
                        locator=self.full_locator(),
                        attempt=attempt,
                        duration_ms=round(duration_ms, 2),
                    )
                    self._record_recovery("success", attempt)
                    return
            except StaleReferenceError as exc:
                self.logger.debug("element_recovery_attempt_stale", locator=self.full_locator(), attempt=attempt, error=str(exc))
            if attempt < max_attempts:
                self.session.pause(pause)

        self.logger.warning("element_recovery_failed", operation=title, locator=self.full_locator(), attempts=max_attempts)
        self._record_recovery("failure", max_attempts)
        error.attempts = max_attempts
        raise error

    def _record_recovery(self, status: str, attempts: int) -> None:
        if self.session.metrics is not None:
            self.session.metrics.record_recovery(self.full_locator(), status, attempts)

    # Recovery

    def recover(self, attempt: int) -> bool:
        """
        Try to find the element again after its reference became invalid.

        Args:
            attempt: Number of the attempt, from 1 to ``max_attempts``. The last
                attempt accepts less certain candidates.

        Returns:
            True if the remote reference was replaced.
        """
        if self.context is not None and not self.context.recover(attempt):
            self.logger.debug("element_parent_not_recovered", locator=self.full_locator(), attempt=attempt)
            return False

        driver = self.session.driver
        with self.session.frames.selected(self._frame):
            if self.in_list:
                found = driver.find_elements(self._search_root(), self.locator)
                ref = self._disambiguate(found, attempt)
                recovered = (ref, self._frame) if ref is not None else None
            else:
                recovered = self._find_single(attempt)

        if recovered is None:
            self.logger.debug("element_not_recovered", locator=self.full_locator(), attempt=attempt)
            return False
        self._replace_remote_ref(*recovered)
        return True

    def _find_single(self, attempt: int) -> Optional[Tuple[RemoteElement, Optional[Frame]]]:
        try:
            return self.session.driver.find_element(self._search_root(), self.locator), self._frame
        except ElementNotFoundError:
            if attempt < self.max_attempts:
                return None
        self.logger.info("element_recovery_searching_frames", locator=self.full_locator(), attempt=attempt)
        return self.session.find_element_in_frames(self.locator)

    def _disambiguate(self, found: Sequence[RemoteElement], attempt: int) -> Optional[RemoteElement]:
        """
        Pick the element matching this handle among a fresh multi-element search.

        A displayed element at the same place (same list size and same index)
        is taken at once. Otherwise a candidate is kept: the first displayed
        element found elsewhere, replaced by a hidden element at the same place.
        That candidate is only accepted on the last attempt.
        """
        if not found:
            self.logger.debug("element_recovery_empty_list", locator=self.full_locator(), attempt=attempt)
            return None

        same_size = len(found) == self.sibling_count
        candidate: Optional[RemoteElement] = None
        ambiguous = False
        for index, ref in enumerate(found):
            same_place = same_size and index == self.sibling_index
            if self.session.driver.is_displayed(ref):
                if same_place:
                    return ref
                if candidate is None:
                    candidate = ref
                else:
                    ambiguous = True
            elif same_place:
                candidate = ref

        if candidate is not None and attempt >= self.max_attempts:
            self.logger.info("element_recovery_last_resort_candidate", locator=self.full_locator(), ambiguous=ambiguous)
            return candidate
        if ambiguous:
            self.logger.debug(
                "element_recovery_ambiguous", locator=self.full_locator(), attempt=attempt, found=len(found)
            )
        return None

    def _replace_remote_ref(self, ref: RemoteElement, frame: Optional[Frame]) -> None:
        checked = self._checked(ref)
        if frame != self._frame:
            self.logger.info("element_frame_migrated", locator=self.full_locator(), old=str(self._frame), new=str(frame))
        self._remote_ref = checked
        self._frame = frame

    def _checked(self, ref: RemoteElement) -> RemoteElement:
        if isinstance(ref, ElementHandle):
            raise ImplementationError("Remote reference should not be an ElementHandle", locator=self.locator)
        return ref

    # Reads

    def get_attribute(self, name: str) -> Optional[str]:
        driver = self.session.driver
        return self._execute(f"getting attribute '{name}'", lambda ref: driver.get_attribute(ref, name))

    def get_attribute_value(self, name: str) -> str:
        """Same as :meth:`get_attribute` but the attribute must exist."""
        value = self.get_attribute(name)
        if value is None:
            raise ScenarioFailedError(f"Attribute '{name}' not found", locator=self.locator, frame=self._frame)
        return value

    def get_text(self, recovery: bool = True) -> str:
        """Return the normalized text, or an empty string if the element cannot be recovered."""
        driver = self.session.driver
        return normalize_text(self._execute("getting text", driver.get_text, fallback="", recovery=recovery))

    def get_text_when_visible(self) -> str:
        """Scroll the element into view before reading its text."""
        driver = self.session.driver

        def read(ref: RemoteElement) -> str:
            driver.execute_script(SCROLL_INTO_VIEW, ref)
            return driver.get_text(ref)

        return normalize_text(self._execute("getting text when visible", read, fallback=""))

    def get_tag_name(self) -> str:
        return self._execute("getting tag name", self.session.driver.get_tag_name)

    def get_size(self) -> Tuple[int, int]:
        return self._execute("getting size", self.session.driver.get_size)

    def get_location(self) -> Tuple[int, int]:
        return self._execute("getting location", self.session.driver.get_location)

    def is_displayed(self, recovery: bool = True) -> bool:
        """Tell whether the element is displayed; False when it cannot be recovered."""
        return self._execute("checking displayed", self.session.driver.is_displayed, fallback=False, recovery=recovery)

    def is_enabled(self, recovery: bool = True) -> bool:
        return self._execute("checking enabled", self.session.driver.is_enabled, fallback=False, recovery=recovery)

    def is_selected(self) -> bool:
        return self._execute("checking selected", self.session.driver.is_selected)

    # Actions

    def click(self, workaround: bool = True, recovery: bool = True) -> None:
        """
        Click on the element.

        When the click is intercepted the handle falls back to a script based
        click. If that fails too, the first interception error is raised.
        """
        driver = self.session.driver
        state = ClickWorkaroundState.INIT if workaround else ClickWorkaroundState.NONE
        first_error: Optional[NotClickableError] = None

        def perform(ref: RemoteElement) -> None:
            nonlocal state, first_error
            while True:
                try:
                    if state is ClickWorkaroundState.JAVASCRIPT_FALLBACK:
                        driver.execute_script(JAVASCRIPT_CLICK, ref)
                    else:
                        driver.click(ref)
                except NotClickableError as error:
                    if state is ClickWorkaroundState.NONE:
                        raise
                    if first_error is None:
                        first_error = error
                        self.session.snapshot(Severity.INFO, "element_not_clickable", error=error)
                    state = self._next_click_state(state)
                    if state is ClickWorkaroundState.FAILED:
                        raise first_error
                    continue
                except RemoteDriverError as error:
                    if state is not ClickWorkaroundState.JAVASCRIPT_FALLBACK or isinstance(error, UnexpectedAlertError):
                        raise
                    state = self._next_click_state(state)
                    raise first_error from error
                if state not in (ClickWorkaroundState.INIT, ClickWorkaroundState.NONE):
                    self.logger.info("click_workaround_succeeded", locator=self.full_locator(), state=state.value)
                    if self.session.metrics is not None:
                        self.session.metrics.record_click_workaround(self.full_locator(), state.value)
                return

        self._execute("clicking", perform, recovery=recovery)

    def _next_click_state(self, state: ClickWorkaroundState) -> ClickWorkaroundState:
        next_state = (
            ClickWorkaroundState.JAVASCRIPT_FALLBACK if state is ClickWorkaroundState.INIT else ClickWorkaroundState.FAILED
        )
        self.logger.warning(
            "click_workaround_transition", locator=self.full_locator(), old=state.value, new=next_state.value
        )
        return next_state

    def clear(self) -> None:
        self._execute("clearing", self.session.driver.clear)

    def send_keys(self, text: str, password: bool = False) -> None:
        """Type ``text`` in the element. Passwords are never logged."""
        driver = self.session.driver
        self.logger.debug("element_send_keys", locator=self.full_locator(), text="***" if password else text)
        self._execute("sending keys", lambda ref: driver.send_keys(ref, text))

    def submit(self) -> None:
        self._execute("submitting", self.session.driver.submit)

    def execute_script(self, script: str, *args: Any) -> Any:
        """Run ``script`` with the element as ``arguments[0]``."""
        driver = self.session.driver
        return self._execute("executing script", lambda ref: driver.execute_script(script, ref, *args))

    def scroll_into_view(self) -> None:
        self.execute_script(SCROLL_INTO_VIEW)

    def alter(self, select: bool) -> bool:
        """Click the element if its selection state differs from ``select``. Return True if clicked."""
        if self.is_selected() == select:
            return False
        self.click()
        return True

    def select(self) -> bool:
        return self.alter(True)

    def unselect(self) -> bool:
        return self.alter(False)

    # Searching

    def find_element(
        self,
        locator: Locator,
        required: bool = True,
        timeout: Optional[float] = None,
        allow_multiple: bool = False,
    ) -> Optional["ElementHandle"]:
        """
        Wait for a displayed descendant matching ``locator``.

        Returns None if the descendant is optional and was not found in time.

        Raises:
            WaitTimeoutError: If the descendant is required and was not found in time.
            MultipleElementsFoundError: If several descendants match and
                ``allow_multiple`` is not set.
        """
        return self._execute(
            f"finding element {locator}",
            lambda _ref: self.session.find_element(
                locator,
                frame=self._frame,
                required=required,
                timeout=timeout,
                allow_multiple=allow_multiple,
                context=self,
            ),
        )

    def find_elements(self, locator: Locator, displayed_only: bool = True) -> List["ElementHandle"]:
        """Return the descendants matching ``locator``; an empty list if this element cannot be recovered."""
        driver = self.session.driver

        def search(ref: RemoteElement) -> List[ElementHandle]:
            refs = driver.find_elements(ref, locator)
            return ElementHandle.wrap_list(
                self.session, locator, refs, context=self, frame=self._frame, displayed_only=displayed_only
            )

        return self._execute(f"finding elements {locator}", search, fallback=[])

    @classmethod
    def wrap_list(
        cls,
        session: "BrowserSession",
        locator: Locator,
        refs: Sequence[RemoteElement],
        context: Optional["ElementHandle"] = None,
        frame: Optional[Frame] = None,
        displayed_only: bool = True,
    ) -> List["ElementHandle"]:
        """
        Build list handles from the result of a multi-element search.

        Every handle remembers the size of the whole result and its index in it,
        including when hidden elements are filtered out.
        """
        size = len(refs)
        handles = []
        for index, ref in enumerate(refs):
            if displayed_only:
                try:
                    if not session.driver.is_displayed(ref):
                        continue
                except StaleReferenceError:
                    continue
            handles.append(
                cls(session, locator, context=context, frame=frame, remote_ref=ref, sibling_count=size, sibling_index=index)
            )
        return handles

    # Waits

    def _timeout(self, timeout: Optional[float]) -> float:
        return self.session.app_config.timeouts.default_timeout if timeout is None else timeout

    def _condition(self, predicate: Callable[[], bool], label: str, fail: bool) -> WaitCondition:
        return WaitCondition(
            predicate,
            f"{label} ({self.full_locator()})",
            fail=fail,
            poll_interval=self.session.app_config.timeouts.poll_interval,
        )

    def wait_until_displayed(self, timeout: Optional[float] = None, fail: bool = True) -> bool:
        return self._condition(self.is_displayed, "element displayed", fail).wait_until(self._timeout(timeout))

    def wait_while_displayed(self, timeout: Optional[float] = None, fail: bool = True) -> bool:
        """Wait for the element to vanish. A removed element counts as not displayed."""
        return self._condition(
            lambda: self.is_displayed(recovery=False), "element displayed", fail
        ).wait_while(self._timeout(timeout))

    def wait_until_enabled(self, timeout: Optional[float] = None, fail: bool = True) -> bool:
        return self._condition(self.is_enabled, "element enabled", fail).wait_until(self._timeout(timeout))

    def wait_for_text(self, expected: str, timeout: Optional[float] = None, fail: bool = True) -> bool:
        return self._condition(
            lambda: self.get_text() == expected, f"element text is '{expected}'", fail
        ).wait_until(self._timeout(timeout))
