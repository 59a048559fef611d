"""
Browser session facade used by element handles and the orchestrator.

A ``BrowserSession`` owns the frame tracking of one remote driver and offers
the document-level operations (searching, alert purging, window cleanup,
refresh) that sit above individual elements.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, List, Optional, Tuple

from config import AppConfig
from core.element import ElementHandle
from core.errors import ElementNotFoundError, MultipleElementsFoundError, ScenarioFailedError, StaleReferenceError, WaitTimeoutError
from core.frames import Frame, FrameContext
from core.logger import get_structured_logger
from core.remote import Locator, RemoteDriver, RemoteElement
from core.wait import WaitCondition
from diagnostics import DiagnosticSink, NullSink, Severity

if TYPE_CHECKING:
    from core.metrics import MetricsCollector
    from core.pages import PageRef

MAX_ALERTS = 10


class BrowserSession:
    """
    One remote browser session.

    Args:
        driver: The remote driver implementation.
        app_config: Configuration of the scenario execution.
        diagnostics: Where snapshots go. Defaults to a sink that drops them.
        metrics: Optional metrics collector for recovery statistics.
    """

    def __init__(
        self,
        driver: RemoteDriver,
        app_config: AppConfig,
        diagnostics: Optional[DiagnosticSink] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.driver = driver
        self.app_config = app_config
        self.frames = FrameContext(driver)
        self.diagnostics = diagnostics or NullSink()
        self.metrics = metrics
        self.current_page: Optional["PageRef"] = None
        self.logger = get_structured_logger(__name__)

    # Searching

    def find_element(
        self,
        locator: Locator,
        frame: Optional[Frame] = None,
        required: bool = True,
        timeout: Optional[float] = None,
        allow_multiple: bool = False,
        context: Optional[ElementHandle] = None,
    ) -> Optional[ElementHandle]:
        """
        Wait for a single displayed element matching ``locator``.

        Returns:
            The element handle, or None when the element is optional and
            was not found before the timeout.

        Raises:
            WaitTimeoutError: If the element is required and not found in time.
            MultipleElementsFoundError: If several displayed elements match and
                ``allow_multiple`` is not set.
        """
        if timeout is None:
            timeout = self.app_config.timeouts.default_timeout if required else self.app_config.timeouts.short_timeout
        found: List[RemoteElement] = []

        def search() -> bool:
            with self.frames.selected(frame):
                refs = self.driver.find_elements(context.remote_ref if context else None, locator)
                found[:] = [ref for ref in refs if self._is_displayed_quietly(ref)]
            return bool(found)

        WaitCondition(
            search,
            f"Element {locator} is displayed",
            fail=False,
            poll_interval=self.app_config.timeouts.poll_interval,
        ).wait_until(timeout)

        if not found:
            if required:
                raise WaitTimeoutError(
                    f"Cannot find element after {timeout:g} seconds",
                    locator=locator,
                    frame=frame,
                )
            return None
        if len(found) > 1 and not allow_multiple:
            raise MultipleElementsFoundError(count=len(found), locator=locator, frame=frame)
        return ElementHandle(self, locator, context=context, frame=frame, remote_ref=found[0])

    def find_elements(
        self,
        locator: Locator,
        frame: Optional[Frame] = None,
        displayed_only: bool = True,
    ) -> List[ElementHandle]:
        """Return the handles of all elements matching ``locator`` in the whole document."""
        with self.frames.selected(frame):
            refs = self.driver.find_elements(None, locator)
            return ElementHandle.wrap_list(self, locator, refs, context=None, frame=frame, displayed_only=displayed_only)

    def find_element_in_frames(self, locator: Locator) -> Optional[Tuple[RemoteElement, Optional[Frame]]]:
        """
        Search ``locator`` in the top document and then in every frame of the page.

        The driver is left pointing at the frame where the element was found;
        callers are expected to run this inside a ``FrameContext.selected`` scope.
        """
        candidates: List[Tuple[RemoteElement, Optional[Frame]]] = []
        for frame in [None, *self.driver.list_frames()]:
            self.frames.switch_active(frame)
            try:
                candidates.append((self.driver.find_element(None, locator), frame))
            except (ElementNotFoundError, StaleReferenceError):
                continue
        if not candidates:
            return None
        if len(candidates) > 1:
            self.logger.warning("element_found_in_several_frames", locator=str(locator), count=len(candidates))
        ref, frame = candidates[0]
        self.frames.switch_active(frame)
        return ref, frame

    def _is_displayed_quietly(self, ref: RemoteElement) -> bool:
        try:
            return self.driver.is_displayed(ref)
        except StaleReferenceError:
            return False

    # Session level operations

    def purge_alerts(self, action: str) -> int:
        """
        Accept every pending alert.

        Returns:
            The number of alerts purged.

        Raises:
            ScenarioFailedError: If more than ``MAX_ALERTS`` alerts pop up in a row.
        """
        count = 0
        while True:
            text = self.driver.purge_alert()
            if text is None:
                return count
            count += 1
            self.logger.warning("alert_purged", count=count, text=text, action=action)
            if count >= MAX_ALERTS:
                raise ScenarioFailedError("Too many unexpected alerts, give up!", details={"action": action})

    def close_other_windows(self) -> None:
        self.logger.info("closing_other_windows", windows=len(self.driver.window_handles()))
        self.driver.close_other_windows()
        self.frames.reset()

    def refresh(self) -> None:
        self.logger.info("refreshing_page", url=self.driver.current_url())
        self.driver.refresh()
        self.purge_alerts("While refreshing page...")
        self.frames.reset()

    def execute_script(self, script: str, *args: Any) -> Any:
        return self.driver.execute_script(script, *args)

    def take_screenshot(self) -> bytes:
        return self.driver.take_screenshot()

    def snapshot(self, severity: Severity, label: str, error: Optional[BaseException] = None) -> None:
        """Forward a snapshot request to the diagnostic sink."""
        self.diagnostics.capture(severity, label, error=error)

    def pause(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)
