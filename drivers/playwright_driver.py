"""
Remote driver implementation on top of the Playwright sync API.

``PlaywrightDriver`` adapts one Playwright page to the ``RemoteDriver``
protocol and translates Playwright errors into the failure taxonomy of
``core.errors``. ``PlaywrightSessionFactory`` launches browsers and builds the
``BrowserSession`` objects handed to the session lifecycle.
"""

from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Tuple

from playwright.sync_api import Browser, Dialog, ElementHandle, Page, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Frame as PlaywrightFrame
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from config import AppConfig
from core.errors import (
    CannotStartSessionError,
    ElementNotFoundError,
    NotClickableError,
    RemoteDriverError,
    SessionUnreachableError,
    StaleReferenceError,
    UnexpectedAlertError,
)
from core.frames import Frame
from core.logger import get_structured_logger
from core.metrics import MetricsCollector
from core.remote import Locator
from core.session import BrowserSession
from diagnostics import DiagnosticOptions, SnapshotSink

STALE_PATTERNS = (
    "not attached to the dom",
    "element is not attached",
    "jshandle is disposed",
    "elementhandle is disposed",
    "execution context was destroyed",
    "frame was detached",
)
NOT_CLICKABLE_PATTERNS = (
    "intercepts pointer events",
    "element is not visible",
    "element is outside of the viewport",
    "element is not enabled",
)
UNREACHABLE_PATTERNS = (
    "target page, context or browser has been closed",
    "browser has been closed",
    "target closed",
    "connection closed",
    "browser has disconnected",
)

# Runs a script written against an ``arguments`` array
SCRIPT_WRAPPER = "(args) => (function() {{ {script} }}).apply(null, args)"


def to_selector(locator: Locator) -> str:
    """Turn a locator into a Playwright selector."""
    strategy = locator.strategy
    if strategy == "css":
        return locator.value
    if strategy == "id":
        return f"id={locator.value}"
    if strategy == "name":
        return f"[name=\"{locator.value}\"]"
    return f"{strategy}={locator.value}"


def translate_error(exc: PlaywrightError, action: str) -> Exception:
    message = exc.message if getattr(exc, "message", None) else str(exc)
    lowered = message.lower()
    text = f"{action}: {message}"
    if any(pattern in lowered for pattern in UNREACHABLE_PATTERNS):
        return SessionUnreachableError(text)
    if any(pattern in lowered for pattern in STALE_PATTERNS):
        return StaleReferenceError(text)
    if any(pattern in lowered for pattern in NOT_CLICKABLE_PATTERNS):
        return NotClickableError(text)
    return RemoteDriverError(text, details={"timeout": isinstance(exc, PlaywrightTimeoutError)})


class PlaywrightDriver:
    """
    ``RemoteDriver`` backed by one Playwright page.

    Dialogs are accepted as soon as they open and their messages kept until
    :meth:`purge_alert` reports them. While a dialog is pending, the next
    driver operation raises ``UnexpectedAlertError``.
    """

    def __init__(self, page: Page, app_config: AppConfig):
        self.page = page
        self.app_config = app_config
        self.logger = get_structured_logger(__name__)
        self.action_timeout_ms = int(app_config.timeouts.short_timeout * 1000)
        self._frame: PlaywrightFrame = page.main_frame
        self._dialogs: List[str] = []
        page.set_default_navigation_timeout(app_config.browser.navigation_timeout_ms)
        page.on("dialog", self._on_dialog)

    def _on_dialog(self, dialog: Dialog) -> None:
        self._dialogs.append(dialog.message)
        try:
            dialog.accept()
        except PlaywrightError as exc:
            self.logger.debug("dialog_accept_failed", error=str(exc))
        self.logger.warning("dialog_opened", type=dialog.type, text=dialog.message)

    @contextmanager
    def _translated(self, action: str) -> Iterator[None]:
        if self._dialogs:
            raise UnexpectedAlertError(f"{action}: unexpected alert '{self._dialogs[0]}'")
        try:
            yield
        except PlaywrightError as exc:
            raise translate_error(exc, action) from exc

    # Searching

    def find_element(self, context: Optional[ElementHandle], locator: Locator) -> ElementHandle:
        root = context if context is not None else self._frame
        with self._translated(f"finding {locator}"):
            found = root.query_selector(to_selector(locator))
        if found is None:
            raise ElementNotFoundError("No element matches the locator", locator=locator)
        return found

    def find_elements(self, context: Optional[ElementHandle], locator: Locator) -> List[ElementHandle]:
        root = context if context is not None else self._frame
        with self._translated(f"finding all {locator}"):
            return root.query_selector_all(to_selector(locator))

    # Element reads

    def get_attribute(self, element: ElementHandle, name: str) -> Optional[str]:
        with self._translated(f"getting attribute '{name}'"):
            return element.get_attribute(name)

    def get_text(self, element: ElementHandle) -> str:
        with self._translated("getting text"):
            return element.inner_text()

    def get_tag_name(self, element: ElementHandle) -> str:
        with self._translated("getting tag name"):
            return element.evaluate("e => e.tagName.toLowerCase()")

    def _box(self, element: ElementHandle) -> dict:
        return element.bounding_box() or {"x": 0, "y": 0, "width": 0, "height": 0}

    def get_size(self, element: ElementHandle) -> Tuple[int, int]:
        with self._translated("getting size"):
            box = self._box(element)
        return int(box["width"]), int(box["height"])

    def get_location(self, element: ElementHandle) -> Tuple[int, int]:
        with self._translated("getting location"):
            box = self._box(element)
        return int(box["x"]), int(box["y"])

    def is_displayed(self, element: ElementHandle) -> bool:
        with self._translated("checking visibility"):
            return element.is_visible()

    def is_enabled(self, element: ElementHandle) -> bool:
        with self._translated("checking enabled state"):
            return element.is_enabled()

    def is_selected(self, element: ElementHandle) -> bool:
        with self._translated("checking selected state"):
            return bool(element.evaluate("e => !!(e.checked || e.selected)"))

    # Element actions

    def click(self, element: ElementHandle) -> None:
        with self._translated("clicking"):
            element.click(timeout=self.action_timeout_ms)

    def clear(self, element: ElementHandle) -> None:
        with self._translated("clearing"):
            element.fill("", timeout=self.action_timeout_ms)

    def send_keys(self, element: ElementHandle, text: str) -> None:
        with self._translated("typing"):
            element.type(text, timeout=self.action_timeout_ms)

    def submit(self, element: ElementHandle) -> None:
        with self._translated("submitting"):
            element.evaluate("e => { const f = e.form || e.closest('form'); if (f) f.requestSubmit(); }")

    def execute_script(self, script: str, *args: Any) -> Any:
        with self._translated("executing script"):
            return self._frame.evaluate(SCRIPT_WRAPPER.format(script=script), list(args))

    # Frames

    def switch_to_frame(self, frame: Optional[Frame]) -> None:
        if frame is None:
            self._frame = self.page.main_frame
            return
        for candidate in self.page.frames[1:]:
            if candidate.name == frame.name and (frame.name or candidate.url == frame.url):
                self._frame = candidate
                return
        raise RemoteDriverError(f"Cannot find {frame}", frame=frame)

    def list_frames(self) -> List[Frame]:
        return [Frame(f.name, f.url) for f in self.page.frames[1:]]

    # Session

    def window_handles(self) -> List[str]:
        return [str(index) for index, _ in enumerate(self.page.context.pages)]

    def close_other_windows(self) -> None:
        with self._translated("closing other windows"):
            for other in self.page.context.pages:
                if other is not self.page:
                    other.close()

    def purge_alert(self) -> Optional[str]:
        return self._dialogs.pop(0) if self._dialogs else None

    def open_url(self, url: str) -> None:
        with self._translated(f"opening {url}"):
            self.page.goto(url, wait_until="load")
        self._frame = self.page.main_frame

    def refresh(self) -> None:
        with self._translated("refreshing"):
            self.page.reload(wait_until="load")
        self._frame = self.page.main_frame

    def current_url(self) -> str:
        return self.page.url

    def take_screenshot(self) -> bytes:
        with self._translated("taking screenshot"):
            return self.page.screenshot(full_page=True)

    def page_source(self) -> str:
        with self._translated("getting page source"):
            return self.page.content()


class PlaywrightSessionFactory:
    """
    Opens browser sessions with Playwright.

    Each call closes the previous browser, if any, and launches a new one.
    Usable as the ``open_session`` factory of ``GuardedSessionLifecycle``.
    """

    def __init__(self, app_config: AppConfig, metrics: Optional[MetricsCollector] = None):
        self.app_config = app_config
        self.metrics = metrics
        self.logger = get_structured_logger(__name__)
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    def __call__(self, user: Optional[str] = None) -> BrowserSession:
        self.close()
        browser_cfg = self.app_config.browser
        self.logger.info("browser_launching", browser_type=browser_cfg.browser_type, headless=browser_cfg.headless, user=user)
        try:
            if self._playwright is None:
                self._playwright = sync_playwright().start()
            launcher = getattr(self._playwright, browser_cfg.browser_type)
            self._browser = launcher.launch(headless=browser_cfg.headless)
            page = self._browser.new_context(ignore_https_errors=True).new_page()
        except PlaywrightError as exc:
            raise CannotStartSessionError(f"Cannot launch {browser_cfg.browser_type}: {exc}") from exc

        driver = PlaywrightDriver(page, self.app_config)
        sink = SnapshotSink(driver, DiagnosticOptions.from_config(self.app_config.diagnostics))
        return BrowserSession(driver, self.app_config, diagnostics=sink, metrics=self.metrics)

    def close(self) -> None:
        if self._browser is not None:
            try:
                self._browser.close()
            except PlaywrightError as exc:
                self.logger.debug("browser_close_failed", error=str(exc))
            self._browser = None

    def shutdown(self) -> None:
        self.close()
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None
