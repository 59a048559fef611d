import os
import sys
from typing import Any, Dict, List, Optional

import pytest

# Adjust the python path to import the project modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from config import AppConfig, ExecutionConfig, RecoveryConfig, ThresholdsConfig, TimeoutsConfig
from core.element import JAVASCRIPT_CLICK
from core.errors import ElementNotFoundError, StaleReferenceError
from core.frames import Frame
from core.metrics import MetricsCollector
from core.remote import Locator
from core.session import BrowserSession


class FakeElement:
    """In-memory element of the fake remote session."""

    def __init__(
        self,
        text: str = "",
        displayed: bool = True,
        enabled: bool = True,
        selected: bool = False,
        tag: str = "div",
        attributes: Optional[Dict[str, str]] = None,
    ):
        self.text = text
        self.displayed = displayed
        self.enabled = enabled
        self.selected = selected
        self.tag = tag
        self.attributes = attributes or {}
        self.children: Dict[Locator, List["FakeElement"]] = {}
        self.stale = False
        self.clicks = 0
        self.click_errors: List[Exception] = []
        self.errors: Dict[str, Any] = {}
        self.typed: List[str] = []

    def add_child(self, locator: Locator, *elements: "FakeElement") -> None:
        self.children.setdefault(locator, []).extend(elements)

    def __repr__(self):
        return f"FakeElement({self.text!r}, displayed={self.displayed}, stale={self.stale})"


class FakeDriver:
    """
    Remote driver keeping its documents in memory.

    Each frame (None for the top document) maps locators to elements.
    """

    def __init__(self):
        self.documents: Dict[Optional[str], Dict[Locator, List[FakeElement]]] = {None: {}}
        self.frames: List[Frame] = []
        self.active_frame: Optional[Frame] = None
        self.frame_switches: List[Optional[Frame]] = []
        self.alerts: List[str] = []
        self.scripts: List[tuple] = []
        self.script_errors: List[Exception] = []
        self.windows = ["main"]
        self.refreshes = 0
        self.opened_urls: List[str] = []
        self.url = "http://localhost/page"

    # Test setup helpers

    def add(self, locator: Locator, *elements: FakeElement, frame: Optional[Frame] = None) -> None:
        key = frame.name if frame else None
        if frame is not None and frame not in self.frames:
            self.frames.append(frame)
        self.documents.setdefault(key, {}).setdefault(locator, []).extend(elements)

    def replace(self, locator: Locator, *elements: FakeElement, frame: Optional[Frame] = None) -> None:
        """Invalidate the current elements of ``locator`` and put new ones instead."""
        key = frame.name if frame else None
        for old in self.documents.get(key, {}).get(locator, []):
            old.stale = True
        self.documents.setdefault(key, {})[locator] = list(elements)

    def _document(self) -> Dict[Locator, List[FakeElement]]:
        key = self.active_frame.name if self.active_frame else None
        return self.documents.setdefault(key, {})

    def _check(self, element: FakeElement, operation: str) -> FakeElement:
        if element.stale:
            raise StaleReferenceError(f"stale element reference while {operation}")
        error = element.errors.get(operation)
        if isinstance(error, list):
            # One-shot errors
            if error:
                raise error.pop(0)
        elif error is not None:
            raise error
        return element

    # Searching

    def find_elements(self, context, locator):
        if context is not None:
            return list(self._check(context, "find_elements").children.get(locator, []))
        return list(self._document().get(locator, []))

    def find_element(self, context, locator):
        found = self.find_elements(context, locator)
        if not found:
            raise ElementNotFoundError("No such element", locator=locator)
        return found[0]

    # Element reads

    def get_attribute(self, element, name):
        return self._check(element, "get_attribute").attributes.get(name)

    def get_text(self, element):
        return self._check(element, "get_text").text

    def get_tag_name(self, element):
        return self._check(element, "get_tag_name").tag

    def get_size(self, element):
        self._check(element, "get_size")
        return (10, 20)

    def get_location(self, element):
        self._check(element, "get_location")
        return (1, 2)

    def is_displayed(self, element):
        return self._check(element, "is_displayed").displayed

    def is_enabled(self, element):
        return self._check(element, "is_enabled").enabled

    def is_selected(self, element):
        return self._check(element, "is_selected").selected

    # Element actions

    def click(self, element):
        self._check(element, "click")
        if element.click_errors:
            raise element.click_errors.pop(0)
        element.clicks += 1
        element.selected = not element.selected

    def clear(self, element):
        self._check(element, "clear").typed.clear()

    def send_keys(self, element, text):
        self._check(element, "send_keys").typed.append(text)

    def submit(self, element):
        self._check(element, "submit")

    def execute_script(self, script, *args):
        self.scripts.append((script, args))
        if args and isinstance(args[0], FakeElement):
            self._check(args[0], "execute_script")
        if self.script_errors:
            raise self.script_errors.pop(0)
        if script == JAVASCRIPT_CLICK:
            args[0].clicks += 1
        return None

    # Frames

    def switch_to_frame(self, frame):
        self.frame_switches.append(frame)
        self.active_frame = frame

    def list_frames(self):
        return list(self.frames)

    # Session

    def window_handles(self):
        return list(self.windows)

    def close_other_windows(self):
        self.windows = self.windows[:1]

    def purge_alert(self):
        return self.alerts.pop(0) if self.alerts else None

    def open_url(self, url):
        self.opened_urls.append(url)
        self.url = url

    def refresh(self):
        self.refreshes += 1

    def current_url(self):
        return self.url

    def take_screenshot(self):
        return b"\x89PNG"

    def page_source(self):
        return "<html><body>contact: someone@example.com</body></html>"


@pytest.fixture
def app_config():
    """Configuration with short waits and no recovery pauses."""
    return AppConfig(
        recovery=RecoveryConfig(max_attempts=5, pause_seconds=0),
        timeouts=TimeoutsConfig(default_timeout=0.3, short_timeout=0.1, poll_interval=0.02),
        thresholds=ThresholdsConfig(),
        execution=ExecutionConfig(restart_pause_seconds=0),
    )


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def metrics(app_config):
    return MetricsCollector(app_config)


@pytest.fixture
def session(driver, app_config, metrics):
    return BrowserSession(driver, app_config, metrics=metrics)
