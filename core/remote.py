"""
Interfaces between the resilience layer and the remote browser driver.

``RemoteDriver`` is what a concrete driver (see ``drivers/``) must provide.
Drivers translate their own exceptions into the taxonomy of ``core.errors``;
in particular a stale reference must surface as ``StaleReferenceError`` and
never as ``ElementNotFoundError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, Tuple, runtime_checkable

from core.frames import Frame


@dataclass(frozen=True)
class Locator:
    """How to find an element: a strategy (css, xpath, text...) and its value."""

    strategy: str
    value: str

    @classmethod
    def css(cls, value: str) -> "Locator":
        return cls("css", value)

    @classmethod
    def xpath(cls, value: str) -> "Locator":
        return cls("xpath", value)

    def __str__(self) -> str:
        return f"{self.strategy}={self.value}"


class RemoteElement(Protocol):
    """Opaque reference to an element living in the remote session."""


class RemoteDriver(Protocol):
    """Remote session operations consumed by ``BrowserSession`` and ``ElementHandle``."""

    # Searching. A context of None means the currently selected document.
    def find_element(self, context: Optional[RemoteElement], locator: Locator) -> RemoteElement: ...

    def find_elements(self, context: Optional[RemoteElement], locator: Locator) -> List[RemoteElement]: ...

    # Element reads
    def get_attribute(self, element: RemoteElement, name: str) -> Optional[str]: ...

    def get_text(self, element: RemoteElement) -> str: ...

    def get_tag_name(self, element: RemoteElement) -> str: ...

    def get_size(self, element: RemoteElement) -> Tuple[int, int]: ...

    def get_location(self, element: RemoteElement) -> Tuple[int, int]: ...

    def is_displayed(self, element: RemoteElement) -> bool: ...

    def is_enabled(self, element: RemoteElement) -> bool: ...

    def is_selected(self, element: RemoteElement) -> bool: ...

    # Element actions
    def click(self, element: RemoteElement) -> None: ...

    def clear(self, element: RemoteElement) -> None: ...

    def send_keys(self, element: RemoteElement, text: str) -> None: ...

    def submit(self, element: RemoteElement) -> None: ...

    def execute_script(self, script: str, *args: Any) -> Any: ...

    # Frames
    def switch_to_frame(self, frame: Optional[Frame]) -> None: ...

    def list_frames(self) -> List[Frame]: ...

    # Session
    def window_handles(self) -> List[str]: ...

    def close_other_windows(self) -> None: ...

    def purge_alert(self) -> Optional[str]: ...

    def open_url(self, url: str) -> None: ...

    def refresh(self) -> None: ...

    def current_url(self) -> str: ...

    def take_screenshot(self) -> bytes: ...

    def page_source(self) -> str: ...


@runtime_checkable
class RemoteElementOps(Protocol):
    """Element operations exposed upward by ``ElementHandle``."""

    def get_attribute(self, name: str) -> Optional[str]: ...

    def get_text(self) -> str: ...

    def get_tag_name(self) -> str: ...

    def is_displayed(self) -> bool: ...

    def is_enabled(self) -> bool: ...

    def is_selected(self) -> bool: ...

    def click(self) -> None: ...

    def clear(self) -> None: ...

    def send_keys(self, text: str) -> None: ...

    def find_element(self, locator: Locator, required: bool = True, timeout: Optional[float] = None) -> Any: ...

    def find_elements(self, locator: Locator, displayed_only: bool = True) -> List[Any]: ...
