"""
Tracking of the sub-document (frame) selected in a remote session.

The frame selected in the remote session is global to that session, so any
operation that needs a different frame must save, switch and restore it. The
``FrameContext.selected`` context manager does exactly that, including when
the wrapped operation raises.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Optional

from core.logger import get_structured_logger

if TYPE_CHECKING:
    from core.remote import RemoteDriver

logger = get_structured_logger(__name__)


@dataclass(frozen=True)
class Frame:
    """A frame of the page, identified by its name (or id) attribute."""

    name: str
    url: Optional[str] = None

    def __str__(self) -> str:
        return f"frame '{self.name}'"


class FrameContext:
    """
    Remembers which frame is selected in a session.

    ``current`` is the frame the session has been explicitly moved to with
    :meth:`select`. ``active`` is the frame the remote driver is actually
    pointing at, which differs from ``current`` only while a temporary switch
    made by :meth:`selected` or :meth:`switch_active` is in progress.
    """

    def __init__(self, driver: "RemoteDriver"):
        self._driver = driver
        self._current: Optional[Frame] = None
        self._active: Optional[Frame] = None

    @property
    def current(self) -> Optional[Frame]:
        return self._current

    @property
    def active(self) -> Optional[Frame]:
        return self._active

    def select(self, frame: Optional[Frame]) -> None:
        """Move the session to ``frame`` (None for the top document) and store it."""
        logger.debug("frame_select", frame=str(frame), previous=str(self._current))
        self._driver.switch_to_frame(frame)
        self._current = frame
        self._active = frame

    def reset(self) -> None:
        self.select(None)

    def switch_active(self, frame: Optional[Frame]) -> None:
        """Point the driver at ``frame`` without changing the stored frame."""
        if frame != self._active:
            self._driver.switch_to_frame(frame)
            self._active = frame

    @contextmanager
    def selected(self, frame: Optional[Frame]) -> Iterator[Optional[Frame]]:
        """Temporarily point the driver at ``frame``; restore the previous one on exit."""
        previous = self._active
        self.switch_active(frame)
        try:
            yield frame
        finally:
            if self._active != previous:
                self._driver.switch_to_frame(previous)
                self._active = previous
