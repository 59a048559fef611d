"""
Page construction through an explicit registry.

Pages are referenced by a ``PageRef`` (a symbolic page type plus the URL and
user it was opened with). The ``PageRegistry`` maps each page type to the
factory building the page object for a session, so reopening the current page
after a session restart needs no knowledge of the concrete page classes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Protocol

from core.errors import ImplementationError
from core.logger import get_structured_logger

if TYPE_CHECKING:
    from core.session import BrowserSession


@dataclass(frozen=True)
class PageRef:
    """Symbolic reference to a page displayed in a session."""

    key: str
    url: str
    user: Optional[str] = None


class Page(Protocol):
    ref: PageRef

    def load(self) -> None: ...


PageFactory = Callable[[PageRef, "BrowserSession"], Page]


class UrlPage:
    """Minimal page: loading it opens its URL."""

    def __init__(self, ref: PageRef, session: "BrowserSession"):
        self.ref = ref
        self.session = session

    def load(self) -> None:
        self.session.driver.open_url(self.ref.url)
        self.session.frames.reset()
        self.session.current_page = self.ref


class PageRegistry:
    """Maps page type keys to the factories building them."""

    def __init__(self):
        self._factories: Dict[str, PageFactory] = {}
        self.logger = get_structured_logger(__name__)

    def register(self, key: str, factory: PageFactory) -> None:
        if key in self._factories:
            raise ImplementationError(f"Page type '{key}' is already registered")
        self._factories[key] = factory
        self.logger.debug("page_type_registered", key=key)

    def keys(self) -> List[str]:
        return sorted(self._factories)

    def __contains__(self, key: str) -> bool:
        return key in self._factories

    def create(self, ref: PageRef, session: "BrowserSession") -> Page:
        """
        Build the page object for ``ref`` in ``session``.

        Raises:
            ImplementationError: If no factory is registered for ``ref.key``.
        """
        try:
            factory = self._factories[ref.key]
        except KeyError:
            raise ImplementationError(
                f"Unknown page type '{ref.key}', registered types: {', '.join(self.keys()) or 'none'}"
            ) from None
        return factory(ref, session)

    def open(self, ref: PageRef, session: "BrowserSession") -> Page:
        """Create the page for ``ref`` and load it in ``session``."""
        page = self.create(ref, session)
        page.load()
        session.current_page = ref
        self.logger.info("page_opened", key=ref.key, url=ref.url, user=ref.user)
        return page
