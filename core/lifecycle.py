"""
Browser session lifecycle used by the orchestrator remediation steps.

``GuardedSessionLifecycle`` opens sessions through a caller supplied factory
and protects restarts with a circuit breaker: once too many restarts failed in
a row, further restarts are refused immediately with
``CannotStartSessionError`` until the breaker reset timeout elapsed.
"""

from typing import Callable, Optional, Protocol

import pybreaker
import structlog

from config import AppConfig
from core.errors import CannotStartSessionError, ImplementationError, ScenarioError
from core.logger import bind_context, get_structured_logger
from core.pages import PageRef, PageRegistry
from core.session import BrowserSession

SessionFactory = Callable[[Optional[str]], BrowserSession]


class SessionLifecycle(Protocol):
    """What the orchestrator needs to manage the browser session."""

    @property
    def session(self) -> Optional[BrowserSession]: ...

    def open_new_session(self, user: Optional[str] = None) -> BrowserSession: ...

    def reload_page(self, page: PageRef, user: Optional[str] = None) -> None: ...

    def close_other_windows(self) -> None: ...


class RestartBreakerListener(pybreaker.CircuitBreakerListener):
    """Logs the state changes and failures of the session restart breaker."""

    def __init__(self, logger: structlog.BoundLogger):
        self.logger = logger

    def state_change(self, breaker, old_state, new_state):
        self.logger.warning(
            "circuit_breaker_state_change",
            breaker=breaker.name,
            old_state=str(old_state.name),
            new_state=str(new_state.name),
        )

    def failure(self, breaker, exc):
        self.logger.error(
            "circuit_breaker_failure",
            breaker=breaker.name,
            error=str(exc),
            failure_count=breaker.fail_counter,
            threshold=breaker.fail_max,
        )

    def success(self, breaker):
        self.logger.debug("circuit_breaker_success", breaker=breaker.name)


class GuardedSessionLifecycle:
    """
    Session lifecycle with circuit breaker protected session opening.

    Args:
        open_session: Factory opening a new browser session for a user.
        pages: Registry used to reopen the current page after a restart.
        app_config: The application configuration object.
    """

    def __init__(self, open_session: SessionFactory, pages: PageRegistry, app_config: AppConfig):
        self._open_session = open_session
        self.pages = pages
        self.app_config = app_config
        self.logger = bind_context(get_structured_logger(__name__), component="session_lifecycle")
        self.breaker = pybreaker.CircuitBreaker(
            fail_max=app_config.lifecycle.restart_failure_threshold,
            reset_timeout=app_config.lifecycle.restart_reset_timeout,
            name="session_restart",
            listeners=[RestartBreakerListener(self.logger)],
        )
        self._session: Optional[BrowserSession] = None

    @property
    def session(self) -> Optional[BrowserSession]:
        return self._session

    def open_new_session(self, user: Optional[str] = None) -> BrowserSession:
        """
        Open a new browser session, replacing the current one.

        Raises:
            CannotStartSessionError: If the session cannot be opened or too many
                openings failed recently.
        """
        self.logger.info("session_opening", user=user, breaker_state=self.breaker.current_state)
        try:
            session = self.breaker.call(self._open_session, user)
        except pybreaker.CircuitBreakerError as exc:
            raise CannotStartSessionError(
                "Too many failures while opening a browser session, give up", details={"user": user}
            ) from exc
        except CannotStartSessionError:
            raise
        except (ScenarioError, OSError) as exc:
            raise CannotStartSessionError(f"Cannot open a browser session: {exc}", details={"user": user}) from exc
        self._session = session
        self.logger.info("session_opened", user=user)
        return session

    def reload_page(self, page: PageRef, user: Optional[str] = None) -> None:
        """Open ``page`` again in the current session."""
        if self._session is None:
            raise ImplementationError(f"No session available to reload page '{page.key}'")
        if user is not None and user != page.user:
            page = PageRef(page.key, page.url, user)
        self.pages.open(page, self._session)

    def close_other_windows(self) -> None:
        if self._session is not None:
            self._session.close_other_windows()
