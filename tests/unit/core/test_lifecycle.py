"""
Unit tests for the guarded session lifecycle.
"""

from unittest.mock import MagicMock

import pytest

from config import LifecycleConfig
from core.errors import CannotStartSessionError, ImplementationError, RemoteDriverError
from core.lifecycle import GuardedSessionLifecycle
from core.pages import PageRef, PageRegistry, UrlPage

HOME = PageRef("home", "http://localhost/home", user="alice")


@pytest.fixture
def pages():
    registry = PageRegistry()
    registry.register("home", UrlPage)
    return registry


@pytest.fixture
def guarded_config(app_config):
    return app_config.model_copy(update={"lifecycle": LifecycleConfig(restart_failure_threshold=2)})


def test_open_new_session(session, pages, guarded_config):
    factory = MagicMock(return_value=session)
    lifecycle = GuardedSessionLifecycle(factory, pages, guarded_config)

    assert lifecycle.session is None
    assert lifecycle.open_new_session("alice") is session
    assert lifecycle.session is session
    factory.assert_called_once_with("alice")


def test_factory_errors_become_cannot_start_session(pages, guarded_config):
    error = RemoteDriverError("driver binary missing")
    lifecycle = GuardedSessionLifecycle(MagicMock(side_effect=error), pages, guarded_config)

    with pytest.raises(CannotStartSessionError) as excinfo:
        lifecycle.open_new_session()

    assert excinfo.value.__cause__ is error


def test_breaker_refuses_restarts_after_repeated_failures(pages, guarded_config):
    factory = MagicMock(side_effect=OSError("port in use"))
    lifecycle = GuardedSessionLifecycle(factory, pages, guarded_config)

    for _ in range(3):
        with pytest.raises(CannotStartSessionError):
            lifecycle.open_new_session()

    assert factory.call_count == 2
    assert lifecycle.breaker.current_state == "open"


def test_reload_page_reopens_the_page(driver, session, pages, guarded_config):
    lifecycle = GuardedSessionLifecycle(MagicMock(return_value=session), pages, guarded_config)
    lifecycle.open_new_session("bob")

    lifecycle.reload_page(HOME, "bob")

    assert driver.opened_urls == [HOME.url]
    assert session.current_page == PageRef("home", HOME.url, "bob")


def test_reload_page_without_session(pages, guarded_config):
    lifecycle = GuardedSessionLifecycle(MagicMock(), pages, guarded_config)

    with pytest.raises(ImplementationError):
        lifecycle.reload_page(HOME)


def test_close_other_windows(driver, session, pages, guarded_config):
    lifecycle = GuardedSessionLifecycle(MagicMock(return_value=session), pages, guarded_config)
    lifecycle.close_other_windows()

    lifecycle.open_new_session()
    driver.windows = ["main", "popup"]
    lifecycle.close_other_windows()

    assert driver.windows == ["main"]
