"""
Unit tests for the page registry.
"""

import pytest

from core.errors import ImplementationError
from core.frames import Frame
from core.pages import PageRef, PageRegistry, UrlPage

PROJECTS = PageRef("projects", "http://localhost/projects")


class ProjectsPage(UrlPage):
    loaded = 0

    def load(self):
        super().load()
        ProjectsPage.loaded += 1


def test_register_and_create(session):
    registry = PageRegistry()
    registry.register("projects", ProjectsPage)

    page = registry.create(PROJECTS, session)

    assert isinstance(page, ProjectsPage)
    assert page.ref == PROJECTS
    assert "projects" in registry
    assert registry.keys() == ["projects"]


def test_duplicate_key_is_rejected():
    registry = PageRegistry()
    registry.register("projects", UrlPage)

    with pytest.raises(ImplementationError):
        registry.register("projects", ProjectsPage)


def test_unknown_key_is_rejected(session):
    registry = PageRegistry()
    registry.register("home", UrlPage)

    with pytest.raises(ImplementationError, match="registered types: home"):
        registry.create(PROJECTS, session)


def test_open_loads_the_page(driver, session):
    registry = PageRegistry()
    registry.register("projects", ProjectsPage)
    session.frames.select(Frame("editor"))
    before = ProjectsPage.loaded

    registry.open(PROJECTS, session)

    assert ProjectsPage.loaded == before + 1
    assert driver.opened_urls == [PROJECTS.url]
    assert session.current_page == PROJECTS
    assert session.frames.current is None
