"""
Unit tests for the browser session facade.
"""

from unittest.mock import MagicMock

import pytest

from conftest import FakeElement
from core.errors import MultipleElementsFoundError, ScenarioFailedError, WaitTimeoutError
from core.frames import Frame
from core.remote import Locator
from core.session import MAX_ALERTS
from diagnostics import NullSink, Severity

TITLE = Locator.css("h1")


class TestFindElement:
    def test_hidden_elements_are_ignored(self, driver, session):
        driver.add(TITLE, FakeElement("hidden", displayed=False), FakeElement("Projects"))

        assert session.find_element(TITLE).get_text() == "Projects"

    def test_required_element_times_out(self, session):
        with pytest.raises(WaitTimeoutError) as excinfo:
            session.find_element(TITLE, timeout=0.05)

        assert excinfo.value.locator == TITLE

    def test_optional_element_returns_none(self, session):
        assert session.find_element(TITLE, required=False) is None

    def test_multiple_elements(self, driver, session):
        driver.add(TITLE, FakeElement("one"), FakeElement("two"))

        with pytest.raises(MultipleElementsFoundError) as excinfo:
            session.find_element(TITLE)

        assert excinfo.value.count == 2

    def test_element_in_frame(self, driver, session):
        editor = Frame("editor")
        driver.add(TITLE, FakeElement("Editor"), frame=editor)

        handle = session.find_element(TITLE, frame=editor)

        assert handle.frame == editor
        assert driver.active_frame is None

    def test_find_elements_in_document(self, driver, session):
        driver.add(TITLE, FakeElement("one"), FakeElement("two", displayed=False))

        assert len(session.find_elements(TITLE)) == 1
        assert len(session.find_elements(TITLE, displayed_only=False)) == 2


class TestFindElementInFrames:
    def test_top_document_first(self, driver, session):
        top = FakeElement("top")
        driver.add(TITLE, top)
        driver.add(TITLE, FakeElement("framed"), frame=Frame("dialog"))

        with session.frames.selected(None):
            assert session.find_element_in_frames(TITLE) == (top, None)

    def test_found_in_frame(self, driver, session):
        framed = FakeElement("framed")
        dialog = Frame("dialog")
        driver.add(TITLE, framed, frame=dialog)

        with session.frames.selected(None):
            assert session.find_element_in_frames(TITLE) == (framed, dialog)
            assert driver.active_frame == dialog

        assert driver.active_frame is None

    def test_not_found(self, driver, session):
        driver.frames.append(Frame("dialog"))

        assert session.find_element_in_frames(TITLE) is None


class TestSessionOperations:
    def test_purge_alerts(self, driver, session):
        driver.alerts.extend(["first", "second"])

        assert session.purge_alerts("testing") == 2
        assert session.purge_alerts("testing") == 0

    def test_too_many_alerts(self, driver, session):
        driver.alerts.extend(["again"] * (MAX_ALERTS + 1))

        with pytest.raises(ScenarioFailedError, match="Too many unexpected alerts"):
            session.purge_alerts("testing")

    def test_refresh_resets_frames(self, driver, session):
        session.frames.select(Frame("editor"))
        driver.alerts.append("Leave page?")

        session.refresh()

        assert driver.refreshes == 1
        assert driver.alerts == []
        assert session.frames.current is None

    def test_close_other_windows(self, driver, session):
        driver.windows = ["main", "popup"]

        session.close_other_windows()

        assert driver.windows == ["main"]

    def test_snapshot_goes_to_the_sink(self, session):
        assert isinstance(session.diagnostics, NullSink)
        session.diagnostics = MagicMock()
        error = ValueError("bad")

        session.snapshot(Severity.WARNING, "step.test01", error=error)

        session.diagnostics.capture.assert_called_once_with(Severity.WARNING, "step.test01", error=error)

    def test_execute_script(self, driver, session):
        session.execute_script("return 1;", 2)

        assert driver.scripts == [("return 1;", (2,))]

    def test_take_screenshot(self, session):
        assert session.take_screenshot() == b"\x89PNG"
