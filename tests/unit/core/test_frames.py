"""
Unit tests for frame tracking.
"""

import pytest

from core.frames import Frame, FrameContext

EDITOR = Frame("editor")
DIALOG = Frame("dialog")


@pytest.fixture
def frames(driver):
    return FrameContext(driver)


def test_select_moves_current_and_active(frames, driver):
    frames.select(EDITOR)

    assert frames.current == EDITOR
    assert frames.active == EDITOR
    assert driver.active_frame == EDITOR


def test_switch_active_keeps_current(frames, driver):
    frames.select(EDITOR)
    frames.switch_active(DIALOG)

    assert frames.current == EDITOR
    assert frames.active == DIALOG
    assert driver.active_frame == DIALOG


def test_switch_active_to_same_frame_does_nothing(frames, driver):
    frames.switch_active(None)

    assert driver.frame_switches == []


def test_selected_restores_previous_frame(frames, driver):
    frames.select(EDITOR)

    with frames.selected(DIALOG) as frame:
        assert frame == DIALOG
        assert driver.active_frame == DIALOG

    assert driver.active_frame == EDITOR
    assert frames.active == EDITOR


def test_selected_restores_on_error(frames, driver):
    with pytest.raises(ValueError):
        with frames.selected(DIALOG):
            raise ValueError("operation failed")

    assert driver.active_frame is None
    assert frames.active is None


def test_nested_selection(frames, driver):
    with frames.selected(EDITOR):
        with frames.selected(DIALOG):
            assert driver.active_frame == DIALOG
        assert driver.active_frame == EDITOR
    assert driver.active_frame is None
    assert driver.frame_switches == [EDITOR, DIALOG, EDITOR, None]


def test_reset(frames, driver):
    frames.select(EDITOR)
    frames.reset()

    assert frames.current is None
    assert driver.active_frame is None


def test_frame_str():
    assert str(Frame("editor", url="http://localhost/editor")) == "frame 'editor'"
