import asyncio

import pytest

from mock_interview.session.turn_detector import SilenceTurnDetector


class _Capture:
    def __init__(self, text: str = "", is_open: bool = True):
        self.text = text
        self.is_open = is_open
        self.timeouts = 0

    def detector(self, timeout_sec: float = 0.03) -> SilenceTurnDetector:
        return SilenceTurnDetector(
            timeout_sec,
            is_open=lambda: self.is_open,
            current_text=lambda: self.text,
            on_timeout=self._fire,
        )

    def _fire(self):
        self.timeouts += 1


@pytest.mark.asyncio
async def test_timeout_with_text_finalizes_once():
    capture = _Capture(text="I have five years of experience")
    detector = capture.detector()

    detector.reset()
    await asyncio.sleep(0.1)

    assert capture.timeouts == 1
    assert not detector.armed


@pytest.mark.asyncio
async def test_timeout_without_text_rearms_instead_of_submitting():
    capture = _Capture(text="")
    detector = capture.detector()

    detector.reset()
    await asyncio.sleep(0.08)

    assert capture.timeouts == 0
    assert detector.armed

    capture.text = "finally an answer"
    await asyncio.sleep(0.06)
    assert capture.timeouts == 1


@pytest.mark.asyncio
async def test_reset_postpones_the_deadline():
    capture = _Capture(text="partial")
    detector = capture.detector(timeout_sec=0.05)

    detector.reset()
    for _ in range(4):
        await asyncio.sleep(0.025)
        detector.reset()

    assert capture.timeouts == 0
    await asyncio.sleep(0.1)
    assert capture.timeouts == 1


@pytest.mark.asyncio
async def test_not_armed_while_capture_closed():
    capture = _Capture(text="something", is_open=False)
    detector = capture.detector()

    detector.reset()
    assert not detector.armed
    await asyncio.sleep(0.06)
    assert capture.timeouts == 0


@pytest.mark.asyncio
async def test_fire_after_close_is_ignored_and_cancel_drops_timer():
    capture = _Capture(text="something")
    detector = capture.detector()

    detector.reset()
    capture.is_open = False
    await asyncio.sleep(0.06)
    assert capture.timeouts == 0

    capture.is_open = True
    detector.reset()
    detector.cancel()
    await asyncio.sleep(0.06)
    assert capture.timeouts == 0
