import asyncio
import logging
from typing import Callable

logger = logging.getLogger("turn")


class SilenceTurnDetector:
    """
    Declares a turn complete after a quiet period.

    `reset()` re-arms a single timer while capture is open. When the timer
    fires with transcript text available, `on_timeout` is called exactly once
    for that arming; with no text yet the timer re-arms and keeps listening.
    """

    def __init__(
        self,
        timeout_sec: float,
        is_open: Callable[[], bool],
        current_text: Callable[[], str],
        on_timeout: Callable[[], None],
    ):
        self.timeout_sec = max(0.0, float(timeout_sec))
        self._is_open = is_open
        self._current_text = current_text
        self._on_timeout = on_timeout
        self._handle: asyncio.TimerHandle | None = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def reset(self) -> None:
        self.cancel()
        if not self._is_open():
            return
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.timeout_sec, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        if not self._is_open():
            logger.info("silence timer fired after capture closed | ignored")
            return

        if not str(self._current_text() or "").strip():
            logger.info("silence timer fired without transcript | re-arming")
            self.reset()
            return

        logger.info("silence timeout reached | finalizing turn")
        self._on_timeout()
