from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable

STATUS_START_INTRO = "Hello, the interview is starting."
STATUS_RESUME_INTRO = "Resuming the interview."
STATUS_NEXT_INTRO = "Thank you for your answer. Here is the next question."
STATUS_MIC_ACTIVE = "Microphone is active, you can speak..."
STATUS_NO_ANSWER = "No answer captured, listening again..."
STATUS_ANALYZING = "Analyzing your answer..."
STATUS_NEXT_QUESTION = "Playing the next question..."
STATUS_SUBMIT_FAILED = "An error occurred, listening again..."
STATUS_FINISHING = "Finishing interview and generating feedback..."


@dataclass
class SessionStatus:
    info: str = ""
    error: str = ""
    live_text: str = ""
    ai_caption: str = ""
    playing: bool = False
    streaming: bool = False
    loading: bool = False


SendFn = Callable[[SessionStatus], None]


def _noop(_status: SessionStatus) -> None:
    return None


@dataclass
class StatusEmitter:
    """Holds the user-visible session status and pushes a snapshot on every change."""

    send_fn: SendFn = _noop
    current: SessionStatus = field(default_factory=SessionStatus)

    def update(self, **changes) -> None:
        self.current = replace(self.current, **changes)
        self.send_fn(replace(self.current))

    def info(self, message: str) -> None:
        self.update(info=message, error="")

    def error(self, message: str) -> None:
        self.update(error=message)
