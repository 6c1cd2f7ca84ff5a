# mock_interview/core/state.py

from enum import Enum


class SessionPhase(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    PLAYING_AUDIO = "playing_audio"
    CAPTURING = "capturing"
    SUBMITTING = "submitting"
    COMPLETING = "completing"
    ERRORED = "errored"
    TERMINATED = "terminated"


class CapturePhase(str, Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    OPEN = "open"
    STOPPING = "stopping"
    CLOSED = "closed"


# Completing and teardown are reachable from every live phase.
SESSION_TRANSITIONS: dict[SessionPhase, frozenset[SessionPhase]] = {
    SessionPhase.INITIALIZING: frozenset({
        SessionPhase.PLAYING_AUDIO,
        SessionPhase.ERRORED,
        SessionPhase.COMPLETING,
        SessionPhase.TERMINATED,
    }),
    SessionPhase.PLAYING_AUDIO: frozenset({
        SessionPhase.CAPTURING,
        SessionPhase.IDLE,
        SessionPhase.COMPLETING,
        SessionPhase.TERMINATED,
    }),
    SessionPhase.CAPTURING: frozenset({
        SessionPhase.SUBMITTING,
        SessionPhase.IDLE,
        SessionPhase.COMPLETING,
        SessionPhase.TERMINATED,
    }),
    SessionPhase.SUBMITTING: frozenset({
        SessionPhase.PLAYING_AUDIO,
        SessionPhase.IDLE,
        SessionPhase.COMPLETING,
        SessionPhase.TERMINATED,
    }),
    SessionPhase.IDLE: frozenset({
        SessionPhase.INITIALIZING,
        SessionPhase.CAPTURING,
        SessionPhase.SUBMITTING,
        SessionPhase.PLAYING_AUDIO,
        SessionPhase.COMPLETING,
        SessionPhase.TERMINATED,
    }),
    SessionPhase.COMPLETING: frozenset({SessionPhase.TERMINATED}),
    SessionPhase.ERRORED: frozenset({SessionPhase.COMPLETING, SessionPhase.TERMINATED}),
    SessionPhase.TERMINATED: frozenset(),
}


def can_transition(current: SessionPhase, target: SessionPhase) -> bool:
    return target in SESSION_TRANSITIONS.get(current, frozenset())
