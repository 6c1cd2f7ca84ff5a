import asyncio
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mock_interview.core.config import SessionTimings  # noqa: E402
from mock_interview.errors import (  # noqa: E402
    EmptyAnswerError,
    ExchangeError,
    MicrophoneAccessError,
    TranscriptionError,
)
from mock_interview.session.models import Feedback, StartResult, StreamEvent  # noqa: E402


FAST_TIMINGS = SessionTimings(
    clip_gap_sec=0.001,
    sequence_settle_sec=0.001,
    capture_start_delay_sec=0.001,
    resume_capture_delay_sec=0.001,
    pre_start_settle_sec=0.001,
    ready_timeout_sec=0.05,
    flush_grace_sec=0.001,
    release_settle_sec=0.001,
    silence_timeout_sec=0.05,
    error_restart_delay_sec=0.05,
    no_answer_resume_sec=0.02,
    submit_retry_delay_sec=0.02,
    persist_flush_timeout_sec=0.5,
    confidence_threshold=0.5,
)


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("QA_MODE", "true")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")


@pytest.fixture
def timings() -> SessionTimings:
    return FAST_TIMINGS


async def _wait_until(predicate, timeout: float = 2.0, interval: float = 0.005):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until():
    return _wait_until


# ==========================
# FAKE AUDIO OUTPUT
# ==========================


class FakeClip:
    def __init__(self, output, audio_url, on_ended, on_error):
        self.output = output
        self.audio_url = audio_url
        self.on_ended = on_ended
        self.on_error = on_error
        self.stopped = False
        self.ended = False

    def finish(self):
        if self.stopped or self.ended:
            return
        self.ended = True
        self.output.active -= 1
        self.output.timeline.append(("audio_end", self.audio_url))
        if self.audio_url in self.output.fail_urls:
            self.on_error(RuntimeError("decoder failed"))
        else:
            self.on_ended()

    def stop(self):
        if self.stopped or self.ended:
            self.stopped = True
            return
        self.stopped = True
        self.output.active -= 1
        self.output.timeline.append(("audio_stopped", self.audio_url))


class FakeAudioOutput:
    def __init__(self, timeline=None, auto_end=True, clip_sec=0.0):
        self.timeline = timeline if timeline is not None else []
        self.auto_end = auto_end
        self.clip_sec = clip_sec
        self.clips: list[FakeClip] = []
        self.active = 0
        self.max_active = 0
        self.fail_urls: set[str] = set()

    async def play(self, audio_url, on_ended, on_error):
        clip = FakeClip(self, audio_url, on_ended, on_error)
        self.clips.append(clip)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.timeline.append(("audio_start", audio_url))
        if self.auto_end:
            asyncio.get_running_loop().call_later(self.clip_sec, clip.finish)
        return clip


# ==========================
# FAKE MICROPHONE / STREAM
# ==========================


class FakeMicHandle:
    def __init__(self, source):
        self.source = source
        self.on_chunk = None
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self, on_chunk):
        self.on_chunk = on_chunk
        self.started = True

    def stop(self):
        self.stopped = True
        self.on_chunk = None

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.source.open_count -= 1
        self.source.timeline.append(("mic_close",))

    def push(self, chunk: bytes):
        if self.on_chunk is not None:
            self.on_chunk(chunk)


class FakeMicrophoneSource:
    def __init__(self, timeline=None, audio: FakeAudioOutput | None = None, fail: bool = False):
        self.timeline = timeline if timeline is not None else []
        self.audio = audio
        self.fail = fail
        self.handles: list[FakeMicHandle] = []
        self.open_count = 0
        self.max_open = 0
        self.audio_active_at_acquire: list[int] = []

    @property
    def acquired(self) -> int:
        return len(self.handles)

    @property
    def latest(self) -> FakeMicHandle:
        return self.handles[-1]

    async def acquire(self):
        if self.fail:
            raise MicrophoneAccessError("Microphone permission denied")
        if self.audio is not None:
            self.audio_active_at_acquire.append(self.audio.active)
        handle = FakeMicHandle(self)
        self.handles.append(handle)
        self.open_count += 1
        self.max_open = max(self.max_open, self.open_count)
        self.timeline.append(("mic_open",))
        return handle


class FakeConnection:
    def __init__(self, sink):
        self.sink = sink
        self.sent: list[bytes] = []
        self.finished = False
        self.aborted = False
        self._ready = False
        self.send_gate: asyncio.Event | None = None

    @property
    def is_ready(self) -> bool:
        return self._ready and not self.finished and not self.aborted

    def emit_open(self):
        self._ready = True
        self.sink(StreamEvent.opened())

    def emit_transcript(self, text: str, is_final: bool = True, confidence: float = 0.95):
        self.sink(StreamEvent.transcript(text, is_final, confidence))

    def emit_error(self, error="socket reset"):
        self.sink(StreamEvent.failed(error))

    def emit_close(self):
        self._ready = False
        self.sink(StreamEvent.closed())

    async def send(self, chunk: bytes):
        if self.send_gate is not None:
            await self.send_gate.wait()
        self.sent.append(chunk)

    async def finish(self):
        self.finished = True

    def abort(self):
        self.aborted = True


class FakeConnector:
    def __init__(self, auto_open: bool = True, fail: bool = False):
        self.auto_open = auto_open
        self.fail = fail
        self.connections: list[FakeConnection] = []
        self.credentials: list[str] = []
        self.options = []

    @property
    def latest(self) -> FakeConnection:
        return self.connections[-1]

    async def open(self, credential, options, sink):
        self.credentials.append(credential)
        self.options.append(options)
        if self.fail:
            raise TranscriptionError("transcription service unreachable")
        conn = FakeConnection(sink)
        self.connections.append(conn)
        if self.auto_open:
            conn.emit_open()
        return conn


# ==========================
# FAKE EXCHANGE
# ==========================


class FakeExchange:
    def __init__(
        self,
        first_question: str = "Tell me about yourself",
        next_questions=None,
        credential: str = "dg-test-key",
    ):
        self.first_question = first_question
        self.next_questions = list(next_questions or ["What is your biggest strength?"])
        self.credential = credential
        self.calls: list[tuple] = []
        self.synthesized: list[str] = []
        self.start_error: Exception | None = None
        self.interview: dict | None = None
        self.submit_errors: list[Exception] = []
        self.submit_gate: asyncio.Event | None = None
        self.persist_error: Exception | None = None
        self.persist_gate: asyncio.Event | None = None
        self.complete_error: Exception | None = None
        self.feedback: Feedback | None = Feedback(overall_score=80, strengths=["clear"])

    async def start_interview(self, interview_id, demo=None):
        self.calls.append(("start", interview_id, demo))
        if self.start_error is not None:
            raise self.start_error
        return StartResult(question=self.first_question, transcription_credential=self.credential)

    async def get_interview(self, interview_id):
        self.calls.append(("get", interview_id))
        if self.interview is None:
            raise ExchangeError("Interview not found", status_code=404)
        return dict(self.interview)

    async def submit_answer(self, interview_id, question, answer, demo_job_title=None):
        self.calls.append(("submit", interview_id, question, answer, demo_job_title))
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if not str(answer or "").strip():
            raise EmptyAnswerError("Answer is empty")
        if self.submit_errors:
            raise self.submit_errors.pop(0)
        if len(self.next_questions) > 1:
            return self.next_questions.pop(0)
        return self.next_questions[0]

    async def persist_transcript_entry(self, interview_id, question, answer):
        self.calls.append(("persist", interview_id, question, answer))
        if self.persist_gate is not None:
            await self.persist_gate.wait()
        if self.persist_error is not None:
            raise self.persist_error
        self.calls.append(("persisted", interview_id, question, answer))

    async def complete_interview(self, interview_id, turns, demo=None):
        self.calls.append(("complete", interview_id, list(turns), demo))
        if self.complete_error is not None:
            raise self.complete_error
        return self.feedback

    async def synthesize_speech(self, text):
        self.synthesized.append(text)
        return f"clip:{text}"

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def timeline() -> list:
    return []


@pytest.fixture
def audio_output(timeline) -> FakeAudioOutput:
    return FakeAudioOutput(timeline)


@pytest.fixture
def microphone(timeline, audio_output) -> FakeMicrophoneSource:
    return FakeMicrophoneSource(timeline, audio=audio_output)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def exchange() -> FakeExchange:
    return FakeExchange()
