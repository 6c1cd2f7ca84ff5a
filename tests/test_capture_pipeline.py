import asyncio
from dataclasses import replace

import pytest

from mock_interview.capture.pipeline import LiveCapturePipeline
from mock_interview.core.state import CapturePhase
from mock_interview.errors import MicrophoneAccessError, TranscriptionError

from conftest import FakeConnector, FakeMicrophoneSource


class _Recorder:
    def __init__(self):
        self.answers: list[str] = []
        self.no_answer = 0
        self.errors: list[Exception] = []
        self.live: list[str] = []

    def _no_answer(self):
        self.no_answer += 1

    def pipeline(self, microphone, connector, timings, **kwargs) -> LiveCapturePipeline:
        kwargs.setdefault("credential", "dg-key")
        return LiveCapturePipeline(
            microphone,
            connector,
            timings,
            session_id="s-1",
            on_answer=self.answers.append,
            on_no_answer=self._no_answer,
            on_error=self.errors.append,
            on_live_text=self.live.append,
            **kwargs,
        )


@pytest.mark.asyncio
async def test_start_opens_microphone_and_stream(microphone, connector, timings):
    recorder = _Recorder()
    capture = recorder.pipeline(microphone, connector, timings)

    assert await capture.start() is True

    assert capture.phase is CapturePhase.OPEN
    assert capture.is_active
    assert microphone.acquired == 1
    assert connector.credentials == ["dg-key"]
    options = connector.options[0]
    assert options.interim_results and options.punctuate and options.smart_format
    assert options.endpointing_ms == 300

    microphone.latest.push(b"\x00\x01")
    await asyncio.sleep(0.01)
    assert connector.latest.sent == [b"\x00\x01"]

    await capture.stop(False)


@pytest.mark.asyncio
async def test_concurrent_starts_acquire_one_resource_set(microphone, connector, timings):
    recorder = _Recorder()
    capture = recorder.pipeline(microphone, connector, timings)

    results = await asyncio.gather(capture.start(), capture.start(), capture.start())

    assert sorted(results) == [False, False, True]
    assert microphone.acquired == 1
    assert len(connector.connections) == 1
    assert microphone.max_open == 1

    await capture.stop(False)


@pytest.mark.asyncio
async def test_chunks_dropped_until_stream_ready(microphone, timings):
    connector = FakeConnector(auto_open=False)
    capture = _Recorder().pipeline(microphone, connector, timings)

    assert await capture.start() is True
    microphone.latest.push(b"early")
    await asyncio.sleep(0.01)
    assert connector.latest.sent == []

    connector.latest.emit_open()
    microphone.latest.push(b"late")
    await asyncio.sleep(0.01)
    assert connector.latest.sent == [b"late"]

    await capture.stop(False)


@pytest.mark.asyncio
async def test_stop_is_idempotent_and_submits_once(microphone, connector, timings):
    recorder = _Recorder()
    capture = recorder.pipeline(microphone, connector, timings)
    await capture.start()

    connector.latest.emit_transcript("I am a software engineer", is_final=True)
    await asyncio.sleep(0.01)

    results = await asyncio.gather(capture.stop(True), capture.stop(True))

    assert results.count("I am a software engineer") == 1
    assert recorder.answers == ["I am a software engineer"]
    assert microphone.latest.stopped and microphone.latest.closed
    assert microphone.open_count == 0
    assert connector.latest.finished
    assert capture.phase is CapturePhase.CLOSED
    assert await capture.stop(True) is None
    assert recorder.answers == ["I am a software engineer"]


@pytest.mark.asyncio
async def test_stop_without_speech_reports_no_answer(microphone, connector, timings):
    recorder = _Recorder()
    capture = recorder.pipeline(microphone, connector, timings)
    await capture.start()

    assert await capture.stop(True) == ""

    assert recorder.answers == []
    assert recorder.no_answer == 1
    assert microphone.open_count == 0


@pytest.mark.asyncio
async def test_interim_text_is_used_when_no_final_arrived(microphone, connector, timings):
    recorder = _Recorder()
    capture = recorder.pipeline(microphone, connector, timings)
    await capture.start()

    connector.latest.emit_transcript("I would use a queue", is_final=False)
    await asyncio.sleep(0.01)
    await capture.stop(True)

    assert recorder.answers == ["I would use a queue"]
    assert "I would use a queue" in recorder.live


@pytest.mark.asyncio
async def test_silence_after_final_submits_reconciled_answer(microphone, connector, timings, wait_until):
    recorder = _Recorder()
    capture = recorder.pipeline(microphone, connector, timings)
    await capture.start()

    connector.latest.emit_transcript("I went", is_final=True)
    connector.latest.emit_transcript("I went to school", is_final=True)

    await wait_until(lambda: recorder.answers)

    assert recorder.answers == ["I went to school"]
    assert capture.phase is CapturePhase.CLOSED
    assert microphone.open_count == 0


@pytest.mark.asyncio
async def test_events_after_stop_are_ignored(microphone, connector, timings):
    recorder = _Recorder()
    capture = recorder.pipeline(microphone, connector, timings)
    await capture.start()
    old = connector.latest

    await capture.stop(False)
    old.emit_transcript("late words", is_final=True)
    await asyncio.sleep(0.01)

    assert capture.accumulator.best_transcript() == ""
    assert "late words" not in recorder.live


@pytest.mark.asyncio
async def test_stream_error_surfaces_and_restarts_once(microphone, connector, timings, wait_until):
    recorder = _Recorder()
    capture = recorder.pipeline(microphone, connector, timings)
    await capture.start()
    first = connector.latest

    first.emit_error("socket reset")
    first.emit_error("socket reset again")
    await wait_until(lambda: recorder.errors)

    assert isinstance(recorder.errors[0], TranscriptionError)
    assert microphone.handles[0].closed
    assert first.aborted
    assert capture.restart_pending

    await wait_until(lambda: capture.phase is CapturePhase.OPEN)
    await asyncio.sleep(timings.error_restart_delay_sec * 2)

    assert len(recorder.errors) == 1
    assert len(connector.connections) == 2
    assert microphone.max_open == 1

    await capture.stop(False)


@pytest.mark.asyncio
async def test_unexpected_close_releases_and_allows_new_start(microphone, connector, timings, wait_until):
    capture = _Recorder().pipeline(microphone, connector, timings, can_restart=lambda: False)
    await capture.start()

    connector.latest.emit_close()
    await wait_until(lambda: capture.phase is CapturePhase.CLOSED)
    assert microphone.open_count == 0

    await asyncio.sleep(timings.error_restart_delay_sec * 2)
    assert len(connector.connections) == 1

    assert await capture.start() is True
    assert len(connector.connections) == 2
    await capture.stop(False)


@pytest.mark.asyncio
async def test_microphone_denied_propagates(connector, timings):
    microphone = FakeMicrophoneSource(fail=True)
    capture = _Recorder().pipeline(microphone, connector, timings)

    with pytest.raises(MicrophoneAccessError):
        await capture.start()

    assert capture.phase is CapturePhase.CLOSED
    assert connector.connections == []


@pytest.mark.asyncio
async def test_connection_failure_releases_microphone(microphone, timings):
    capture = _Recorder().pipeline(microphone, FakeConnector(fail=True), timings)

    with pytest.raises(TranscriptionError):
        await capture.start()

    assert microphone.acquired == 1
    assert microphone.open_count == 0
    assert not capture.is_active


@pytest.mark.asyncio
async def test_missing_credential_is_a_transcription_error(microphone, connector, timings):
    capture = _Recorder().pipeline(microphone, connector, timings, credential="")

    with pytest.raises(TranscriptionError):
        await capture.start()

    assert microphone.acquired == 0


@pytest.mark.asyncio
async def test_close_now_releases_everything_and_disposes(microphone, connector, timings):
    capture = _Recorder().pipeline(microphone, connector, timings)
    await capture.start()

    capture.close_now()

    assert microphone.open_count == 0
    assert connector.latest.aborted
    assert capture.phase is CapturePhase.CLOSED
    assert await capture.start() is False


@pytest.mark.asyncio
async def test_slow_stream_drops_chunks_beyond_backlog(microphone, connector, timings):
    capture = _Recorder().pipeline(microphone, connector, replace(timings, chunk_queue_max=2))
    await capture.start()
    connector.latest.send_gate = asyncio.Event()

    for index in range(10):
        microphone.latest.push(str(index).encode())

    connector.latest.send_gate.set()
    await asyncio.sleep(0.02)

    assert connector.latest.sent == [b"0", b"1"]
    await capture.stop(False)
