from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol

from mock_interview.core.config import DEEPGRAM_LANGUAGE, DEEPGRAM_MODEL, SessionTimings
from mock_interview.core.logger import log_event
from mock_interview.core.state import CapturePhase
from mock_interview.errors import InterviewSessionError, MicrophoneAccessError, TranscriptionError
from mock_interview.session.models import StreamEvent, StreamEventKind, TranscriptionOptions
from mock_interview.session.turn_detector import SilenceTurnDetector
from mock_interview.transcript.engine import AnswerAccumulator

logger = logging.getLogger("capture")

ChunkFn = Callable[[bytes], None]
EventSink = Callable[[StreamEvent], None]


class MicrophoneHandle(Protocol):
    def start(self, on_chunk: ChunkFn) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...


class MicrophoneSource(Protocol):
    async def acquire(self) -> MicrophoneHandle: ...


class StreamingConnection(Protocol):
    @property
    def is_ready(self) -> bool: ...

    async def send(self, chunk: bytes) -> None: ...

    async def finish(self) -> None: ...

    def abort(self) -> None: ...


class StreamingConnector(Protocol):
    async def open(
        self,
        credential: str,
        options: TranscriptionOptions,
        sink: EventSink,
    ) -> StreamingConnection: ...


def _ignore_text(_text: str) -> None:
    return None


def _ignore_error(_error: Exception) -> None:
    return None


def _noop() -> None:
    return None


def _always() -> bool:
    return True


class LiveCapturePipeline:
    """
    Owns the capture resource set for one turn at a time: the microphone
    handle, the streaming transcription connection and the audio pump.

    Resources are all held or all released. Every attempt gets a generation
    number; continuations of an older attempt notice the change and bail out.
    Stream callbacks only enqueue events, one consumer task applies them.
    """

    def __init__(
        self,
        microphone: MicrophoneSource,
        connector: StreamingConnector,
        timings: SessionTimings | None = None,
        *,
        session_id: str = "",
        credential: str = "",
        on_answer: Callable[[str], None] = _ignore_text,
        on_no_answer: Callable[[], None] = _noop,
        on_error: Callable[[Exception], None] = _ignore_error,
        on_live_text: Callable[[str], None] = _ignore_text,
        can_restart: Callable[[], bool] = _always,
    ):
        self.microphone = microphone
        self.connector = connector
        self.timings = timings or SessionTimings()
        self.session_id = session_id
        self.credential = credential
        self.on_answer = on_answer
        self.on_no_answer = on_no_answer
        self.on_error = on_error
        self.on_live_text = on_live_text
        self.can_restart = can_restart

        self.phase = CapturePhase.NOT_STARTED
        self.accumulator = AnswerAccumulator(self.timings.confidence_threshold)
        self.detector = SilenceTurnDetector(
            self.timings.silence_timeout_sec,
            is_open=lambda: self.phase is CapturePhase.OPEN,
            current_text=self.accumulator.best_transcript,
            on_timeout=self._on_silence_timeout,
        )

        self._generation = 0
        self._disposed = False
        self._mic: MicrophoneHandle | None = None
        self._conn: StreamingConnection | None = None
        self._consumer: asyncio.Task | None = None
        self._sender: asyncio.Task | None = None
        self._restart_handle: asyncio.TimerHandle | None = None
        self.tasks: set[asyncio.Task] = set()

    @property
    def is_active(self) -> bool:
        return self.phase in (CapturePhase.STARTING, CapturePhase.OPEN, CapturePhase.STOPPING)

    @property
    def restart_pending(self) -> bool:
        return self._restart_handle is not None

    def options(self) -> TranscriptionOptions:
        return TranscriptionOptions(
            model=DEEPGRAM_MODEL,
            language=DEEPGRAM_LANGUAGE,
            endpointing_ms=self.timings.endpointing_ms,
            sample_rate=self.timings.sample_rate,
        )

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self.phase is CapturePhase.STARTING

    # ==========================
    # START
    # ==========================

    async def start(self) -> bool:
        if self._disposed:
            logger.info("capture start ignored | pipeline disposed")
            return False

        if self.is_active:
            logger.info("capture start ignored | phase=%s", self.phase.value)
            return False

        self._cancel_restart()
        self._release_resources()
        self._generation += 1
        generation = self._generation
        self.phase = CapturePhase.STARTING
        self.accumulator.reset()
        self.on_live_text("")
        log_event("capture", "start_requested", self.session_id, generation=generation)

        try:
            await asyncio.sleep(self.timings.pre_start_settle_sec)
            if not self._is_current(generation):
                return False

            if not self.credential:
                raise TranscriptionError("Transcription credential is missing")

            mic = await self.microphone.acquire()
            if not self._is_current(generation):
                mic.close()
                return False
            self._mic = mic

            events: asyncio.Queue = asyncio.Queue()
            ready = asyncio.Event()
            self._consumer = asyncio.create_task(self._consume(generation, events, ready))

            conn = await self.connector.open(self.credential, self.options(), events.put_nowait)
            if not self._is_current(generation):
                conn.abort()
                return False
            self._conn = conn

            try:
                await asyncio.wait_for(ready.wait(), timeout=self.timings.ready_timeout_sec)
            except asyncio.TimeoutError:
                logger.warning("transcription open event not received in %.1fs; starting anyway",
                               self.timings.ready_timeout_sec)
            if not self._is_current(generation):
                return False

            chunks: asyncio.Queue = asyncio.Queue(maxsize=max(1, self.timings.chunk_queue_max))
            self._sender = asyncio.create_task(self._pump(generation, chunks))
            mic.start(lambda chunk: self._offer_chunk(chunks, chunk))
            self.phase = CapturePhase.OPEN
            log_event("capture", "opened", self.session_id, generation=generation)
            return True
        except (MicrophoneAccessError, TranscriptionError, asyncio.CancelledError):
            self._abandon(generation)
            raise
        except Exception as exc:
            self._abandon(generation)
            raise TranscriptionError(f"Failed to start live transcription: {exc}") from exc

    def _abandon(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._release_resources()
        self.phase = CapturePhase.CLOSED
        log_event("capture", "start_failed", self.session_id, generation=generation)

    # ==========================
    # STOP
    # ==========================

    async def stop(self, submit: bool = True) -> str | None:
        if self.phase not in (CapturePhase.STARTING, CapturePhase.OPEN):
            logger.info("capture stop ignored | phase=%s", self.phase.value)
            return None

        generation = self._generation
        self.phase = CapturePhase.STOPPING
        self.detector.cancel()
        self._cancel_restart()

        # read before teardown so a release never discards the answer
        transcript = self.accumulator.best_transcript()
        mic, conn = self._mic, self._conn
        log_event("capture", "stopping", self.session_id, submit=submit, transcript=transcript)

        try:
            if mic is not None:
                self._safe_call(mic.stop, "microphone stop")
            await asyncio.sleep(self.timings.flush_grace_sec)
            if conn is not None:
                try:
                    await conn.finish()
                except Exception as exc:
                    logger.warning("transcription finish() ignored during stop: %s", exc)
            if mic is not None:
                self._safe_call(mic.close, "microphone close")
            self._mic = None
            self._conn = None
            await asyncio.sleep(self.timings.release_settle_sec)
        finally:
            if generation == self._generation:
                self._release_resources()
                self.accumulator.reset()
                self.phase = CapturePhase.CLOSED

        if generation != self._generation:
            logger.info("capture stop superseded | result dropped")
            return None

        log_event("capture", "closed", self.session_id, submit=submit, transcript=transcript)
        if submit:
            if transcript:
                self.on_answer(transcript)
            else:
                self.on_no_answer()
        return transcript

    def close_now(self) -> None:
        """
        Immediate teardown (sync-safe). Never raises.
        """
        self._disposed = True
        self._generation += 1
        self.detector.cancel()
        self._cancel_restart()
        self._release_resources()
        self.accumulator.reset()
        for task in list(self.tasks):
            task.cancel()
        self.phase = CapturePhase.CLOSED

    def force_reset(self) -> None:
        """Drop whatever a previous attempt left behind and return to Closed."""
        self._generation += 1
        self.detector.cancel()
        self._cancel_restart()
        self._release_resources()
        self.accumulator.reset()
        if self.phase is not CapturePhase.NOT_STARTED:
            self.phase = CapturePhase.CLOSED

    # ==========================
    # STREAM EVENTS
    # ==========================

    async def _consume(self, generation: int, events: asyncio.Queue, ready: asyncio.Event) -> None:
        while True:
            event: StreamEvent = await events.get()
            if generation != self._generation:
                return

            if event.kind is StreamEventKind.OPEN:
                ready.set()
                continue

            if self.phase not in (CapturePhase.STARTING, CapturePhase.OPEN):
                logger.debug("stream event ignored | kind=%s phase=%s", event.kind.value, self.phase.value)
                continue

            if event.kind is StreamEventKind.TRANSCRIPT:
                self._apply_transcript(event)
            elif event.kind is StreamEventKind.ERROR:
                self._handle_stream_error(event.error)
                return
            elif event.kind is StreamEventKind.CLOSE:
                self._handle_unexpected_close()
                return

    def _apply_transcript(self, event: StreamEvent) -> None:
        text = str(event.text or "").strip()
        if not text:
            return

        if event.is_final:
            self.accumulator.apply_final(text, event.confidence)
            self.on_live_text(text)
            if len(text) > self.timings.final_reset_min_chars:
                self.detector.reset()
        else:
            self.accumulator.apply_interim(text)
            self.on_live_text(text)
            if len(text) > self.timings.interim_reset_min_chars:
                self.detector.reset()

    def _handle_stream_error(self, error) -> None:
        logger.error("transcription stream error: %s", error)
        self.detector.cancel()
        self._release_resources()
        self.phase = CapturePhase.CLOSED
        log_event("capture", "stream_error", self.session_id, error=str(error))
        self.on_error(TranscriptionError(f"Live transcription error: {error or 'unknown error'}"))
        self._schedule_restart()

    def _handle_unexpected_close(self) -> None:
        logger.warning("transcription connection closed unexpectedly while capturing")
        self.detector.cancel()
        self._release_resources()
        self.phase = CapturePhase.CLOSED
        log_event("capture", "closed_unexpectedly", self.session_id)
        self._schedule_restart()

    # ==========================
    # RESTART
    # ==========================

    def _schedule_restart(self) -> None:
        if self._disposed or self._restart_handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._restart_handle = loop.call_later(self.timings.error_restart_delay_sec, self._restart_due)

    def _cancel_restart(self) -> None:
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None

    def _restart_due(self) -> None:
        self._restart_handle = None
        if self._disposed or self.is_active or not self.can_restart():
            logger.info("capture restart skipped | phase=%s", self.phase.value)
            return
        self._spawn(self._restart())

    async def _restart(self) -> None:
        logger.info("restarting capture after stream failure")
        try:
            await self.start()
        except InterviewSessionError as exc:
            logger.error("capture restart failed: %s", exc)
            self.on_error(exc)

    # ==========================
    # AUDIO PUMP / RELEASE
    # ==========================

    def _offer_chunk(self, chunks: asyncio.Queue, chunk: bytes) -> None:
        try:
            chunks.put_nowait(chunk)
        except asyncio.QueueFull:
            logger.warning("audio backlog full (%s chunks); dropping %s byte chunk", chunks.maxsize, len(chunk))

    async def _pump(self, generation: int, chunks: asyncio.Queue) -> None:
        while True:
            chunk = await chunks.get()
            conn = self._conn
            if generation != self._generation or conn is None:
                return
            if not conn.is_ready:
                logger.warning("transcription connection not ready; dropping %s byte chunk", len(chunk))
                continue
            try:
                await conn.send(chunk)
            except Exception as exc:
                logger.warning("audio chunk send failed: %s", exc)

    def _on_silence_timeout(self) -> None:
        self._spawn(self.stop(True))

    def _release_resources(self) -> None:
        current = asyncio.current_task() if self._has_running_loop() else None
        for task in (self._sender, self._consumer):
            if task is not None and not task.done() and task is not current:
                task.cancel()
        self._sender = None
        self._consumer = None

        mic, conn = self._mic, self._conn
        self._mic = None
        self._conn = None
        if mic is not None:
            self._safe_call(mic.stop, "microphone stop")
            self._safe_call(mic.close, "microphone close")
        if conn is not None:
            self._safe_call(conn.abort, "transcription abort")

    @staticmethod
    def _has_running_loop() -> bool:
        try:
            asyncio.get_running_loop()
            return True
        except RuntimeError:
            return False

    @staticmethod
    def _safe_call(fn: Callable[[], None], label: str) -> None:
        try:
            fn()
        except Exception as exc:
            logger.warning("%s ignored during cleanup: %s", label, exc)
