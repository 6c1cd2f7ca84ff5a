from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Sequence

from mock_interview.audio.playback import AudioOutput, PlaybackSequencer
from mock_interview.capture.pipeline import LiveCapturePipeline, MicrophoneSource, StreamingConnector
from mock_interview.core.config import SessionTimings
from mock_interview.core.logger import log_event
from mock_interview.core.state import SessionPhase, can_transition
from mock_interview.errors import (
    EmptyAnswerError,
    ExchangeError,
    MicrophoneAccessError,
    TranscriptionError,
)
from mock_interview.session.models import (
    CompletionResult,
    DemoContext,
    StartResult,
    Turn,
    is_ephemeral,
)
from mock_interview.session.status import (
    STATUS_ANALYZING,
    STATUS_FINISHING,
    STATUS_MIC_ACTIVE,
    STATUS_NEXT_INTRO,
    STATUS_NEXT_QUESTION,
    STATUS_NO_ANSWER,
    STATUS_RESUME_INTRO,
    STATUS_START_INTRO,
    STATUS_SUBMIT_FAILED,
    StatusEmitter,
)

logger = logging.getLogger("session_controller")

_LIVE_CAPTURE_PHASES = (SessionPhase.PLAYING_AUDIO, SessionPhase.IDLE, SessionPhase.CAPTURING)


class InterviewSessionController:
    """
    Drives one voice interview: speak the question, listen, submit, repeat.

    Everything runs on one event loop. Every phase change goes through
    `_transition`, and capture is only ever opened from the playback
    completion callback or a scheduled resume, never while audio plays.
    """

    def __init__(
        self,
        interview_id: str,
        exchange,
        audio_output: AudioOutput,
        microphone: MicrophoneSource,
        connector: StreamingConnector,
        timings: SessionTimings | None = None,
        emitter: StatusEmitter | None = None,
        demo: DemoContext | None = None,
    ):
        self.interview_id = interview_id
        self.exchange = exchange
        self.timings = timings or SessionTimings()
        self.emitter = emitter or StatusEmitter()
        self.demo = demo
        self.ephemeral = is_ephemeral(interview_id)

        self.phase = SessionPhase.IDLE
        self.current_question = ""
        self.turns: list[Turn] = []
        self.result: CompletionResult | None = None
        self.tasks: set[asyncio.Task] = set()
        self.persisting: set[asyncio.Task] = set()
        self._completion: asyncio.Task | None = None

        self.sequencer = PlaybackSequencer(
            synthesizer=exchange,
            output=audio_output,
            timings=self.timings,
            emitter=self.emitter,
            session_id=interview_id,
        )
        self.capture = LiveCapturePipeline(
            microphone,
            connector,
            self.timings,
            session_id=interview_id,
            on_answer=self._on_answer,
            on_no_answer=self._on_no_answer,
            on_error=self._on_capture_error,
            on_live_text=self._on_live_text,
            can_restart=lambda: self.phase is SessionPhase.CAPTURING,
        )

    # ==========================
    # PHASES / TASKS
    # ==========================

    def _transition(self, target: SessionPhase, force: bool = False) -> bool:
        current = self.phase
        if current is target:
            return True
        if not force and not can_transition(current, target):
            logger.warning("rejected phase change %s -> %s", current.value, target.value)
            return False
        self.phase = target
        log_event("session", "phase", self.interview_id, from_phase=current.value, to_phase=target.value)
        return True

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    def _fail(self, message: str) -> None:
        self.emitter.update(error=message, loading=False)
        self._transition(SessionPhase.ERRORED)

    # ==========================
    # INITIALIZE
    # ==========================

    async def initialize(self) -> bool:
        if not self._transition(SessionPhase.INITIALIZING):
            return False

        self.emitter.update(loading=True)
        intro = STATUS_START_INTRO
        try:
            start = await self.exchange.start_interview(
                self.interview_id,
                self.demo if self.ephemeral else None,
            )
        except ExchangeError as exc:
            logger.warning("interview start failed | id=%s err=%s", self.interview_id, exc)
            if self.ephemeral:
                self._fail("Demo interview initialization failed. Please create a new demo interview.")
                return False
            start = await self._recover(exc)
            if start is None:
                return False
            intro = STATUS_RESUME_INTRO

        if self.phase is not SessionPhase.INITIALIZING:
            return False

        self.current_question = start.question
        if start.transcription_credential:
            self.capture.credential = start.transcription_credential
        self.emitter.update(
            ai_caption=start.question,
            info="Interview is resuming..." if start.resumed else "Interview is starting...",
            loading=False,
        )
        delay = self.timings.resume_capture_delay_sec if start.resumed else self.timings.capture_start_delay_sec
        self._deliver_question([intro, start.question], delay)
        return True

    async def _recover(self, cause: ExchangeError) -> StartResult | None:
        try:
            interview = await self.exchange.get_interview(self.interview_id)
        except ExchangeError as exc:
            logger.error("interview recovery failed | id=%s err=%s", self.interview_id, exc)
            self._fail(f"Failed to start interview: {cause.message}")
            return None

        question = str(interview.get("currentQuestion") or "").strip()
        if not question:
            self._fail(f"Failed to start interview: {cause.message}")
            return None

        log_event("session", "resumed", self.interview_id, status=interview.get("status"))
        return StartResult(
            question=question,
            transcription_credential=str(interview.get("deepgramApiKey") or ""),
            resumed=True,
        )

    # ==========================
    # QUESTION DELIVERY / CAPTURE
    # ==========================

    def _deliver_question(self, utterances: Sequence[str], capture_delay: float) -> None:
        if not self._transition(SessionPhase.PLAYING_AUDIO):
            return
        self._spawn(
            self.sequencer.play_sequence(
                utterances,
                lambda: self._spawn(self._begin_capture(capture_delay)),
            )
        )

    def resume_listening(self) -> None:
        """Re-open the microphone after a failure left the session idle."""
        self._spawn(self._begin_capture(0.0))

    async def _begin_capture(self, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)

        if self.phase not in _LIVE_CAPTURE_PHASES or self.capture.is_active or self.sequencer.is_playing:
            logger.info(
                "capture start skipped | phase=%s capture=%s",
                self.phase.value,
                self.capture.phase.value,
            )
            return

        try:
            opened = await self.capture.start()
        except (MicrophoneAccessError, TranscriptionError) as exc:
            logger.error("capture start failed | id=%s err=%s", self.interview_id, exc)
            if self.phase in _LIVE_CAPTURE_PHASES:
                self.emitter.update(error=str(exc), streaming=False)
                self._transition(SessionPhase.IDLE)
            return

        if not opened or self.phase not in _LIVE_CAPTURE_PHASES:
            return
        self._transition(SessionPhase.CAPTURING)
        self.emitter.update(streaming=True, info=STATUS_MIC_ACTIVE, error="")

    def _on_live_text(self, text: str) -> None:
        self.emitter.update(live_text=text)

    def _on_capture_error(self, error: Exception) -> None:
        self.emitter.update(error=str(error), streaming=False)

    # ==========================
    # ANSWERS
    # ==========================

    def _on_answer(self, transcript: str) -> None:
        self._spawn(self._submit_answer(transcript))

    def _on_no_answer(self) -> None:
        if self.phase not in _LIVE_CAPTURE_PHASES and self.phase is not SessionPhase.SUBMITTING:
            return
        self.emitter.update(info=STATUS_NO_ANSWER, streaming=False, live_text="")
        self._transition(SessionPhase.IDLE)
        self._spawn(self._begin_capture(self.timings.no_answer_resume_sec))

    async def _submit_answer(self, transcript: str) -> None:
        self.capture.force_reset()
        self.emitter.update(streaming=False, live_text="")
        if not self._transition(SessionPhase.SUBMITTING):
            return

        question = self.current_question
        answer = str(transcript or "").strip()
        self.emitter.info(STATUS_ANALYZING)
        log_event("session", "submit_answer", self.interview_id, question=question, answer=answer)

        try:
            next_question = await self.exchange.submit_answer(
                self.interview_id,
                question,
                answer,
                self.demo.job_title if (self.ephemeral and self.demo) else None,
            )
        except EmptyAnswerError:
            self._on_no_answer()
            return
        except ExchangeError as exc:
            if self.phase is not SessionPhase.SUBMITTING:
                return
            logger.error("answer submission failed | id=%s err=%s", self.interview_id, exc)
            self.emitter.update(error=f"Failed to submit answer: {exc.message}", info=STATUS_SUBMIT_FAILED)
            self._transition(SessionPhase.IDLE)
            self._spawn(self._begin_capture(self.timings.submit_retry_delay_sec))
            return

        if self.phase is not SessionPhase.SUBMITTING:
            logger.info("late submission result dropped | phase=%s", self.phase.value)
            return

        turn = Turn(question=question, answer=answer)
        self.turns.append(turn)
        if not self.ephemeral:
            task = asyncio.ensure_future(self._persist_turn(turn))
            self.persisting.add(task)
            task.add_done_callback(self.persisting.discard)

        self.current_question = next_question
        self.emitter.update(ai_caption=next_question, info=STATUS_NEXT_QUESTION)
        self._deliver_question([STATUS_NEXT_INTRO, next_question], self.timings.capture_start_delay_sec)

    async def _persist_turn(self, turn: Turn) -> None:
        try:
            await self.exchange.persist_transcript_entry(self.interview_id, turn.question, turn.answer)
        except ExchangeError as exc:
            logger.warning("transcript persistence failed | id=%s err=%s", self.interview_id, exc)

    async def _flush_persisting(self) -> None:
        pending = list(self.persisting)
        if not pending:
            return
        _, unfinished = await asyncio.wait(pending, timeout=self.timings.persist_flush_timeout_sec)
        if unfinished:
            logger.warning(
                "transcript persistence still pending at completion | id=%s count=%s",
                self.interview_id,
                len(unfinished),
            )

    # ==========================
    # COMPLETE / TEARDOWN
    # ==========================

    async def complete(self) -> CompletionResult:
        if self._completion is None:
            self._completion = asyncio.ensure_future(self._complete())
        return await asyncio.shield(self._completion)

    async def _complete(self) -> CompletionResult:
        if self.phase is SessionPhase.TERMINATED:
            self.result = self.result or CompletionResult(
                self.interview_id, list(self.turns), degraded=True, message="Session already closed"
            )
            return self.result

        self._transition(SessionPhase.COMPLETING)
        self.emitter.update(loading=True, info=STATUS_FINISHING, streaming=False)
        self.sequencer.stop()
        feedback = None
        message = ""
        try:
            await self.capture.stop(False)
            self.capture.close_now()
            await self._flush_persisting()
            turns = list(self.turns)
            log_event("session", "completing", self.interview_id, turns=len(turns))
            try:
                feedback = await self.exchange.complete_interview(
                    self.interview_id,
                    turns,
                    self.demo if self.ephemeral else None,
                )
            except ExchangeError as exc:
                logger.error("feedback generation failed | id=%s err=%s", self.interview_id, exc)
                message = f"Interview completed without feedback: {exc.message}"
            if feedback is None and not message:
                message = "Interview completed without feedback"
        finally:
            for task in list(self.tasks) + list(self.persisting):
                task.cancel()
            self.capture.close_now()
            self._transition(SessionPhase.TERMINATED, force=True)
            self.emitter.update(loading=False)

        self.result = CompletionResult(
            interview_id=self.interview_id,
            turns=list(self.turns),
            feedback=feedback,
            degraded=feedback is None,
            message=message,
        )
        log_event("session", "terminated", self.interview_id, degraded=self.result.degraded)
        return self.result

    def teardown(self) -> None:
        """
        Immediate shutdown hook (sync-safe).
        Cancels timers and tasks, silences audio and releases capture.
        """
        for task in list(self.tasks) + list(self.persisting):
            task.cancel()
        if self._completion is not None and not self._completion.done():
            self._completion.cancel()
        try:
            self.sequencer.stop()
        except Exception as exc:
            logger.warning("sequencer stop ignored during teardown: %s", exc)
        self.capture.close_now()
        self._transition(SessionPhase.TERMINATED, force=True)
        logger.info("session torn down | id=%s", self.interview_id)
