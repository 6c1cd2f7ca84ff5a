from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol, Sequence

from mock_interview.core.config import SessionTimings
from mock_interview.core.logger import log_event
from mock_interview.errors import InterviewSessionError, SynthesisError
from mock_interview.session.status import StatusEmitter

logger = logging.getLogger("playback")


class SpeechSynthesizer(Protocol):
    async def synthesize_speech(self, text: str) -> str: ...


class AudioClip(Protocol):
    def stop(self) -> None: ...


class AudioOutput(Protocol):
    async def play(
        self,
        audio_url: str,
        on_ended: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> AudioClip: ...


class PlaybackSequencer:
    """
    Speaks an ordered list of utterances, one clip at a time.

    Only the newest sequence may finish: calling `play_sequence` again or
    `stop()` supersedes the running one, which then ends without invoking
    its completion callback.
    """

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        output: AudioOutput,
        timings: SessionTimings | None = None,
        emitter: StatusEmitter | None = None,
        session_id: str = "",
    ):
        self.synthesizer = synthesizer
        self.output = output
        self.timings = timings or SessionTimings()
        self.emitter = emitter or StatusEmitter()
        self.session_id = session_id
        self._generation = 0
        self._current: AudioClip | None = None
        self._waiter: asyncio.Future | None = None

    @property
    def is_playing(self) -> bool:
        return self._current is not None

    async def play_sequence(self, utterances: Sequence[str], on_complete: Callable[[], None]) -> bool:
        self._halt()
        self._generation += 1
        generation = self._generation
        items = [str(text).strip() for text in utterances if str(text or "").strip()]
        log_event("playback", "sequence_started", self.session_id, clips=len(items), generation=generation)
        self.emitter.update(playing=True)

        try:
            for index, text in enumerate(items):
                if index:
                    await asyncio.sleep(self.timings.clip_gap_sec)
                    if generation != self._generation:
                        return False
                await self._play_one(generation, text)
                if generation != self._generation:
                    return False
        except InterviewSessionError as exc:
            if generation != self._generation:
                return False
            logger.error("playback failed mid-sequence: %s", exc)
            self.emitter.error(f"Audio playback failed: {exc}")
        except Exception as exc:
            if generation != self._generation:
                return False
            logger.exception("unexpected playback failure mid-sequence")
            self.emitter.error(f"Audio playback failed: {exc}")
        finally:
            if generation == self._generation:
                self.emitter.update(playing=False)

        await asyncio.sleep(self.timings.sequence_settle_sec)
        if generation != self._generation:
            return False

        log_event("playback", "sequence_completed", self.session_id, generation=generation)
        on_complete()
        return True

    async def _play_one(self, generation: int, text: str) -> None:
        audio_url = await self.synthesizer.synthesize_speech(text)
        if generation != self._generation:
            return
        if not audio_url:
            raise SynthesisError("Speech synthesis returned no audio")

        # detach and silence whatever is still audible
        self._stop_current()

        loop = asyncio.get_running_loop()
        done = loop.create_future()

        def _ended() -> None:
            if not done.done():
                done.set_result(None)

        def _failed(error: Exception) -> None:
            if not done.done():
                done.set_exception(SynthesisError(f"Audio clip failed: {error}"))

        self._waiter = done
        self.emitter.update(ai_caption=text)
        clip = await self.output.play(audio_url, _ended, _failed)
        if generation != self._generation:
            clip.stop()
            return

        self._current = clip
        try:
            await done
        finally:
            if self._current is clip:
                self._current = None
            if self._waiter is done:
                self._waiter = None

    def _stop_current(self) -> None:
        clip = self._current
        self._current = None
        if clip is not None:
            try:
                clip.stop()
            except Exception as exc:
                logger.warning("clip stop ignored: %s", exc)

    def _halt(self) -> None:
        self._stop_current()
        waiter = self._waiter
        self._waiter = None
        if waiter is not None and not waiter.done():
            waiter.set_result(None)

    def stop(self) -> None:
        """Stop audio now; the running sequence ends without completing."""
        self._generation += 1
        self._halt()
        self.emitter.update(playing=False)
