from __future__ import annotations

import asyncio
import logging

from mock_interview.core.config import SESSION_CHUNK_MS, SESSION_SAMPLE_RATE
from mock_interview.errors import MicrophoneAccessError

logger = logging.getLogger("microphone")


class SoundDeviceMicrophone:
    """One opened input stream. Chunks of raw int16 PCM are handed to the loop."""

    def __init__(self, stream, loop: asyncio.AbstractEventLoop):
        self._stream = stream
        self._loop = loop
        self._on_chunk = None
        self._closed = False

    def _callback(self, indata, frames, time_info, status):
        if status:
            logger.debug("input stream status: %s", status)
        on_chunk = self._on_chunk
        if on_chunk is None or self._closed:
            return
        data = bytes(indata)
        try:
            self._loop.call_soon_threadsafe(on_chunk, data)
        except RuntimeError:
            # loop already closed
            pass

    def start(self, on_chunk) -> None:
        self._on_chunk = on_chunk
        self._stream.start()

    def stop(self) -> None:
        self._on_chunk = None
        if not self._closed and self._stream.active:
            self._stream.stop()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._on_chunk = None
        self._stream.close()
        logger.info("microphone released")


class SoundDeviceMicrophoneSource:
    def __init__(
        self,
        sample_rate: int = SESSION_SAMPLE_RATE,
        chunk_ms: int = SESSION_CHUNK_MS,
        device: int | str | None = None,
    ):
        self.sample_rate = int(sample_rate)
        self.chunk_ms = int(chunk_ms)
        self.device = device

    async def acquire(self) -> SoundDeviceMicrophone:
        loop = asyncio.get_running_loop()
        blocksize = max(1, int(self.sample_rate * self.chunk_ms / 1000))

        def _open() -> SoundDeviceMicrophone:
            import sounddevice as sd

            holder: dict = {}

            def _callback(indata, frames, time_info, status):
                mic = holder.get("mic")
                if mic is not None:
                    mic._callback(indata, frames, time_info, status)

            stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                blocksize=blocksize,
                device=self.device,
                channels=1,
                dtype="int16",
                callback=_callback,
            )
            mic = SoundDeviceMicrophone(stream, loop)
            holder["mic"] = mic
            return mic

        try:
            mic = await asyncio.to_thread(_open)
        except Exception as exc:
            logger.error("microphone unavailable: %s", exc)
            raise MicrophoneAccessError(
                "Could not access the microphone. Check that it is connected and permitted."
            ) from exc

        logger.info("microphone acquired | sample_rate=%s blocksize=%s", self.sample_rate, blocksize)
        return mic
