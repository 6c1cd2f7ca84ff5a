import asyncio
import base64
import logging
import os
import tempfile
from typing import Callable

from mock_interview.errors import SynthesisError

logger = logging.getLogger("audio_player")

FFPLAY_ARGS = ("-nodisp", "-autoexit", "-loglevel", "quiet")


def decode_data_url(audio_url: str) -> tuple[bytes, str]:
    """Split a `data:<mime>;base64,<payload>` URL into raw bytes and a file suffix."""
    header, _, payload = str(audio_url or "").partition(",")
    if not header.startswith("data:") or ";base64" not in header or not payload:
        raise SynthesisError("Audio URL is not a base64 data URL")
    mime = header[5:].split(";", 1)[0].strip().lower()
    suffix = {
        "audio/mpeg": ".mp3",
        "audio/mp3": ".mp3",
        "audio/wav": ".wav",
        "audio/x-wav": ".wav",
        "audio/ogg": ".ogg",
    }.get(mime, ".audio")
    try:
        return base64.b64decode(payload), suffix
    except Exception as exc:
        raise SynthesisError(f"Audio payload could not be decoded: {exc}") from exc


class FfplayClip:
    def __init__(self, process, path: str | None, on_ended: Callable[[], None], on_error: Callable[[Exception], None]):
        self.process = process
        self.path = path
        self._on_ended = on_ended
        self._on_error = on_error
        self._watcher = asyncio.create_task(self._watch())

    async def _watch(self) -> None:
        returncode = await self.process.wait()
        on_ended, on_error = self._on_ended, self._on_error
        self._cleanup_file()
        if on_ended is None:
            return
        self._detach()
        if returncode == 0:
            on_ended()
        else:
            on_error(SynthesisError(f"Audio player exited with code {returncode}"))

    def _detach(self) -> None:
        self._on_ended = None
        self._on_error = None

    def _cleanup_file(self) -> None:
        if self.path and os.path.exists(self.path):
            try:
                os.unlink(self.path)
            except OSError as exc:
                logger.debug("temp audio cleanup failed: %s", exc)
        self.path = None

    def stop(self) -> None:
        self._detach()
        if self.process.returncode is None:
            try:
                self.process.terminate()
            except ProcessLookupError:
                pass
        if self._watcher is not asyncio.current_task() and not self._watcher.done():
            # the watcher still reaps the process and removes the file
            return
        self._cleanup_file()


class FfplayAudioOutput:
    """Plays clips through an `ffplay` subprocess; process exit is the end-of-clip event."""

    def __init__(self, binary: str = "ffplay"):
        self.binary = binary

    async def play(self, audio_url: str, on_ended, on_error) -> FfplayClip:
        path = None
        target = audio_url
        if str(audio_url or "").startswith("data:"):
            audio_bytes, suffix = decode_data_url(audio_url)
            try:
                with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp_file:
                    tmp_file.write(audio_bytes)
                    path = tmp_file.name
            except OSError as exc:
                raise SynthesisError(f"Audio clip could not be written: {exc}") from exc
            target = path

        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                *FFPLAY_ARGS,
                target,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except (FileNotFoundError, PermissionError) as exc:
            if path:
                os.unlink(path)
            raise SynthesisError(f"Audio player '{self.binary}' is not available: {exc}") from exc
        except OSError as exc:
            if path:
                os.unlink(path)
            raise SynthesisError(f"Audio player failed to start: {exc}") from exc

        logger.info("clip playing | pid=%s", process.pid)
        return FfplayClip(process, path, on_ended, on_error)
