import asyncio
import logging

from deepgram import DeepgramClient, LiveOptions, LiveTranscriptionEvents

from mock_interview.errors import TranscriptionError
from mock_interview.session.models import StreamEvent, TranscriptionOptions

logger = logging.getLogger("deepgram_service")


class DeepgramLiveConnection:
    """
    One Deepgram live websocket. SDK callbacks are translated into
    StreamEvents and pushed into the sink; nothing else happens in them.
    """

    def __init__(self, connection, sink):
        self.connection = connection
        self.sink = sink
        self._ready = False
        self._closed = False
        self._finish_task: asyncio.Task | None = None

    @property
    def is_ready(self) -> bool:
        return self._ready and not self._closed

    def register(self) -> None:
        self.connection.on(LiveTranscriptionEvents.Open, self._on_open)
        self.connection.on(LiveTranscriptionEvents.Transcript, self._on_transcript)
        self.connection.on(LiveTranscriptionEvents.Error, self._on_error)
        self.connection.on(LiveTranscriptionEvents.Close, self._on_close)

    # ==========================
    # EVENT HANDLERS
    # ==========================

    async def _on_open(self, client, open_event, **kwargs):
        self._ready = True
        logger.info("[DG] connection open")
        self.sink(StreamEvent.opened())

    async def _on_transcript(self, client, result, **kwargs):
        try:
            channel = result.channel
            if not channel or not channel.alternatives:
                return

            alternative = channel.alternatives[0]
            text = str(alternative.transcript or "").strip()
            if not text:
                return

            is_final = bool(getattr(result, "is_final", False))
            confidence = float(getattr(alternative, "confidence", 0.0) or 0.0)
            logger.debug("DG TEXT | final=%s confidence=%.2f length=%s", is_final, confidence, len(text))
            self.sink(StreamEvent.transcript(text, is_final, confidence))
        except Exception as e:
            logger.error("Deepgram transcript parse error: %s", e)

    async def _on_error(self, client, error, **kwargs):
        logger.error("Deepgram error event: %s", error)
        self.sink(StreamEvent.failed(error))

    async def _on_close(self, client, close_event, **kwargs):
        self._ready = False
        logger.info("[DG] connection closed")
        self.sink(StreamEvent.closed())

    # ==========================
    # AUDIO / SHUTDOWN
    # ==========================

    async def send(self, chunk: bytes) -> None:
        if self._closed:
            return
        if isinstance(chunk, bytearray):
            chunk = bytes(chunk)
        await self.connection.send(chunk)

    async def finish(self) -> None:
        """
        Graceful async shutdown.
        Safe to call multiple times.
        """
        if self._closed:
            return
        self._closed = True
        self._ready = False
        try:
            await self.connection.finish()
        except Exception as exc:
            logger.warning("Deepgram finish() ignored during cleanup: %s", exc)
        logger.info("[DG] Service stopped")

    def abort(self) -> None:
        """
        Immediate shutdown hook (sync-safe).
        """
        if self._closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._closed = True
            logger.warning("[DG] abort without running loop; connection left to the SDK")
            return
        self._finish_task = loop.create_task(self.finish())


class DeepgramConnector:
    def __init__(self, client_factory=DeepgramClient):
        self.client_factory = client_factory

    async def open(self, credential: str, options: TranscriptionOptions, sink) -> DeepgramLiveConnection:
        if not credential:
            raise TranscriptionError("Deepgram credential is missing")

        try:
            client = self.client_factory(credential)
            live = DeepgramLiveConnection(client.listen.asyncwebsocket.v("1"), sink)
            live.register()

            live_options = LiveOptions(
                model=options.model,
                language=options.language,
                smart_format=options.smart_format,
                interim_results=options.interim_results,
                punctuate=options.punctuate,
                endpointing=options.endpointing_ms,
                encoding=options.encoding,
                sample_rate=options.sample_rate,
                channels=options.channels,
            )
            started = await live.connection.start(live_options)
        except TranscriptionError:
            raise
        except Exception as exc:
            logger.error("Deepgram connection failed: %s", exc)
            raise TranscriptionError(f"Could not open Deepgram connection: {exc}") from exc

        if started is False:
            raise TranscriptionError("Deepgram refused the live connection")

        logger.info("[DG] live connection started | model=%s language=%s", options.model, options.language)
        return live
