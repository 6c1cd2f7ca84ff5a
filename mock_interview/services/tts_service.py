import logging

import httpx

from mock_interview.core.config import (
    GOOGLE_TTS_API_KEY,
    GOOGLE_TTS_GENDER,
    GOOGLE_TTS_LANGUAGE_CODE,
    GOOGLE_TTS_TIMEOUT_SEC,
    GOOGLE_TTS_VOICE_NAME,
)
from mock_interview.errors import SpeechSynthesisServiceError

logger = logging.getLogger("tts_service")

GOOGLE_TTS_BASE_URL = "https://texttospeech.googleapis.com/v1"

_MIME_TYPES = {
    "MP3": "audio/mpeg",
    "OGG_OPUS": "audio/ogg",
    "LINEAR16": "audio/wav",
}


class GoogleTTSService:
    def __init__(
        self,
        api_key: str = GOOGLE_TTS_API_KEY,
        language_code: str = GOOGLE_TTS_LANGUAGE_CODE,
        ssml_gender: str = GOOGLE_TTS_GENDER,
        voice_name: str = GOOGLE_TTS_VOICE_NAME,
        timeout_sec: float = GOOGLE_TTS_TIMEOUT_SEC,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.language_code = language_code
        self.ssml_gender = ssml_gender or "NEUTRAL"
        self.voice_name = voice_name
        self.timeout_sec = timeout_sec
        self.transport = transport

    def _request_body(self, text: str, audio_encoding: str, speaking_rate: float, pitch: float) -> dict:
        body = {
            "input": {"text": text},
            "voice": {
                "languageCode": self.language_code,
                "ssmlGender": self.ssml_gender,
            },
            "audioConfig": {
                "audioEncoding": audio_encoding,
                "speakingRate": speaking_rate,
                "pitch": pitch,
            },
        }
        if self.voice_name:
            body["voice"]["name"] = self.voice_name
        return body

    async def generate_question_audio(
        self,
        text: str,
        audio_encoding: str = "MP3",
        speaking_rate: float = 1.0,
        pitch: float = 0.0,
    ) -> str:
        """Synthesize `text` and return it as a `data:<mime>;base64,...` URL."""
        if not self.api_key:
            raise SpeechSynthesisServiceError("GOOGLE_TTS_API_KEY is not set")

        url = f"{GOOGLE_TTS_BASE_URL}/text:synthesize"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_sec, transport=self.transport) as client:
                response = await client.post(
                    url,
                    params={"key": self.api_key},
                    json=self._request_body(text, audio_encoding, speaking_rate, pitch),
                )
        except httpx.HTTPError as exc:
            logger.error("Error converting text to speech: %s", exc)
            raise SpeechSynthesisServiceError("Failed to convert text to speech") from exc

        if response.status_code != 200:
            logger.error("Google TTS rejected request | status=%s", response.status_code)
            raise SpeechSynthesisServiceError("Failed to convert text to speech")

        try:
            audio_content = str(response.json().get("audioContent") or "")
        except ValueError:
            audio_content = ""
        if not audio_content:
            raise SpeechSynthesisServiceError("No audio content returned from Google TTS")

        logger.info("Text converted to speech | text_length=%s encoding=%s", len(text), audio_encoding)
        mime_type = _MIME_TYPES.get(audio_encoding, "audio/wav")
        return f"data:{mime_type};base64,{audio_content}"
