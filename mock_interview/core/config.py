import os
from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_PROJECT_ENV_PATH = _PROJECT_ROOT / ".env"
load_dotenv(dotenv_path=_PROJECT_ENV_PATH, override=False)

OPENAI_API_KEY = str(os.getenv("OPENAI_API_KEY") or "").strip()
MODEL_NAME = str(os.getenv("MODEL_NAME") or "gpt-4.1-mini").strip()
LLM_TIMEOUT_SEC = max(1.0, float(os.getenv("LLM_TIMEOUT_SEC", "20")))
QA_MODE = os.getenv("QA_MODE", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DEEPGRAM_API_KEY = str(os.getenv("DEEPGRAM_API_KEY") or "").strip()
DEEPGRAM_MODEL = str(os.getenv("DEEPGRAM_MODEL") or "nova-2").strip()
DEEPGRAM_LANGUAGE = str(os.getenv("DEEPGRAM_LANGUAGE") or "en-US").strip()

GOOGLE_TTS_API_KEY = str(os.getenv("GOOGLE_TTS_API_KEY") or "").strip()
GOOGLE_TTS_LANGUAGE_CODE = str(os.getenv("GOOGLE_TTS_LANGUAGE_CODE") or "en-US").strip()
GOOGLE_TTS_VOICE_NAME = str(os.getenv("GOOGLE_TTS_VOICE_NAME") or "").strip()
GOOGLE_TTS_GENDER = str(os.getenv("GOOGLE_TTS_GENDER") or "NEUTRAL").strip().upper()
GOOGLE_TTS_TIMEOUT_SEC = max(1.0, float(os.getenv("GOOGLE_TTS_TIMEOUT_SEC", "15")))

EXCHANGE_BASE_URL = str(os.getenv("EXCHANGE_BASE_URL") or "http://127.0.0.1:8000").strip().rstrip("/")
EXCHANGE_TIMEOUT_SEC = max(1.0, float(os.getenv("EXCHANGE_TIMEOUT_SEC", "60")))
EPHEMERAL_ID_PREFIX = str(os.getenv("EPHEMERAL_ID_PREFIX") or "demo_")

# Session pacing knobs
SESSION_SILENCE_TIMEOUT_SEC = max(0.5, float(os.getenv("SESSION_SILENCE_TIMEOUT_SEC", "3.0")))
SESSION_CONFIDENCE_THRESHOLD = min(1.0, max(0.0, float(os.getenv("SESSION_CONFIDENCE_THRESHOLD", "0.5"))))
SESSION_READY_TIMEOUT_SEC = max(0.1, float(os.getenv("SESSION_READY_TIMEOUT_SEC", "2.0")))
SESSION_ENDPOINTING_MS = max(10, int(os.getenv("SESSION_ENDPOINTING_MS", "300")))
SESSION_CHUNK_MS = max(20, int(os.getenv("SESSION_CHUNK_MS", "300")))
SESSION_SAMPLE_RATE = max(8000, int(os.getenv("SESSION_SAMPLE_RATE", "16000")))


@dataclass(frozen=True)
class SessionTimings:
    """Every delay and threshold the live session uses, in seconds unless noted."""

    clip_gap_sec: float = 0.2
    sequence_settle_sec: float = 0.5
    capture_start_delay_sec: float = 0.1
    resume_capture_delay_sec: float = 0.3
    pre_start_settle_sec: float = 0.1
    ready_timeout_sec: float = SESSION_READY_TIMEOUT_SEC
    flush_grace_sec: float = 0.3
    release_settle_sec: float = 0.2
    silence_timeout_sec: float = SESSION_SILENCE_TIMEOUT_SEC
    error_restart_delay_sec: float = 2.0
    no_answer_resume_sec: float = 1.0
    submit_retry_delay_sec: float = 2.0
    persist_flush_timeout_sec: float = 3.0
    confidence_threshold: float = SESSION_CONFIDENCE_THRESHOLD
    final_reset_min_chars: int = 3
    interim_reset_min_chars: int = 5
    endpointing_ms: int = SESSION_ENDPOINTING_MS
    chunk_ms: int = SESSION_CHUNK_MS
    sample_rate: int = SESSION_SAMPLE_RATE
    # audio chunks held while the stream is slower than the microphone
    chunk_queue_max: int = 64


def get_allowed_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if not raw:
        return [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    return [item.strip() for item in raw.split(",") if item.strip()]
