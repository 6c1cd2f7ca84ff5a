import json
import logging
from typing import Any

from mock_interview.core.config import LOG_LEVEL

logger = logging.getLogger("mock_interview.events")

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

# Candidate speech and generated questions never reach the logs verbatim.
_SPOKEN_KEYS = frozenset({"text", "answer", "transcript", "transcript_text", "question", "prompt"})


def _redact(value: Any) -> dict:
    spoken = str(value or "")
    return {"redacted": True, "length": len(spoken), "words": len(spoken.split())}


def _sanitize_value(key: str, value: Any) -> Any:
    field_name = str(key or "").lower()
    if field_name in _SPOKEN_KEYS:
        return _redact(value)
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(k): _sanitize_value(str(k), v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_sanitize_value(field_name, item) for item in value]
    return str(value)


def log_event(component: str, event: str, interview_id: str, level: int = logging.INFO, **fields) -> None:
    """One JSON line per session event, keyed by interview id."""
    record = {
        "component": str(component or "session"),
        "event": str(event or "unknown"),
        "interview_id": str(interview_id or ""),
    }
    for name, value in fields.items():
        record[str(name)] = _sanitize_value(str(name), value)
    logger.log(level, json.dumps(record, ensure_ascii=False, default=str))


def configure_logging(level: int | str | None = None) -> None:
    logging.basicConfig(format=LOG_FORMAT, level=level or LOG_LEVEL)
