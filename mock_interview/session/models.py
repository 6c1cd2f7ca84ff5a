from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mock_interview.core.config import EPHEMERAL_ID_PREFIX


def is_ephemeral(interview_id: str) -> bool:
    return str(interview_id or "").startswith(EPHEMERAL_ID_PREFIX)


def _clamp_score(value, default=0):
    try:
        return max(0, min(100, int(round(float(value)))))
    except Exception:
        return default


def _string_list(value) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item).strip() for item in value if str(item or "").strip()]


@dataclass(frozen=True)
class Turn:
    question: str
    answer: str

    def as_transcript_entry(self) -> str:
        return f"Q: {self.question}\nA: {self.answer}"

    def to_dict(self) -> dict:
        return {"question": self.question, "answer": self.answer}


def format_transcript(turns: list[Turn]) -> str:
    return "\n\n".join(turn.as_transcript_entry() for turn in turns)


@dataclass
class Feedback:
    overall_score: int = 0
    strengths: list[str] = field(default_factory=list)
    weaknesses: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    detailed_analysis: str = ""

    @classmethod
    def from_dict(cls, data: dict | None) -> "Feedback":
        data = data if isinstance(data, dict) else {}
        return cls(
            overall_score=_clamp_score(data.get("overallScore", data.get("overall_score")), 0),
            strengths=_string_list(data.get("strengths")),
            weaknesses=_string_list(data.get("weaknesses")),
            recommendations=_string_list(data.get("recommendations")),
            detailed_analysis=str(data.get("detailedAnalysis") or data.get("detailed_analysis") or "").strip(),
        )

    def to_dict(self) -> dict:
        return {
            "overallScore": self.overall_score,
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "recommendations": list(self.recommendations),
            "detailedAnalysis": self.detailed_analysis,
        }


@dataclass
class StartResult:
    question: str
    transcription_credential: str = ""
    resumed: bool = False


@dataclass(frozen=True)
class DemoContext:
    """Job context supplied by the caller for sessions that are never persisted."""

    job_title: str = ""
    job_description: str = ""
    difficulty: str = "medium"

    def to_payload(self) -> dict:
        return {
            "jobTitle": self.job_title,
            "jobDescription": self.job_description,
            "difficulty": self.difficulty,
        }


class StreamEventKind(str, Enum):
    OPEN = "open"
    TRANSCRIPT = "transcript"
    ERROR = "error"
    CLOSE = "close"


@dataclass(frozen=True)
class StreamEvent:
    kind: StreamEventKind
    text: str = ""
    is_final: bool = False
    confidence: float = 0.0
    error: Any = None

    @classmethod
    def opened(cls) -> "StreamEvent":
        return cls(StreamEventKind.OPEN)

    @classmethod
    def closed(cls) -> "StreamEvent":
        return cls(StreamEventKind.CLOSE)

    @classmethod
    def failed(cls, error: Any) -> "StreamEvent":
        return cls(StreamEventKind.ERROR, error=error)

    @classmethod
    def transcript(cls, text: str, is_final: bool, confidence: float = 0.0) -> "StreamEvent":
        return cls(StreamEventKind.TRANSCRIPT, text=text, is_final=is_final, confidence=confidence)


@dataclass(frozen=True)
class TranscriptionOptions:
    model: str = "nova-2"
    language: str = "en-US"
    endpointing_ms: int = 300
    sample_rate: int = 16000
    channels: int = 1
    encoding: str = "linear16"
    interim_results: bool = True
    punctuate: bool = True
    smart_format: bool = True


@dataclass
class CompletionResult:
    interview_id: str
    turns: list[Turn]
    feedback: Feedback | None = None
    degraded: bool = False
    message: str = ""

    @property
    def has_feedback(self) -> bool:
        return self.feedback is not None
