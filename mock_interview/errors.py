from __future__ import annotations


class InterviewSessionError(Exception):
    """Base class for every error raised by the interview session stack."""


class MicrophoneAccessError(InterviewSessionError):
    """The microphone was denied or is unavailable."""


class TranscriptionError(InterviewSessionError):
    """The streaming transcription connection failed or could not be opened."""


class SynthesisError(InterviewSessionError):
    """Speech synthesis returned no playable audio."""


class EmptyAnswerError(InterviewSessionError):
    """A turn ended without any captured speech."""


class ExchangeError(InterviewSessionError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (status={self.status_code})"


class LanguageModelError(InterviewSessionError):
    """The language model call failed or produced unusable output."""


class SpeechSynthesisServiceError(InterviewSessionError):
    """The upstream text-to-speech provider failed."""
