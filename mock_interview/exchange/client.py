from __future__ import annotations

import logging
from typing import Any

import httpx

from mock_interview.core.config import EXCHANGE_BASE_URL, EXCHANGE_TIMEOUT_SEC
from mock_interview.errors import EmptyAnswerError, ExchangeError, SynthesisError
from mock_interview.session.models import (
    DemoContext,
    Feedback,
    StartResult,
    Turn,
    format_transcript,
)

logger = logging.getLogger("exchange")


class ExchangeClient:
    """
    Thin request/response wrapper around the interview backend.

    Every call either returns the parsed result or raises ExchangeError
    (SynthesisError for speech). Retrying is the caller's decision.
    """

    def __init__(
        self,
        base_url: str = EXCHANGE_BASE_URL,
        timeout: float = EXCHANGE_TIMEOUT_SEC,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = str(base_url or "").rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        try:
            response = await self._client.request(method, path, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("exchange request failed | %s %s err=%s", method, path, exc)
            raise ExchangeError(f"Request to {path} failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.status_code >= 400 or data.get("success") is False:
            message = str(data.get("error") or data.get("message") or f"HTTP {response.status_code}")
            logger.warning("exchange error | %s %s status=%s msg=%s", method, path, response.status_code, message)
            raise ExchangeError(message, status_code=response.status_code)

        return data

    async def start_interview(self, interview_id: str, demo: DemoContext | None = None) -> StartResult:
        payload: dict[str, Any] = {"interviewId": interview_id}
        if demo is not None:
            payload["demoData"] = demo.to_payload()
        data = await self._request("POST", "/api/interview/start", payload)
        question = str(data.get("question") or "").strip()
        if not question:
            raise ExchangeError("Interview start returned no question")
        return StartResult(
            question=question,
            transcription_credential=str(data.get("deepgramApiKey") or ""),
        )

    async def get_interview(self, interview_id: str) -> dict:
        data = await self._request("GET", f"/api/interview/{interview_id}")
        interview = data.get("interview")
        if not isinstance(interview, dict):
            raise ExchangeError("Interview payload missing")
        interview = dict(interview)
        if data.get("deepgramApiKey"):
            interview["deepgramApiKey"] = data["deepgramApiKey"]
        return interview

    async def submit_answer(
        self,
        interview_id: str,
        question: str,
        answer: str,
        demo_job_title: str | None = None,
    ) -> str:
        if not str(answer or "").strip():
            raise EmptyAnswerError("Answer is empty")
        payload: dict[str, Any] = {
            "interviewId": interview_id,
            "question": question,
            "answer": answer,
        }
        if demo_job_title:
            payload["demoJobTitle"] = demo_job_title
        data = await self._request("POST", "/api/interview/respond", payload)
        next_question = str(data.get("nextQuestion") or "").strip()
        if not next_question:
            raise ExchangeError("No next question returned")
        return next_question

    async def persist_transcript_entry(self, interview_id: str, question: str, answer: str) -> None:
        await self._request(
            "POST",
            "/api/interview/update-transcript",
            {"interviewId": interview_id, "question": question, "answer": answer},
        )

    async def complete_interview(
        self,
        interview_id: str,
        turns: list[Turn],
        demo: DemoContext | None = None,
    ) -> Feedback | None:
        payload: dict[str, Any] = {
            "interviewId": interview_id,
            "transcript": format_transcript(turns),
            "questions": [turn.question for turn in turns],
        }
        if demo is not None:
            payload.update(demo.to_payload())
        data = await self._request("POST", "/api/interview/complete", payload)
        feedback = data.get("feedback")
        if not isinstance(feedback, dict):
            logger.info("interview completed without feedback | id=%s msg=%s", interview_id, data.get("message"))
            return None
        return Feedback.from_dict(feedback)

    async def synthesize_speech(self, text: str) -> str:
        try:
            data = await self._request("POST", "/api/audio/question", {"text": text})
        except ExchangeError as exc:
            raise SynthesisError(f"Speech synthesis failed: {exc.message}") from exc
        audio_url = str(data.get("audioUrl") or "")
        if not audio_url:
            raise SynthesisError("Speech synthesis returned no audio")
        return audio_url
