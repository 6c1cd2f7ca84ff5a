import asyncio
import json
import logging
import re

from openai import AsyncOpenAI

from mock_interview.core.config import LLM_TIMEOUT_SEC, MODEL_NAME, OPENAI_API_KEY
from mock_interview.errors import LanguageModelError
from mock_interview.prompts import (
    FEEDBACK_PROMPT,
    FEEDBACK_SYSTEM_PROMPT,
    FOLLOW_UP_PROMPT,
    QUESTION_PROMPT,
    QUESTION_SYSTEM_PROMPT,
)
from mock_interview.session.models import Feedback

logger = logging.getLogger("openai_service")


def _extract_json_dict(text: str) -> dict | None:
    text = (text or "").strip()
    if not text:
        return None

    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else None
    except Exception:
        pass

    fenced = re.search(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", text, re.IGNORECASE)
    if fenced:
        try:
            parsed = json.loads(fenced.group(1))
            return parsed if isinstance(parsed, dict) else None
        except Exception:
            pass

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        try:
            parsed = json.loads(text[start:end + 1])
            return parsed if isinstance(parsed, dict) else None
        except Exception:
            return None

    return None


def _clean_question(text: str) -> str:
    question = str(text or "").strip().strip('"').strip()
    question = re.sub(r"^(question\s*:\s*)", "", question, flags=re.IGNORECASE)
    return question.strip()


class InterviewLanguageModel:
    """Question, follow-up and feedback generation on top of OpenAI chat completions."""

    def __init__(self, client=None, model: str = MODEL_NAME, timeout_sec: float = LLM_TIMEOUT_SEC):
        self._client = client
        self.model = model
        self.timeout_sec = timeout_sec

    @property
    def client(self):
        if self._client is None:
            if not OPENAI_API_KEY:
                raise LanguageModelError("OPENAI_API_KEY is not set")
            self._client = AsyncOpenAI(api_key=OPENAI_API_KEY)
        return self._client

    async def _complete(self, system: str, prompt: str, temperature: float) -> str:
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {
                            "role": "system",
                            "content": system
                        },
                        {
                            "role": "user",
                            "content": prompt
                        }
                    ],
                    temperature=temperature,
                ),
                timeout=self.timeout_sec,
            )
        except LanguageModelError:
            raise
        except asyncio.TimeoutError as exc:
            logger.warning("llm timeout | model=%s", self.model)
            raise LanguageModelError("Language model timed out") from exc
        except Exception as exc:
            logger.warning("llm failure | model=%s err=%s", self.model, exc)
            raise LanguageModelError(f"Language model request failed: {exc}") from exc

        message = response.choices[0].message.content
        return str(message or "").strip()

    async def generate_question(self, job_title: str, job_description: str, difficulty: str = "medium") -> str:
        prompt = QUESTION_PROMPT.format(
            job_title=job_title,
            job_description=job_description or "Not provided",
            difficulty=difficulty,
        )
        question = _clean_question(await self._complete(QUESTION_SYSTEM_PROMPT, prompt, temperature=0.7))
        if not question:
            raise LanguageModelError("Failed to generate interview question")
        logger.info("Interview question generated | difficulty=%s", difficulty)
        return question

    async def generate_follow_up(self, previous_question: str, answer: str, job_title: str) -> str:
        prompt = FOLLOW_UP_PROMPT.format(
            previous_question=previous_question,
            answer=answer,
            job_title=job_title,
        )
        question = _clean_question(await self._complete(QUESTION_SYSTEM_PROMPT, prompt, temperature=0.7))
        if not question:
            raise LanguageModelError("Failed to generate follow-up question")
        return question

    async def generate_feedback(
        self,
        job_title: str,
        job_description: str,
        difficulty: str,
        questions: list[str],
        transcript: str,
    ) -> Feedback:
        prompt = FEEDBACK_PROMPT.format(
            job_title=job_title,
            job_description=job_description or "Not provided",
            difficulty=difficulty,
            questions="\n".join(f"{i + 1}. {q}" for i, q in enumerate(questions or [])),
            transcript=transcript,
        )
        raw = await self._complete(FEEDBACK_SYSTEM_PROMPT, prompt, temperature=0.4)
        parsed = _extract_json_dict(raw)
        if not isinstance(parsed, dict):
            logger.warning("feedback output was not JSON | length=%s", len(raw))
            raise LanguageModelError("Failed to generate feedback: model returned no JSON")
        logger.info("Feedback generated | questions=%s", len(questions or []))
        return Feedback.from_dict(parsed)
