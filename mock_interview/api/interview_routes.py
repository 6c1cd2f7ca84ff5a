import logging
import time

from fastapi import APIRouter, HTTPException

from mock_interview.core.config import DEEPGRAM_API_KEY
from mock_interview.core.logger import log_event
from mock_interview.db.interview_repo import DIFFICULTIES, InMemoryInterviewStore, InMemoryProfileStore
from mock_interview.errors import LanguageModelError, SpeechSynthesisServiceError
from mock_interview.schemas import (
    CompleteInterviewRequest,
    CreateInterviewRequest,
    FeedbackRequest,
    QuestionAudioRequest,
    RespondRequest,
    StartInterviewRequest,
    UpdateTranscriptRequest,
)
from mock_interview.services.openai_service import InterviewLanguageModel
from mock_interview.services.tts_service import GoogleTTSService
from mock_interview.session.models import is_ephemeral

logger = logging.getLogger("interview_routes")

router = APIRouter()

interview_store = InMemoryInterviewStore()
profile_store = InMemoryProfileStore()
language_model = InterviewLanguageModel()
tts_service = GoogleTTSService()


def _fail(status_code: int, error: str, message: str | None = None) -> HTTPException:
    detail = {"error": error}
    if message:
        detail["message"] = message
    return HTTPException(status_code=status_code, detail=detail)


def _transcript_text(transcript) -> str:
    if isinstance(transcript, list):
        return "\n".join(str(item) for item in transcript)
    return str(transcript or "")


@router.post("/api/interview/create")
def create_interview(body: CreateInterviewRequest):
    if not body.user_id or not body.job_title:
        raise _fail(400, "Missing required fields: userId and jobTitle")

    difficulty = (body.difficulty or "medium").lower()
    if difficulty not in DIFFICULTIES:
        raise _fail(400, "difficulty must be one of easy, medium, hard")

    record = interview_store.create(
        user_id=body.user_id,
        job_title=body.job_title,
        job_description=body.job_description or "",
        difficulty=difficulty,
        duration=body.duration or 30,
    )
    log_event("api", "interview_created", record.id, user_id=body.user_id)
    return {"success": True, "interviewId": record.id, "interview": record.to_dict()}


@router.get("/api/interview/list")
def list_interviews(userId: str | None = None, status: str | None = None, limit: int = 50):
    filters = {}
    if userId:
        filters["user_id"] = userId
    if status:
        filters["status"] = status
    items = interview_store.find_many(filters, limit=max(1, min(200, int(limit))))
    return {
        "success": True,
        "interviews": [item.to_dict() for item in items],
        "count": interview_store.count(filters),
    }


@router.get("/api/interview/{interview_id}")
def get_interview(interview_id: str):
    record = interview_store.find_by_id(interview_id)
    if record is None:
        raise _fail(404, "Interview not found")
    return {"success": True, "interview": record.to_dict(), "deepgramApiKey": DEEPGRAM_API_KEY}


@router.post("/api/interview/start")
async def start_interview(body: StartInterviewRequest):
    interview_id = body.interview_id
    if not interview_id:
        raise _fail(400, "Missing interviewId")

    if is_ephemeral(interview_id):
        demo = body.demo_data
        job_title = (demo.job_title if demo else None) or "Demo Interview"
        job_description = (demo.job_description if demo else None) or ""
        difficulty = (demo.difficulty if demo else None) or "medium"
        try:
            question = await language_model.generate_question(job_title, job_description, difficulty)
        except LanguageModelError as exc:
            raise _fail(500, "Failed to start interview", str(exc)) from exc
        log_event("api", "demo_started", interview_id)
        return {
            "success": True,
            "interviewId": interview_id,
            "question": question,
            "deepgramApiKey": DEEPGRAM_API_KEY,
        }

    record = interview_store.find_by_id(interview_id)
    if record is None:
        raise _fail(404, "Interview not found")

    if record.status == "in_progress":
        return {
            "success": True,
            "interviewId": interview_id,
            "question": record.current_question,
            "deepgramApiKey": DEEPGRAM_API_KEY,
            "message": "Interview already in progress",
        }

    if record.status == "completed":
        raise _fail(400, "Interview already completed")

    try:
        question = await language_model.generate_question(
            record.job_title, record.job_description, record.difficulty
        )
    except LanguageModelError as exc:
        raise _fail(500, "Failed to start interview", str(exc)) from exc

    interview_store.update(
        interview_id,
        status="in_progress",
        started_at=time.time(),
        current_question=question,
    )
    log_event("api", "interview_started", interview_id)
    return {
        "success": True,
        "interviewId": interview_id,
        "question": question,
        "deepgramApiKey": DEEPGRAM_API_KEY,
    }


@router.post("/api/interview/respond")
async def respond(body: RespondRequest):
    if not body.interview_id or not body.question or not body.answer:
        raise _fail(400, "interviewId, question, and answer are required")

    ephemeral = is_ephemeral(body.interview_id)
    record = None
    if ephemeral:
        job_title = body.demo_job_title or "Demo Interview"
    else:
        record = interview_store.find_by_id(body.interview_id)
        if record is None:
            raise _fail(404, "Interview not found")
        job_title = body.demo_job_title or record.job_title

    try:
        next_question = await language_model.generate_follow_up(body.question, body.answer, job_title)
    except LanguageModelError as exc:
        raise _fail(500, "Failed to process response", str(exc)) from exc

    questions = list(record.questions) if record else []
    answers = list(record.answers) if record else []
    if body.question not in questions:
        questions.append(body.question)
    answers.append(body.answer)

    if record is not None:
        interview_store.update(
            body.interview_id,
            questions=questions,
            answers=answers,
            current_question=next_question,
            audio_url=body.audio_url or record.audio_url,
            status="in_progress",
        )

    log_event("api", "answer_received", body.interview_id, answer=body.answer, ephemeral=ephemeral)
    return {"success": True, "nextQuestion": next_question, "questions": questions}


@router.post("/api/interview/update-transcript")
def update_transcript(body: UpdateTranscriptRequest):
    if not body.interview_id or not body.question or not body.answer:
        raise _fail(400, "Missing required fields")

    if is_ephemeral(body.interview_id):
        return {"success": True, "message": "Demo interview - transcript not saved"}

    record = interview_store.find_by_id(body.interview_id)
    if record is None:
        raise _fail(404, "Interview not found")

    transcript = list(record.transcript) + [f"Q: {body.question}\nA: {body.answer}"]
    questions = list(record.questions)
    if body.question not in questions:
        questions.append(body.question)
    interview_store.update(body.interview_id, transcript=transcript, questions=questions)
    log_event("api", "transcript_updated", body.interview_id, entries=len(transcript))
    return {"success": True, "message": "Transcript updated"}


@router.post("/api/interview/complete")
async def complete_interview(body: CompleteInterviewRequest):
    interview_id = body.interview_id
    if not interview_id:
        raise _fail(400, "Missing interviewId")

    if is_ephemeral(interview_id):
        transcript = _transcript_text(body.transcript)
        if not transcript.strip():
            return {
                "success": True,
                "message": "Demo interview completed (no transcript provided)",
                "isDemo": True,
            }
        try:
            feedback = await language_model.generate_feedback(
                job_title=body.job_title or "Demo Interview",
                job_description=body.job_description or "",
                difficulty=body.difficulty or "medium",
                questions=body.questions or [],
                transcript=transcript,
            )
        except LanguageModelError as exc:
            logger.error("Error generating demo feedback: %s", exc)
            return {
                "success": True,
                "message": "Demo interview completed (feedback generation failed)",
                "isDemo": True,
                "error": str(exc),
            }
        payload = feedback.to_dict()
        payload["generatedAt"] = time.time()
        return {"success": True, "interviewId": interview_id, "feedback": payload, "isDemo": True}

    record = interview_store.find_by_id(interview_id)
    if record is None:
        raise _fail(404, "Interview not found")

    if record.status == "completed" and record.feedback:
        return {
            "success": True,
            "interviewId": interview_id,
            "feedback": record.feedback,
            "alreadyCompleted": True,
        }

    # the client's transcript wins over persisted entries
    transcript = _transcript_text(body.transcript).strip() or _transcript_text(record.transcript)
    if not transcript.strip():
        raise _fail(400, "No transcript available to generate feedback")

    try:
        feedback = await language_model.generate_feedback(
            job_title=record.job_title,
            job_description=record.job_description,
            difficulty=record.difficulty,
            questions=body.questions or record.questions,
            transcript=transcript,
        )
    except LanguageModelError as exc:
        raise _fail(500, "Failed to complete interview", str(exc)) from exc

    payload = feedback.to_dict()
    payload["generatedAt"] = time.time()
    updated = interview_store.update(
        interview_id,
        status="completed",
        completed_at=time.time(),
        feedback=payload,
    )
    log_event("api", "interview_completed", interview_id, score=feedback.overall_score)
    _save_to_profile(updated)

    return {"success": True, "interviewId": interview_id, "feedback": updated.feedback}


def _save_to_profile(record) -> None:
    if not record.user_id or is_ephemeral(record.user_id):
        return
    try:
        profile_store.add_feedback(record.user_id, {
            "interviewId": record.id,
            "jobTitle": record.job_title,
            "difficulty": record.difficulty,
            "completedAt": record.completed_at,
            "feedback": record.feedback,
        })
    except Exception as exc:
        logger.error("Error saving feedback to user profile | interview=%s err=%s", record.id, exc)


@router.post("/api/interview/feedback")
async def interview_feedback(body: FeedbackRequest):
    """Regenerate feedback for a stored interview, optionally from a client transcript."""
    if not body.interview_id:
        raise _fail(400, "Missing interviewId")

    record = interview_store.find_by_id(body.interview_id)
    if record is None:
        raise _fail(404, "Interview not found")

    stored_transcript = record.transcript
    if isinstance(body.transcript, list) and body.transcript:
        stored_transcript = [str(item) for item in body.transcript]
    elif isinstance(body.transcript, str) and body.transcript.strip():
        stored_transcript = [body.transcript.strip()]

    transcript = _transcript_text(stored_transcript)
    if not transcript.strip():
        raise _fail(400, "No transcript available to generate feedback")

    try:
        feedback = await language_model.generate_feedback(
            job_title=record.job_title,
            job_description=record.job_description,
            difficulty=record.difficulty,
            questions=record.questions,
            transcript=transcript,
        )
    except LanguageModelError as exc:
        raise _fail(500, "Failed to generate feedback", str(exc)) from exc

    payload = feedback.to_dict()
    payload["generatedAt"] = time.time()
    updated = interview_store.update(
        body.interview_id,
        status="completed",
        completed_at=time.time(),
        transcript=stored_transcript,
        audio_url=body.audio_url or record.audio_url,
        feedback=payload,
    )
    log_event("api", "feedback_generated", body.interview_id, score=feedback.overall_score)
    _save_to_profile(updated)

    return {"success": True, "interviewId": body.interview_id, "feedback": updated.feedback}


@router.get("/api/user/feedback")
def user_feedback(userId: str | None = None):
    if not userId:
        raise _fail(400, "Missing userId")
    return {"success": True, "feedback": profile_store.get_feedback(userId)}


@router.delete("/api/user/feedback/{interview_id}")
def delete_user_feedback(interview_id: str, userId: str | None = None):
    if not userId:
        raise _fail(400, "Missing userId parameter")
    if not profile_store.remove_feedback(userId, interview_id):
        raise _fail(404, "User profile not found")
    log_event("api", "feedback_deleted", interview_id, user_id=userId)
    return {"success": True, "message": "Feedback deleted successfully"}


@router.post("/api/audio/question")
async def question_audio(body: QuestionAudioRequest):
    if not body.text or not body.text.strip():
        raise _fail(400, "text is required")
    try:
        audio_url = await tts_service.generate_question_audio(body.text)
    except SpeechSynthesisServiceError as exc:
        raise _fail(500, "Failed to generate question audio", str(exc)) from exc
    return {"success": True, "audioUrl": audio_url}
