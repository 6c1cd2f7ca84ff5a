from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field, replace
from threading import Lock

INTERVIEW_STATUSES = {"created", "in_progress", "completed", "cancelled"}
DIFFICULTIES = {"easy", "medium", "hard"}


@dataclass
class InterviewRecord:
    id: str
    user_id: str
    job_title: str
    job_description: str
    difficulty: str = "medium"
    duration: int = 30
    status: str = "created"
    current_question: str = ""
    questions: list[str] = field(default_factory=list)
    answers: list[str] = field(default_factory=list)
    transcript: list[str] = field(default_factory=list)
    audio_url: str | None = None
    feedback: dict | None = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    started_at: float | None = None
    completed_at: float | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        return {
            "id": data["id"],
            "userId": data["user_id"],
            "jobTitle": data["job_title"],
            "jobDescription": data["job_description"],
            "difficulty": data["difficulty"],
            "duration": data["duration"],
            "status": data["status"],
            "currentQuestion": data["current_question"],
            "questions": data["questions"],
            "answers": data["answers"],
            "transcript": data["transcript"],
            "audioUrl": data["audio_url"],
            "feedback": data["feedback"],
            "createdAt": data["created_at"],
            "updatedAt": data["updated_at"],
            "startedAt": data["started_at"],
            "completedAt": data["completed_at"],
        }


class InMemoryInterviewStore:
    def __init__(self):
        self._lock = Lock()
        self._items: dict[str, InterviewRecord] = {}

    def create(
        self,
        user_id: str,
        job_title: str,
        job_description: str,
        difficulty: str = "medium",
        duration: int = 30,
    ) -> InterviewRecord:
        record = InterviewRecord(
            id=uuid.uuid4().hex,
            user_id=user_id,
            job_title=job_title,
            job_description=job_description,
            difficulty=difficulty if difficulty in DIFFICULTIES else "medium",
            duration=max(1, int(duration or 30)),
        )
        with self._lock:
            self._items[record.id] = record
        return replace(record)

    def find_by_id(self, interview_id: str) -> InterviewRecord | None:
        with self._lock:
            item = self._items.get(interview_id)
            return _copy(item) if item else None

    def update(self, interview_id: str, **changes) -> InterviewRecord:
        with self._lock:
            item = self._items.get(interview_id)
            if item is None:
                raise KeyError(interview_id)
            if "status" in changes and changes["status"] not in INTERVIEW_STATUSES:
                raise ValueError(f"invalid status: {changes['status']}")
            updated = replace(item, **changes, updated_at=time.time())
            self._items[interview_id] = updated
            return _copy(updated)

    def find_many(self, filters: dict | None = None, limit: int | None = None) -> list[InterviewRecord]:
        filters = filters or {}
        with self._lock:
            items = [
                _copy(item)
                for item in self._items.values()
                if all(getattr(item, key, None) == value for key, value in filters.items())
            ]
        items.sort(key=lambda item: item.created_at, reverse=True)
        return items[:limit] if limit else items

    def count(self, filters: dict | None = None) -> int:
        return len(self.find_many(filters))


class InMemoryProfileStore:
    def __init__(self):
        self._lock = Lock()
        self._feedback: dict[str, list[dict]] = {}

    def add_feedback(self, user_id: str, entry: dict) -> None:
        with self._lock:
            self._feedback.setdefault(user_id, []).append(dict(entry))

    def get_feedback(self, user_id: str) -> list[dict]:
        with self._lock:
            return [dict(item) for item in self._feedback.get(user_id, [])]

    def remove_feedback(self, user_id: str, interview_id: str) -> bool:
        """Drop every entry for `interview_id`; False when the user has no profile."""
        with self._lock:
            entries = self._feedback.get(user_id)
            if entries is None:
                return False
            self._feedback[user_id] = [item for item in entries if item.get("interviewId") != interview_id]
            return True


def _copy(item: InterviewRecord) -> InterviewRecord:
    return replace(
        item,
        questions=list(item.questions),
        answers=list(item.answers),
        transcript=list(item.transcript),
        feedback=dict(item.feedback) if item.feedback else None,
    )
