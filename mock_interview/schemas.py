from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CreateInterviewRequest(_CamelModel):
    user_id: str | None = Field(default=None, alias="userId")
    job_title: str | None = Field(default=None, alias="jobTitle")
    job_description: str | None = Field(default=None, alias="jobDescription")
    difficulty: str | None = None
    duration: int | None = None


class DemoData(_CamelModel):
    job_title: str | None = Field(default=None, alias="jobTitle")
    job_description: str | None = Field(default=None, alias="jobDescription")
    difficulty: str | None = None


class StartInterviewRequest(_CamelModel):
    interview_id: str | None = Field(default=None, alias="interviewId")
    demo_data: DemoData | None = Field(default=None, alias="demoData")


class RespondRequest(_CamelModel):
    interview_id: str | None = Field(default=None, alias="interviewId")
    question: str | None = None
    answer: str | None = None
    audio_url: str | None = Field(default=None, alias="audioUrl")
    demo_job_title: str | None = Field(default=None, alias="demoJobTitle")


class UpdateTranscriptRequest(_CamelModel):
    interview_id: str | None = Field(default=None, alias="interviewId")
    question: str | None = None
    answer: str | None = None


class CompleteInterviewRequest(_CamelModel):
    interview_id: str | None = Field(default=None, alias="interviewId")
    transcript: str | list[str] | None = None
    questions: list[str] | None = None
    job_title: str | None = Field(default=None, alias="jobTitle")
    job_description: str | None = Field(default=None, alias="jobDescription")
    difficulty: str | None = None


class FeedbackRequest(_CamelModel):
    interview_id: str | None = Field(default=None, alias="interviewId")
    transcript: str | list[str] | None = None
    audio_url: str | None = Field(default=None, alias="audioUrl")


class QuestionAudioRequest(_CamelModel):
    text: str | None = None
