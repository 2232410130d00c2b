# recitescore/schemas/submission.py
from pydantic import BaseModel
from datetime import datetime

from recitescore.schemas.feedback import FeedbackPublic


class SubmissionBase(BaseModel):
    assignment_id: int
    student_id: str


class SubmissionPublic(SubmissionBase):
    id: int
    audio_url: str
    audio_content_type: str
    audio_duration: float | None = None

    submitted_at: datetime
    is_latest: bool
    is_late_submission: bool

    # pending / completed / error
    transcription_status: str
    transcription: str | None = None
    transcription_error: str | None = None
    transcribed_at: datetime | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class SubmissionCreated(SubmissionPublic):
    """Response of the upload; says whether a worker already has the job."""
    transcription_queued: bool = False


class SubmissionStatusPublic(BaseModel):
    submission_id: int
    status: str
    progress: str | None = None
    error: str | None = None
    transcription: str | None = None
    is_terminal: bool
    feedback: FeedbackPublic | None = None

    model_config = {"from_attributes": True}
