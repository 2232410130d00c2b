# recitescore/api/v1/endpoints/recitations.py
from typing import List

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from recitescore.capture.errors import CaptureError
from recitescore.capture.validation import AudioValidator
from recitescore.db.session import get_db
from recitescore.schemas.feedback import FeedbackOverride, FeedbackPublic
from recitescore.schemas.submission import (
    SubmissionCreated,
    SubmissionPublic,
    SubmissionStatusPublic,
)
from recitescore.services import status_service, upload_manager
from recitescore.services.storage import get_storage

router = APIRouter(prefix="/recitations", tags=["recitations"])

GENERIC_CONTENT_TYPES = ("", "application/octet-stream")


def get_validator() -> AudioValidator:
    return AudioValidator()


@router.post("", response_model=SubmissionCreated, status_code=status.HTTP_201_CREATED)
def create_recitation(
    file: UploadFile = File(...),
    assignment_id: int = Form(...),
    student_id: str = Form(...),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
    validator: AudioValidator = Depends(get_validator),
):
    """
    Store a recording and create a pending submission for it.
    Transcription is queued when the worker queue is enabled; otherwise the
    client triggers it through /speech-recognition.
    """
    content_type = file.content_type
    if content_type in GENERIC_CONTENT_TYPES:
        content_type = None

    try:
        audio = validator.validate(file.file.read(), content_type, filename=file.filename)
    except CaptureError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        sub, queued = upload_manager.submit_recitation(
            db,
            assignment_id=assignment_id,
            student_id=student_id,
            audio=audio.data,
            content_type=audio.content_type,
            duration=audio.duration,
            storage=storage,
        )
    except upload_manager.SubmissionError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except upload_manager.UploadFailed as e:
        raise HTTPException(status_code=502, detail=str(e))

    result = SubmissionCreated.model_validate(sub)
    result.transcription_queued = queued
    return result


@router.get("", response_model=List[SubmissionPublic])
def list_recitations(
    assignment_id: int | None = None,
    student_id: str | None = None,
    latest_only: bool = False,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    return status_service.list_submissions(
        db,
        assignment_id=assignment_id,
        student_id=student_id,
        latest_only=latest_only,
        skip=skip,
        limit=limit,
    )


@router.get("/latest", response_model=SubmissionPublic)
def get_latest_recitation(
    assignment_id: int,
    student_id: str,
    db: Session = Depends(get_db),
):
    sub = status_service.latest_submission(
        db, assignment_id=assignment_id, student_id=student_id
    )
    if not sub:
        raise HTTPException(status_code=404, detail="No submission for this assignment")
    return sub


@router.get("/{submission_id}", response_model=SubmissionPublic)
def get_recitation(submission_id: int, db: Session = Depends(get_db)):
    sub = status_service.get_submission(db, submission_id)
    if not sub:
        raise HTTPException(status_code=404, detail="Submission not found")
    return sub


@router.get("/{submission_id}/status", response_model=SubmissionStatusPublic)
def get_recitation_status(submission_id: int, db: Session = Depends(get_db)):
    current = status_service.get_status(db, submission_id)
    if current is None:
        raise HTTPException(status_code=404, detail="Submission not found")
    return SubmissionStatusPublic.model_validate(current)


@router.get("/{submission_id}/feedback", response_model=FeedbackPublic)
def get_feedback(submission_id: int, db: Session = Depends(get_db)):
    if not status_service.get_submission(db, submission_id):
        raise HTTPException(status_code=404, detail="Submission not found")
    feedback = status_service.latest_feedback(db, submission_id)
    if feedback is None:
        raise HTTPException(status_code=404, detail="No feedback yet")
    return feedback


@router.put("/{submission_id}/feedback", response_model=FeedbackPublic)
def override_feedback(
    submission_id: int,
    feedback_in: FeedbackOverride,
    db: Session = Depends(get_db),
):
    """
    Teacher re-score: overwrites accuracy and notes on the newest feedback row
    (notes default to the accuracy band).
    """
    sub = status_service.get_submission(db, submission_id)
    if not sub:
        raise HTTPException(status_code=404, detail="Submission not found")

    return status_service.override_feedback(
        db,
        submission=sub,
        accuracy=feedback_in.accuracy,
        notes=feedback_in.notes,
        teacher_id=feedback_in.teacher_id,
    )
