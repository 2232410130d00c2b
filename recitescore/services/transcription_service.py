# recitescore/services/transcription_service.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from recitescore.models.assignment import Assignment
from recitescore.models.feedback import Feedback
from recitescore.models.submission import (
    Submission,
    STATUS_COMPLETED,
    STATUS_ERROR,
    STATUS_PENDING,
)
from recitescore.services.asr_client import AsrClient
from recitescore.services.scoring_service import score_recitation
from recitescore.services.storage import get_storage

logger = logging.getLogger(__name__)

CHECKPOINT_STARTED = "Processing started..."
CHECKPOINT_SENDING = "Sending audio for analysis..."
CHECKPOINT_SAVING = "Analysis complete. Saving results..."

UNKNOWN_ERROR = "An unknown processing error occurred."


class TranscriptionError(Exception):
    pass


class SubmissionNotFound(TranscriptionError):
    pass


class TranscriptionNotPending(TranscriptionError):
    pass


class EmptyTranscript(TranscriptionError):
    pass


def _get_submission_and_assignment(
    db: Session,
    submission_id: int,
) -> tuple[Submission, Optional[Assignment]]:
    submission: Optional[Submission] = (
        db.query(Submission).filter(Submission.id == submission_id).first()
    )
    if submission is None:
        raise SubmissionNotFound(f"submission {submission_id} not found")

    assignment: Optional[Assignment] = (
        db.query(Assignment).filter(Assignment.id == submission.assignment_id).first()
    )
    return submission, assignment


def _claim(db: Session, submission_id: int) -> bool:
    """
    Move a fresh pending row to the first checkpoint in one conditional
    update, so two concurrent triggers cannot both run it.
    """
    claimed = (
        db.query(Submission)
        .filter(
            Submission.id == submission_id,
            Submission.transcription_status == STATUS_PENDING,
            Submission.transcription_progress.is_(None),
        )
        .update(
            {Submission.transcription_progress: CHECKPOINT_STARTED},
            synchronize_session=False,
        )
    )
    db.commit()
    return claimed == 1


def _checkpoint(db: Session, submission: Submission, message: str) -> None:
    logger.info(f"[submission {submission.id}] {message}")
    submission.transcription_progress = message
    db.add(submission)
    db.commit()


def _mark_error(db: Session, submission_id: int, message: str) -> None:
    submission = db.query(Submission).filter(Submission.id == submission_id).first()
    if submission is None:
        return
    submission.transcription_status = STATUS_ERROR
    submission.transcription_error = message
    submission.transcription_progress = None
    db.add(submission)
    db.commit()


def describe_passage(assignment: Optional[Assignment]) -> Optional[str]:
    """Text stored as expected_text on the feedback row."""
    if assignment is None:
        return None
    if assignment.target_text:
        return assignment.target_text
    if assignment.surah_name:
        return (
            f"Reference: Surah {assignment.surah_name}, "
            f"Ayahs {assignment.start_ayah}-{assignment.end_ayah}"
        )
    return None


def run_transcription_for_submission(
    db: Session,
    submission_id: int,
    *,
    asr_client: AsrClient | None = None,
    storage=None,
) -> Submission:
    """
    Called by the trigger endpoint or the worker: transcribe one submission
    and score it.

    - pending -> completed, with transcription and a Feedback row
    - any failure -> error, with a readable transcription_error; the
      exception is re-raised as TranscriptionError for the caller
    """
    submission, assignment = _get_submission_and_assignment(db, submission_id)

    if submission.transcription_status != STATUS_PENDING or not _claim(db, submission_id):
        raise TranscriptionNotPending(
            f"submission {submission_id} is already {submission.transcription_status}"
            + (f" ({submission.transcription_progress})" if submission.transcription_progress else "")
        )
    db.refresh(submission)
    logger.info(f"[submission {submission_id}] {CHECKPOINT_STARTED}")

    asr_client = asr_client or AsrClient()
    storage = storage or get_storage()

    try:
        if assignment is None:
            raise TranscriptionError(
                f"Assignment {submission.assignment_id} for submission {submission_id} not found"
            )

        audio = storage.get(submission.audio_key)

        _checkpoint(db, submission, CHECKPOINT_SENDING)
        transcribed_text = asr_client.transcribe(audio, submission.audio_content_type).strip()
        if not transcribed_text:
            raise EmptyTranscript("Transcription failed: the model returned empty text.")

        _checkpoint(db, submission, CHECKPOINT_SAVING)
        score = score_recitation(transcribed_text, assignment.target_text)
        now = datetime.now(timezone.utc)

        db.add(
            Feedback(
                recitation_id=submission.id,
                accuracy=score.accuracy,
                notes=score.notes,
                expected_text=describe_passage(assignment),
                generated_at=now,
            )
        )

        submission.transcription = transcribed_text
        submission.transcription_status = STATUS_COMPLETED
        submission.transcribed_at = now
        submission.transcription_error = None
        submission.transcription_progress = None
        db.add(submission)
        db.commit()
        db.refresh(submission)

    except Exception as e:
        db.rollback()
        message = str(e) or UNKNOWN_ERROR
        logger.error(f"Transcription failed for submission {submission_id}: {message}", exc_info=True)
        _mark_error(db, submission_id, message)
        if isinstance(e, TranscriptionError):
            raise
        raise TranscriptionError(message) from e

    logger.info(
        f"Completed transcription for submission {submission_id}: "
        f"accuracy={score.accuracy:.3f}, scored={score.scored}"
    )
    return submission
