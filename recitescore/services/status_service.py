# recitescore/services/status_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from recitescore.core.config import settings
from recitescore.models.feedback import Feedback
from recitescore.models.submission import (
    Submission,
    STATUS_COMPLETED,
    STATUS_ERROR,
    STATUS_PENDING,
)
from recitescore.services.scoring_service import accuracy_band

logger = logging.getLogger(__name__)

STALE_PENDING_MESSAGE = (
    "Processing did not finish in time. Please submit your recitation again."
)


@dataclass
class SubmissionStatus:
    submission_id: int
    status: str
    progress: Optional[str]
    error: Optional[str]
    transcription: Optional[str]
    feedback: Optional[Feedback]

    @property
    def is_terminal(self) -> bool:
        return self.status in (STATUS_COMPLETED, STATUS_ERROR)


def get_submission(db: Session, submission_id: int) -> Optional[Submission]:
    return db.query(Submission).filter(Submission.id == submission_id).first()


def latest_feedback(db: Session, submission_id: int) -> Optional[Feedback]:
    """Several rows may exist; the newest one is authoritative."""
    return (
        db.query(Feedback)
        .filter(Feedback.recitation_id == submission_id)
        .order_by(Feedback.generated_at.desc(), Feedback.id.desc())
        .first()
    )


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive values; submitted_at is always written in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _stale_cutoff(older_than: timedelta | None, now: datetime | None) -> datetime:
    if older_than is None:
        older_than = timedelta(minutes=settings.PENDING_TIMEOUT_MINUTES)
    return (now or datetime.now(timezone.utc)) - older_than


def _mark_stale(submission: Submission) -> None:
    submission.transcription_status = STATUS_ERROR
    submission.transcription_error = STALE_PENDING_MESSAGE
    submission.transcription_progress = None


def fail_if_stale(
    db: Session,
    submission: Submission,
    *,
    older_than: timedelta | None = None,
    now: datetime | None = None,
) -> bool:
    """Fail one pending submission that is past the pending timeout."""
    if submission.transcription_status != STATUS_PENDING:
        return False
    if _as_utc(submission.submitted_at) >= _stale_cutoff(older_than, now):
        return False

    _mark_stale(submission)
    db.add(submission)
    db.commit()
    db.refresh(submission)
    logger.warning(f"Submission {submission.id} still pending after the timeout, marked as error")
    return True


def get_status(
    db: Session,
    submission_id: int,
    *,
    now: datetime | None = None,
) -> Optional[SubmissionStatus]:
    submission = get_submission(db, submission_id)
    if submission is None:
        return None

    # a lost trigger or a dead worker must not leave the row pending forever
    fail_if_stale(db, submission, now=now)

    # progress only means something while the row is still pending
    progress = (
        submission.transcription_progress
        if submission.transcription_status == STATUS_PENDING
        else None
    )
    return SubmissionStatus(
        submission_id=submission.id,
        status=submission.transcription_status,
        progress=progress,
        error=submission.transcription_error,
        transcription=submission.transcription,
        feedback=latest_feedback(db, submission.id),
    )


def latest_submission(
    db: Session,
    *,
    assignment_id: int,
    student_id: str,
) -> Optional[Submission]:
    """
    Latest attempt for the pair, derived from submitted_at rather than the
    stored is_latest flag, so it is correct even if the flag flip raced.
    """
    return (
        db.query(Submission)
        .filter(
            Submission.assignment_id == assignment_id,
            Submission.student_id == student_id,
        )
        .order_by(Submission.submitted_at.desc(), Submission.id.desc())
        .first()
    )


def list_submissions(
    db: Session,
    *,
    assignment_id: int | None = None,
    student_id: str | None = None,
    latest_only: bool = False,
    skip: int = 0,
    limit: int = 100,
) -> List[Submission]:
    query = db.query(Submission)
    if assignment_id is not None:
        query = query.filter(Submission.assignment_id == assignment_id)
    if student_id is not None:
        query = query.filter(Submission.student_id == student_id)
    if latest_only:
        query = query.filter(Submission.is_latest.is_(True))
    return (
        query.order_by(Submission.submitted_at.desc(), Submission.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def override_feedback(
    db: Session,
    *,
    submission: Submission,
    accuracy: float,
    notes: str | None = None,
    teacher_id: str | None = None,
) -> Feedback:
    """
    Teacher re-score: update the newest feedback row in place, or create one
    when the submission was never scored. No history is kept.
    """
    feedback = latest_feedback(db, submission.id)
    if feedback is None:
        feedback = Feedback(recitation_id=submission.id)

    feedback.accuracy = accuracy
    feedback.notes = notes or accuracy_band(accuracy)
    feedback.generated_at = datetime.now(timezone.utc)
    feedback.overridden_by = teacher_id

    db.add(feedback)
    db.commit()
    db.refresh(feedback)
    return feedback


def fail_stale_pending(
    db: Session,
    *,
    older_than: timedelta | None = None,
    now: datetime | None = None,
) -> int:
    """
    Fail submissions that have sat in 'pending' too long (lost trigger,
    crashed worker) so the UI can explain them instead of spinning.
    """
    cutoff = _stale_cutoff(older_than, now)

    stale = (
        db.query(Submission)
        .filter(
            Submission.transcription_status == STATUS_PENDING,
            Submission.submitted_at < cutoff,
        )
        .all()
    )
    for submission in stale:
        _mark_stale(submission)
        db.add(submission)
    db.commit()

    if stale:
        logger.warning(f"Marked {len(stale)} stale pending submission(s) as error")
    return len(stale)
