# recitescore/services/upload_manager.py
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recitescore.core.config import settings
from recitescore.core.media import extension_for
from recitescore.models.assignment import Assignment
from recitescore.models.submission import Submission, STATUS_PENDING
from recitescore.services.late_policy import is_late_submission
from recitescore.services.retry import RetryExhausted, RetryPolicy
from recitescore.services.storage import get_storage

logger = logging.getLogger(__name__)


class SubmissionError(Exception):
    pass


class UploadFailed(Exception):
    """Storage upload gave up; the caller keeps the audio and may resubmit."""

    def __init__(self, message: str, last_error: BaseException | None = None):
        super().__init__(message)
        self.last_error = last_error


def build_storage_key(
    student_id: str,
    assignment_id: int,
    submitted_at: datetime,
    content_type: str | None,
) -> str:
    epoch_millis = int(submitted_at.timestamp() * 1000)
    return (
        f"recitations/{student_id}/{assignment_id}/"
        f"{epoch_millis}.{extension_for(content_type)}"
    )


def default_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.UPLOAD_MAX_ATTEMPTS,
        delay=settings.UPLOAD_RETRY_DELAY_SECONDS,
    )


def _unset_previous_latest(db: Session, assignment_id: int, student_id: str) -> int:
    return (
        db.query(Submission)
        .filter(
            Submission.assignment_id == assignment_id,
            Submission.student_id == student_id,
            Submission.is_latest.is_(True),
        )
        .update({Submission.is_latest: False}, synchronize_session=False)
    )


def upload_recitation(
    db: Session,
    *,
    assignment_id: int,
    student_id: str,
    audio: bytes,
    content_type: str,
    duration: float | None = None,
    submitted_at: datetime | None = None,
    storage=None,
    retry_policy: RetryPolicy | None = None,
) -> Submission:
    """
    Store the audio and record a new latest submission for the pair.

    - storage write is retried by the policy; exhaustion raises UploadFailed
    - previous rows lose is_latest and the new row is inserted as 'pending'
      in one transaction; if unsetting fails it is logged and the insert
      still goes ahead
    """
    assignment = db.query(Assignment).filter(Assignment.id == assignment_id).first()
    if assignment is None:
        raise SubmissionError(f"assignment {assignment_id} not found")

    if submitted_at is None:
        submitted_at = datetime.now(timezone.utc)
    storage = storage or get_storage()
    policy = retry_policy or default_retry_policy()

    key = build_storage_key(student_id, assignment_id, submitted_at, content_type)
    try:
        audio_url = policy.call(storage.put, key, audio, content_type)
    except RetryExhausted as e:
        logger.error(f"Upload of {key} failed after {e.attempts} attempt(s): {e.last_error}")
        raise UploadFailed(
            f"Upload failed after {e.attempts} attempt(s): {e.last_error}",
            last_error=e.last_error,
        ) from e.last_error

    logger.info(f"Stored recitation audio at {key}")

    try:
        unset = _unset_previous_latest(db, assignment_id, student_id)
        logger.info(
            f"Cleared latest flag on {unset} previous submission(s) for "
            f"assignment={assignment_id} student={student_id}"
        )
    except SQLAlchemyError as e:
        # stale latest flags are tolerated; readers use latest_submission()
        db.rollback()
        logger.warning(
            f"Could not clear previous latest flags for assignment={assignment_id} "
            f"student={student_id}: {e}"
        )

    submission = Submission(
        assignment_id=assignment_id,
        student_id=student_id,
        audio_url=audio_url,
        audio_key=key,
        audio_content_type=content_type,
        audio_duration=duration,
        submitted_at=submitted_at,
        is_latest=True,
        is_late_submission=is_late_submission(submitted_at, assignment.due_at),
        transcription_status=STATUS_PENDING,
    )
    db.add(submission)
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Stored {key} but could not save the submission row")
        raise
    db.refresh(submission)
    return submission


def submit_recitation(
    db: Session,
    **kwargs,
) -> tuple[Submission, bool]:
    """
    Upload + create the submission, then queue transcription when the
    worker queue is enabled. Returns (submission, queued).
    """
    submission = upload_recitation(db, **kwargs)

    if not settings.TRANSCRIPTION_QUEUE_ENABLED:
        return submission, False

    from redis.exceptions import RedisError

    from recitescore.workers.queue import enqueue_transcription_task

    try:
        enqueue_transcription_task(submission.id)
    except RedisError as e:
        # the client can still trigger transcription by id
        logger.error(f"Could not enqueue transcription for submission {submission.id}: {e}")
        return submission, False
    return submission, True
