"""
Transcription Tasks for Worker
These tasks are executed by RQ workers to transcribe and score submissions asynchronously
"""

import logging

from redis.exceptions import RedisError

from recitescore.db.session import SessionLocal
from recitescore.services.status_service import fail_stale_pending
from recitescore.services.transcription_service import (
    run_transcription_for_submission,
    TranscriptionError,
    TranscriptionNotPending,
)
from recitescore.workers.queue import enqueue_stale_sweep, sweep_interval

logger = logging.getLogger(__name__)


def transcription_task(submission_id: int) -> dict:
    """
    Worker task to transcribe a submission and score it.

    This task:
    1. Creates a database session
    2. Calls transcription_service (ASR + scoring)
    3. Returns result summary

    Failures are already persisted on the submission row by the service,
    so they are reported in the result instead of failing the job.
    """
    db = SessionLocal()
    try:
        logger.info(f"Starting transcription task for submission {submission_id}")

        submission = run_transcription_for_submission(db=db, submission_id=submission_id)

        feedback = submission.feedback[-1] if submission.feedback else None
        result = {
            "status": "success",
            "submission_id": submission.id,
            "transcription_status": submission.transcription_status,
            "accuracy": feedback.accuracy if feedback else None,
            "notes": feedback.notes if feedback else None,
            "message": f"Successfully transcribed submission {submission_id}",
        }

        logger.info(
            f"Completed transcription task for submission {submission_id}: "
            f"accuracy={result['accuracy']}"
        )

        return result

    except TranscriptionNotPending as e:
        logger.warning(f"Skipping submission {submission_id}: {e}")
        return {
            "status": "skipped",
            "submission_id": submission_id,
            "message": str(e),
        }

    except TranscriptionError as e:
        logger.error(f"Transcription failed for submission {submission_id}: {e}")
        return {
            "status": "error",
            "submission_id": submission_id,
            "message": str(e),
        }

    finally:
        db.close()


def stale_pending_sweep_task(reschedule: bool = False) -> dict:
    """
    Fail submissions stuck in 'pending'. With ``reschedule`` the next sweep
    is queued one pending timeout from now.
    """
    db = SessionLocal()
    try:
        failed = fail_stale_pending(db)
    finally:
        db.close()

    if reschedule:
        try:
            enqueue_stale_sweep(delay=sweep_interval())
        except RedisError as e:
            logger.error(f"Could not schedule the next stale submission sweep: {e}")
    return {"status": "success", "failed": failed}
