# recitescore/api/v1/endpoints/speech_recognition.py
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from recitescore.db.session import get_db
from recitescore.schemas.speech_recognition import (
    TranscriptionTrigger,
    TranscriptionTriggered,
)
from recitescore.services.asr_client import AsrClient, get_asr_client
from recitescore.services.status_service import latest_feedback
from recitescore.services.storage import get_storage
from recitescore.services.transcription_service import (
    run_transcription_for_submission,
    SubmissionNotFound,
    TranscriptionError,
    TranscriptionNotPending,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["speech-recognition"])


@router.post("/speech-recognition", response_model=TranscriptionTriggered)
def trigger_transcription(
    body: TranscriptionTrigger,
    db: Session = Depends(get_db),
    asr_client: AsrClient = Depends(get_asr_client),
    storage=Depends(get_storage),
):
    """
    Transcribe and score one pending submission, identified by
    {"recitationId": <id>}. The outcome is also written to the submission,
    so clients may poll its status instead of waiting on this call.
    """
    if not asr_client.configured:
        raise HTTPException(status_code=503, detail="Speech recognition service is not configured")

    try:
        sub = run_transcription_for_submission(
            db, body.recitation_id, asr_client=asr_client, storage=storage
        )
    except SubmissionNotFound:
        raise HTTPException(status_code=404, detail="Submission not found")
    except TranscriptionNotPending as e:
        raise HTTPException(status_code=409, detail=str(e))
    except TranscriptionError as e:
        return JSONResponse(status_code=500, content={"error": str(e)})

    feedback = latest_feedback(db, sub.id)
    return TranscriptionTriggered(
        recitation_id=sub.id,
        transcription=sub.transcription,
        accuracy=feedback.accuracy if feedback else None,
        notes=feedback.notes if feedback else None,
    )
