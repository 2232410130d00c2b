# recitescore/schemas/speech_recognition.py
from pydantic import BaseModel, Field


class TranscriptionTrigger(BaseModel):
    recitation_id: int = Field(alias="recitationId")

    model_config = {"populate_by_name": True}


class TranscriptionTriggered(BaseModel):
    success: bool = True
    recitation_id: int
    transcription: str
    accuracy: float | None = None
    notes: str | None = None
