# recitescore/schemas/feedback.py
from pydantic import BaseModel, Field
from datetime import datetime


class FeedbackOverride(BaseModel):
    """Teacher re-score"""
    accuracy: float = Field(ge=0.0, le=1.0)
    notes: str | None = None
    teacher_id: str | None = None


class FeedbackPublic(BaseModel):
    id: int
    recitation_id: int
    accuracy: float
    notes: str
    expected_text: str | None = None
    generated_at: datetime
    overridden_by: str | None = None

    model_config = {"from_attributes": True}
