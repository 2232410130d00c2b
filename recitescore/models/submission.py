# recitescore/models/submission.py
from sqlalchemy import (
    Boolean,
    Column,
    Float,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from recitescore.db.base import Base

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_ERROR = "error"

TRANSCRIPTION_STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_ERROR)


class Submission(Base):
    __tablename__ = "recitations"

    id = Column(Integer, primary_key=True, index=True)

    assignment_id = Column(Integer, ForeignKey("assignments.id"), nullable=False, index=True)
    student_id = Column(String(64), nullable=False, index=True)

    # stored artifact
    audio_url = Column(Text, nullable=False)
    audio_key = Column(String(512), nullable=False)
    audio_content_type = Column(String(100), nullable=False)
    audio_duration = Column(Float, nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=False)
    is_latest = Column(Boolean, nullable=False, default=True)
    is_late_submission = Column(Boolean, nullable=False, default=False)

    # status: pending / completed / error
    transcription_status = Column(String(20), nullable=False, default=STATUS_PENDING, index=True)
    transcription = Column(Text, nullable=True)
    transcription_error = Column(Text, nullable=True)
    # checkpoint text while the orchestrator runs, never a final state
    transcription_progress = Column(String(255), nullable=True)
    transcribed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    assignment = relationship("Assignment")
    feedback = relationship(
        "Feedback",
        back_populates="recitation",
        order_by="Feedback.generated_at",
    )

    __table_args__ = (
        Index("ix_recitations_assignment_student", "assignment_id", "student_id"),
    )
