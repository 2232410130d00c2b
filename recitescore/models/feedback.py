# recitescore/models/feedback.py
from sqlalchemy import Column, Float, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from recitescore.db.base import Base


class Feedback(Base):
    __tablename__ = "feedback"

    id = Column(Integer, primary_key=True, index=True)
    recitation_id = Column(Integer, ForeignKey("recitations.id"), nullable=False, index=True)

    accuracy = Column(Float, nullable=False)
    notes = Column(Text, nullable=False)
    expected_text = Column(Text, nullable=True)
    generated_at = Column(DateTime(timezone=True), nullable=False)

    # set when a teacher re-scores by hand
    overridden_by = Column(String(64), nullable=True)

    recitation = relationship("Submission", back_populates="feedback")
