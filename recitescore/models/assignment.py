# recitescore/models/assignment.py
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from recitescore.db.base import Base

class Assignment(Base):
    """
    Written by the assignment collaborator; this service only reads the
    reference text and the due date.
    """
    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, index=True)

    title = Column(String(255), nullable=True)
    target_text = Column(Text, nullable=True)

    surah_name = Column(String(100), nullable=True)
    start_ayah = Column(Integer, nullable=True)
    end_ayah = Column(Integer, nullable=True)

    # naive values are read in settings.REFERENCE_TIMEZONE
    due_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
