"""JourneyRequirement model: owner-defined criteria a crew applicant must meet."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from sailsmart.db.base import Base


class JourneyRequirement(Base):
    __tablename__ = "journey_requirements"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    journey_id = Column(String(36), ForeignKey("journeys.id", ondelete="CASCADE"), nullable=False, index=True)
    requirement_type = Column(String(32), nullable=False)  # question, skill, passport, risk_level, experience_level

    # question
    question_text = Column(Text, nullable=True)
    # skill
    skill_name = Column(String(255), nullable=True)
    # question + skill
    qualification_criteria = Column(Text, nullable=True)
    weight = Column(Integer, nullable=False, default=5)  # 0-10, only meaningful for question/skill

    # passport
    require_photo_validation = Column(Boolean, nullable=False, default=False)
    pass_confidence_score = Column(Integer, nullable=False, default=7)  # 0-10

    is_required = Column(Boolean, nullable=False, default=True)
    order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
