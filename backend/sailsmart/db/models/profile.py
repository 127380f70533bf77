"""Profile model: identity store consumed by matching, linking and redirects."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String

from sailsmart.db.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    # Supabase auth user id
    id = Column(String(64), primary_key=True)
    full_name = Column(String(255), nullable=True)
    username = Column(String(255), nullable=True)
    email = Column(String(320), nullable=True)
    roles = Column(JSON, nullable=False, default=list)  # ["owner", "crew"]

    experience_level = Column(Integer, nullable=True)  # 1=Beginner .. 4=Offshore Skipper
    risk_levels = Column(JSON, nullable=False, default=list)  # subset of Coastal/Offshore/Extreme
    skills = Column(JSON, nullable=False, default=list)  # [{skill_name, description}]

    ai_processing_consent = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
