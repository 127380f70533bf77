"""Journey and Leg models.

Journey/leg CRUD lives outside this service; these tables are read for
ownership checks, auto-approval configuration and leg requirements.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String

from sailsmart.core.config import get_settings
from sailsmart.db.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Journey(Base):
    __tablename__ = "journeys"

    id = Column(String(36), primary_key=True, default=_uuid)
    owner_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    state = Column(String(32), nullable=False, default="In planning")  # In planning, Published, Archived
    skills = Column(JSON, nullable=False, default=list)

    auto_approval_enabled = Column(Boolean, nullable=False, default=False)
    auto_approval_threshold = Column(
        Integer, nullable=False, default=lambda: get_settings().default_auto_approval_threshold
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))


class Leg(Base):
    __tablename__ = "legs"

    id = Column(String(36), primary_key=True, default=_uuid)
    journey_id = Column(String(36), ForeignKey("journeys.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    min_experience_level = Column(Integer, nullable=True)
    risk_level = Column(String(32), nullable=True)  # Coastal, Offshore, Extreme
    skills = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
