"""Registration and RegistrationAnswer models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from sailsmart.db.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Registration(Base):
    __tablename__ = "registrations"
    __table_args__ = (UniqueConstraint("leg_id", "user_id", name="uq_registrations_leg_user"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    leg_id = Column(String(36), ForeignKey("legs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)

    status = Column(String(32), nullable=False, default="Pending approval")  # RegistrationStatus values
    notes = Column(Text, nullable=True)
    auto_approved = Column(Boolean, nullable=False, default=False)

    # Assessment cache; cleared whenever requirements or answers change
    ai_match_score = Column(Integer, nullable=True)  # 0-100
    ai_match_reasoning = Column(Text, nullable=True)
    passes_required = Column(Boolean, nullable=True)
    assessment_decision = Column(String(16), nullable=True)  # approve, deny, review
    assessment_fingerprint = Column(String(64), nullable=True)
    assessed_at = Column(DateTime(timezone=True), nullable=True)
    # Decision last announced to the owner or crew; not part of the assessment cache
    notified_decision = Column(String(16), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))


class RegistrationAnswer(Base):
    __tablename__ = "registration_answers"
    __table_args__ = (
        UniqueConstraint("registration_id", "requirement_id", name="uq_registration_answers_requirement"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    registration_id = Column(String(36), ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False, index=True)
    requirement_id = Column(
        String(36), ForeignKey("journey_requirements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    answer_text = Column(Text, nullable=True)
    answer_json = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
