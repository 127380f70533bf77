"""Owner and prospect onboarding sessions, addressed by an opaque cookie value."""

from datetime import datetime, timedelta, timezone

from sqlalchemy import JSON, Column, DateTime, String

from sailsmart.db.base import Base

DEFAULT_SESSION_TTL = timedelta(days=7)


def _default_expiry() -> datetime:
    return datetime.now(timezone.utc) + DEFAULT_SESSION_TTL


class OnboardingSessionMixin:
    # Cookie value; immutable once created
    session_id = Column(String(64), primary_key=True)
    # Null until linked; set at most once
    user_id = Column(String(64), nullable=True, index=True)
    email = Column(String(320), nullable=True, index=True)

    onboarding_state = Column(String(32), nullable=False, default="signup_pending")
    conversation = Column(JSON, nullable=False, default=list)  # [{role, content, ...}]
    gathered_preferences = Column(JSON, nullable=False, default=dict)
    profile_completion_triggered_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    last_active_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    expires_at = Column(DateTime(timezone=True), nullable=False, default=_default_expiry)


class OwnerSession(OnboardingSessionMixin, Base):
    __tablename__ = "owner_sessions"


class ProspectSession(OnboardingSessionMixin, Base):
    __tablename__ = "prospect_sessions"

    viewed_legs = Column(JSON, nullable=False, default=list)  # leg ids, in viewing order
