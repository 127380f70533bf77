"""Archived onboarding conversations (kept when a user refuses AI processing)."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String

from sailsmart.db.base import Base


class AIConversation(Base):
    __tablename__ = "ai_conversations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    messages = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
