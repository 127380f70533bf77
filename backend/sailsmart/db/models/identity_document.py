"""IdentityDocument model: verification outcome of a crew member's passport.

Upload and storage mechanics live in the document vault service; only the
verification result is read here.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, String

from sailsmart.db.base import Base


class IdentityDocument(Base):
    __tablename__ = "identity_documents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(64), nullable=False, index=True)
    document_type = Column(String(32), nullable=False, default="passport")
    is_verified = Column(Boolean, nullable=False, default=False)
    photo_verification_passed = Column(Boolean, nullable=True)
    photo_confidence_score = Column(Float, nullable=True)  # 0.0-1.0

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
