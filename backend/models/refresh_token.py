"""Refresh token session rows."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from backend.database import Base, utc_now


class RefreshToken(Base):
    """One step of a login session; rotated rows point at their successor."""
    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # SHA-256 of the opaque token; the raw value is never stored
    token_hash = Column(String(255), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    revoked_at = Column(DateTime)
    replaced_by_token_id = Column(Uuid)

    user = relationship("User", back_populates="refresh_tokens")
