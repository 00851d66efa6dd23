"""Chapter model definitions."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from backend.database import Base, utc_now


class Chapter(Base):
    """Represents one ordered chapter of a course."""
    __tablename__ = "chapters"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id = Column(Uuid, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    position = Column(Integer, nullable=False)
    published = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime)
    author_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    thumbnail = Column(Text)
    content = Column(Text, nullable=False)
    duration = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    course = relationship("Course", back_populates="chapters")
