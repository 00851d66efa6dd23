"""Course model definitions."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from backend.database import Base, utc_now


class Course(Base):
    """Represents a course authored by a user."""
    __tablename__ = "courses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(String(1000))
    level_id = Column("level", Uuid, ForeignKey("levels.id", ondelete="SET NULL"))
    category_id = Column("category", Uuid, ForeignKey("categories.id", ondelete="SET NULL"))
    published = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime)
    author_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    instructor_id = Column("instructor", Uuid, ForeignKey("users.id", ondelete="SET NULL"))
    thumbnail = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    chapters = relationship(
        "Chapter",
        back_populates="course",
        cascade="all, delete-orphan",
        order_by="Chapter.position",
    )
