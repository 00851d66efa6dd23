"""Category model definitions."""

import uuid

from sqlalchemy import Column, String, Text, Uuid
from backend.database import Base


class Category(Base):
    """Represents a course category lookup row."""
    __tablename__ = "categories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    description = Column(Text)
