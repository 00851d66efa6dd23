"""Level model definitions."""

import uuid

from sqlalchemy import Column, String, Uuid
from backend.database import Base


class Level(Base):
    """Represents a course difficulty level."""
    __tablename__ = "levels"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
