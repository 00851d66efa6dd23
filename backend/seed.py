"""Insert the default course levels and categories.

Usage:
    python -m backend.seed
"""
import logging

from sqlalchemy.orm import Session

from backend.core import config
from backend.core.logging import setup_logging
from backend.database import Base, SessionLocal, engine
from backend.models import chapter, course, refresh_token, user  # noqa: F401
from backend.models.category import Category
from backend.models.level import Level

logger = logging.getLogger(__name__)

SEED_LEVELS = ["Beginner", "Intermediate", "Advanced"]

SEED_CATEGORIES = [
    ("Machine Learning", "Courses focused on machine learning algorithms and applications"),
    ("Deep Learning", "Advanced neural network architectures and deep learning techniques"),
    ("Natural Language Processing", "Text processing, language understanding, and chatbot development"),
    ("Computer Vision", "Image processing, object detection, and visual recognition systems"),
    ("AI Ethics", "Responsible AI development and ethical considerations"),
    ("Reinforcement Learning", "Decision-making algorithms and intelligent agent development"),
]


def seed_lookup_tables(db: Session) -> tuple[int, int]:
    """Insert missing levels and categories; returns how many of each were added."""
    existing_levels = {name for (name,) in db.query(Level.name).all()}
    new_levels = [Level(name=name) for name in SEED_LEVELS if name not in existing_levels]

    existing_categories = {name for (name,) in db.query(Category.name).all()}
    new_categories = [
        Category(name=name, description=description)
        for name, description in SEED_CATEGORIES
        if name not in existing_categories
    ]

    db.add_all(new_levels + new_categories)
    db.commit()
    return len(new_levels), len(new_categories)


def main() -> None:
    setup_logging(config.LOG_LEVEL)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        levels_added, categories_added = seed_lookup_tables(db)
    finally:
        db.close()
    logger.info("Seeded %d levels and %d categories", levels_added, categories_added)


if __name__ == "__main__":
    main()
