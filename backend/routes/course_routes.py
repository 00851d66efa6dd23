import math
import uuid
from datetime import datetime
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import AliasChoices, Field, field_validator
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from backend.auth.dependencies import Identity
from backend.auth.rbac import require_admin
from backend.core.errors import NotFoundError, ValidationError
from backend.core.schemas import CamelModel
from backend.database import get_db, utc_now
from backend.models.category import Category
from backend.models.chapter import Chapter
from backend.models.course import Course
from backend.models.level import Level
from backend.models.user import User

router = APIRouter(tags=['courses'])

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def validate_thumbnail_url(value: str | None) -> str | None:
    if value is None:
        return None

    parsed = urlparse(value.strip())
    if parsed.scheme not in {'http', 'https'} or not parsed.netloc:
        raise ValueError('Thumbnail must be a valid URL.')

    return value.strip()


def reject_null(value):
    if value is None:
        raise ValueError('Field cannot be null.')
    return value


class CategoryCreateRequest(CamelModel):
    name: str = Field(min_length=2, max_length=100)
    description: str | None = Field(default=None, max_length=500)


class CategoryUpdateRequest(CamelModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    description: str | None = Field(default=None, max_length=500)

    check_name_not_null = field_validator('name')(reject_null)


class CategoryResponse(CamelModel):
    id: uuid.UUID
    name: str
    description: str | None = None


class LevelCreateRequest(CamelModel):
    name: str = Field(min_length=2, max_length=100)


class LevelUpdateRequest(CamelModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)

    check_name_not_null = field_validator('name')(reject_null)


class LevelResponse(CamelModel):
    id: uuid.UUID
    name: str


class CourseCreateRequest(CamelModel):
    title: str = Field(min_length=2, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    level_id: uuid.UUID | None = Field(default=None, validation_alias=AliasChoices('level', 'levelId'))
    category_id: uuid.UUID | None = Field(default=None, validation_alias=AliasChoices('category', 'categoryId'))
    published: bool = False
    author_id: uuid.UUID | None = None
    thumbnail: str | None = None
    instructor_id: uuid.UUID | None = Field(
        default=None,
        validation_alias=AliasChoices('instructor', 'instructorId'),
    )

    check_thumbnail_url = field_validator('thumbnail')(validate_thumbnail_url)


class CourseUpdateRequest(CamelModel):
    title: str | None = Field(default=None, min_length=2, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    level_id: uuid.UUID | None = Field(default=None, validation_alias=AliasChoices('level', 'levelId'))
    category_id: uuid.UUID | None = Field(default=None, validation_alias=AliasChoices('category', 'categoryId'))
    published: bool | None = None
    thumbnail: str | None = None
    instructor_id: uuid.UUID | None = Field(
        default=None,
        validation_alias=AliasChoices('instructor', 'instructorId'),
    )

    check_required_not_null = field_validator('title', 'published')(reject_null)
    check_thumbnail_url = field_validator('thumbnail')(validate_thumbnail_url)


class CourseResponse(CamelModel):
    id: uuid.UUID
    title: str
    description: str | None = None
    level_id: uuid.UUID | None = Field(default=None, serialization_alias='level')
    category_id: uuid.UUID | None = Field(default=None, serialization_alias='category')
    published: bool
    published_at: datetime | None = None
    author_id: uuid.UUID
    instructor_id: uuid.UUID | None = Field(default=None, serialization_alias='instructor')
    thumbnail: str | None = None
    created_at: datetime
    updated_at: datetime


class PaginationResponse(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class CoursePageResponse(CamelModel):
    data: list[CourseResponse]
    pagination: PaginationResponse


class ChapterCreateRequest(CamelModel):
    course_id: uuid.UUID
    title: str = Field(min_length=2, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    position: int = Field(ge=0)
    published: bool = False
    author_id: uuid.UUID | None = None
    thumbnail: str | None = None
    content: str = Field(min_length=1)
    duration: int = Field(ge=1)

    check_thumbnail_url = field_validator('thumbnail')(validate_thumbnail_url)


class ChapterUpdateRequest(CamelModel):
    title: str | None = Field(default=None, min_length=2, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    position: int | None = Field(default=None, ge=0)
    published: bool | None = None
    thumbnail: str | None = None
    content: str | None = Field(default=None, min_length=1)
    duration: int | None = Field(default=None, ge=1)

    check_required_not_null = field_validator('title', 'position', 'published', 'content', 'duration')(reject_null)
    check_thumbnail_url = field_validator('thumbnail')(validate_thumbnail_url)


class ChapterResponse(CamelModel):
    id: uuid.UUID
    course_id: uuid.UUID
    title: str
    description: str | None = None
    position: int
    published: bool
    published_at: datetime | None = None
    author_id: uuid.UUID
    thumbnail: str | None = None
    content: str
    duration: int
    created_at: datetime
    updated_at: datetime


def resolve_published_at(published: bool | None, current: datetime | None) -> datetime | None:
    if published is None:
        return current
    if not published:
        return None
    return current or utc_now()


def ensure_references_exist(db: Session, **references: tuple[type, uuid.UUID | None]) -> None:
    """Raise a field-level validation error for every id that has no row."""
    errors = []
    for field, (model, value) in references.items():
        if value is not None and db.get(model, value) is None:
            errors.append({'field': field, 'message': f'{model.__name__} not found.'})

    if errors:
        raise ValidationError(errors=errors)


def escape_like(value: str) -> str:
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def get_course_or_404(db: Session, course_id: uuid.UUID) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise NotFoundError('Course not found')
    return course


def get_category_or_404(db: Session, category_id: uuid.UUID) -> Category:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFoundError('Category not found')
    return category


def get_level_or_404(db: Session, level_id: uuid.UUID) -> Level:
    level = db.get(Level, level_id)
    if level is None:
        raise NotFoundError('Level not found')
    return level


def get_chapter_or_404(db: Session, chapter_id: uuid.UUID) -> Chapter:
    chapter = db.get(Chapter, chapter_id)
    if chapter is None:
        raise NotFoundError('Chapter not found')
    return chapter


# Lookup and chapter routes are registered before /{course_id}.

@router.get('/categories', response_model=list[CategoryResponse])
def list_categories(db: Session = Depends(get_db)):
    return db.query(Category).order_by(Category.name.asc()).all()


@router.post('/categories', response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(
    data: CategoryCreateRequest,
    db: Session = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    category = Category(**data.model_dump())
    db.add(category)
    db.commit()
    db.refresh(category)

    return category


@router.put('/categories/{category_id}', response_model=CategoryResponse)
def update_category(
    category_id: uuid.UUID,
    data: CategoryUpdateRequest,
    db: Session = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    category = get_category_or_404(db, category_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(category, field, value)
    db.commit()
    db.refresh(category)

    return category


@router.delete('/categories/{category_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: uuid.UUID,
    db: Session = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    category = get_category_or_404(db, category_id)
    db.delete(category)
    db.commit()

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get('/levels', response_model=list[LevelResponse])
def list_levels(db: Session = Depends(get_db)):
    return db.query(Level).order_by(Level.name.asc()).all()


@router.post('/levels', response_model=LevelResponse, status_code=status.HTTP_201_CREATED)
def create_level(
    data: LevelCreateRequest,
    db: Session = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    level = Level(**data.model_dump())
    db.add(level)
    db.commit()
    db.refresh(level)

    return level


@router.put('/levels/{level_id}', response_model=LevelResponse)
def update_level(
    level_id: uuid.UUID,
    data: LevelUpdateRequest,
    db: Session = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    level = get_level_or_404(db, level_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(level, field, value)
    db.commit()
    db.refresh(level)

    return level


@router.delete('/levels/{level_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_level(
    level_id: uuid.UUID,
    db: Session = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    level = get_level_or_404(db, level_id)
    db.delete(level)
    db.commit()

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post('/chapters', response_model=ChapterResponse, status_code=status.HTTP_201_CREATED)
def create_chapter(
    data: ChapterCreateRequest,
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    get_course_or_404(db, data.course_id)
    author_id = data.author_id or admin.id
    ensure_references_exist(db, authorId=(User, author_id))

    chapter = Chapter(
        **data.model_dump(exclude={'author_id'}),
        author_id=author_id,
        published_at=utc_now() if data.published else None,
    )
    db.add(chapter)
    db.commit()
    db.refresh(chapter)

    return chapter


@router.get('/chapters/{chapter_id}', response_model=ChapterResponse)
def get_chapter(chapter_id: uuid.UUID, db: Session = Depends(get_db)):
    return get_chapter_or_404(db, chapter_id)


@router.put('/chapters/{chapter_id}', response_model=ChapterResponse)
def update_chapter(
    chapter_id: uuid.UUID,
    data: ChapterUpdateRequest,
    db: Session = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    chapter = get_chapter_or_404(db, chapter_id)
    changes = data.model_dump(exclude_unset=True)

    for field, value in changes.items():
        setattr(chapter, field, value)
    chapter.published_at = resolve_published_at(changes.get('published'), chapter.published_at)
    db.commit()
    db.refresh(chapter)

    return chapter


@router.delete('/chapters/{chapter_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_chapter(
    chapter_id: uuid.UUID,
    db: Session = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    chapter = get_chapter_or_404(db, chapter_id)
    db.delete(chapter)
    db.commit()

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get('', response_model=CoursePageResponse)
def list_courses(
    query: str | None = Query(default=None, min_length=1, max_length=255),
    category: uuid.UUID | None = Query(default=None),
    level: uuid.UUID | None = Query(default=None),
    author_id: uuid.UUID | None = Query(default=None, alias='authorId'),
    published: bool | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    filters = []
    if query:
        pattern = f'%{escape_like(query)}%'
        filters.append(
            or_(
                Course.title.ilike(pattern, escape='\\'),
                Course.description.ilike(pattern, escape='\\'),
            )
        )
    if category is not None:
        filters.append(Course.category_id == category)
    if level is not None:
        filters.append(Course.level_id == level)
    if author_id is not None:
        filters.append(Course.author_id == author_id)
    if published is not None:
        filters.append(Course.published == published)

    total = db.query(func.count(Course.id)).filter(*filters).scalar() or 0
    courses = db.query(Course).filter(*filters).order_by(
        Course.created_at.desc(),
        Course.id.asc(),
    ).offset((page - 1) * limit).limit(limit).all()

    return CoursePageResponse(
        data=[CourseResponse.model_validate(course) for course in courses],
        pagination=PaginationResponse(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        ),
    )


@router.post('', response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
def create_course(
    data: CourseCreateRequest,
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    author_id = data.author_id or admin.id
    ensure_references_exist(
        db,
        level=(Level, data.level_id),
        category=(Category, data.category_id),
        authorId=(User, author_id),
        instructor=(User, data.instructor_id),
    )

    course = Course(
        **data.model_dump(exclude={'author_id'}),
        author_id=author_id,
        published_at=utc_now() if data.published else None,
    )
    db.add(course)
    db.commit()
    db.refresh(course)

    return course


@router.get('/{course_id}/chapters', response_model=list[ChapterResponse])
def list_course_chapters(course_id: uuid.UUID, db: Session = Depends(get_db)):
    return db.query(Chapter).filter(Chapter.course_id == course_id).order_by(Chapter.position.asc()).all()


@router.get('/{course_id}', response_model=CourseResponse)
def get_course(course_id: uuid.UUID, db: Session = Depends(get_db)):
    return get_course_or_404(db, course_id)


@router.put('/{course_id}', response_model=CourseResponse)
def update_course(
    course_id: uuid.UUID,
    data: CourseUpdateRequest,
    db: Session = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    course = get_course_or_404(db, course_id)
    changes = data.model_dump(exclude_unset=True)
    ensure_references_exist(
        db,
        level=(Level, changes.get('level_id')),
        category=(Category, changes.get('category_id')),
        instructor=(User, changes.get('instructor_id')),
    )

    for field, value in changes.items():
        setattr(course, field, value)
    course.published_at = resolve_published_at(changes.get('published'), course.published_at)
    db.commit()
    db.refresh(course)

    return course


@router.delete('/{course_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_course(
    course_id: uuid.UUID,
    db: Session = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    course = get_course_or_404(db, course_id)
    db.delete(course)
    db.commit()

    return Response(status_code=status.HTTP_204_NO_CONTENT)
