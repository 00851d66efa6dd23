import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.auth.passwords import hash_password  # noqa: E402
from backend.database import Base, enable_sqlite_foreign_keys, get_db  # noqa: E402
from backend.main import app  # noqa: E402
from backend.models.user import User, UserRole  # noqa: E402

DEFAULT_PASSWORD = 'Abcd123!'


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make_user(email: str, role: str = UserRole.STUDENT.value, password: str = DEFAULT_PASSWORD) -> User:
        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name='Test',
            last_name='User',
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def login_client(client):
    """Return a new client whose cookie jar holds a fresh login session."""
    def _login_client(email: str, password: str = DEFAULT_PASSWORD) -> TestClient:
        session_client = TestClient(app)
        response = session_client.post('/auth/login', json={'email': email, 'password': password})
        assert response.status_code == 200, response.text
        return session_client

    return _login_client
