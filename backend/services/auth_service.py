"""Registration, login and session rotation."""

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.auth import jwt_handler, token_store
from backend.auth.passwords import hash_password, needs_rehash, verify_password
from backend.core import config
from backend.core.errors import AuthenticationError, ConflictError, ValidationError
from backend.database import utc_now
from backend.models.user import User

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
INVALID_REFRESH_TOKEN = "Invalid refresh token"
FORGOT_PASSWORD_MESSAGE = "If the email exists, a password reset link has been sent"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class AuthSession:
    user: User
    tokens: TokenPair


def _issue_refresh_token(db: Session, user_id: uuid.UUID, token_id: uuid.UUID | None = None) -> str:
    raw_token = jwt_handler.generate_refresh_token()
    token_store.add_refresh_token(
        db,
        user_id=user_id,
        token_hash=jwt_handler.hash_refresh_token(raw_token),
        expires_at=utc_now() + timedelta(days=config.REFRESH_TOKEN_EXPIRES_DAYS),
        token_id=token_id,
    )
    return raw_token


def register(db: Session, email: str, password: str, first_name: str, last_name: str) -> User:
    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        raise ConflictError("User already exists")

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        email_verification_token=jwt_handler.generate_one_time_token(),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("User already exists") from exc
    db.refresh(user)

    # TODO: send the verification email once a mail provider is configured.
    logger.info("Registered user %s", user.id)
    return user


def login(db: Session, email: str, password: str) -> AuthSession:
    user = db.query(User).filter(User.email == email).first()
    # Same error for unknown email and wrong password.
    if user is None or not verify_password(user.password_hash, password):
        logger.info("Rejected login attempt")
        raise AuthenticationError(INVALID_CREDENTIALS)

    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
    refresh_token = _issue_refresh_token(db, user.id)
    user.last_login = utc_now()
    db.commit()
    db.refresh(user)

    logger.info("User %s logged in", user.id)
    return AuthSession(
        user=user,
        tokens=TokenPair(
            access_token=jwt_handler.create_access_token(user.id),
            refresh_token=refresh_token,
        ),
    )


def refresh(db: Session, raw_token: str | None) -> TokenPair:
    """Exchange an active refresh token for a new access/refresh pair.

    The presented row moves to the rotated state and its successor is
    inserted in the same transaction. A token that was already rotated,
    revoked or has expired never matches again.
    """
    if not raw_token:
        raise AuthenticationError("Refresh token required")

    now = utc_now()
    record = token_store.find_active_refresh_token(db, jwt_handler.hash_refresh_token(raw_token), now)
    if record is None:
        logger.info("Rejected refresh token")
        raise AuthenticationError(INVALID_REFRESH_TOKEN)

    token_id = record.id
    user_id = record.user_id
    successor_id = uuid.uuid4()
    try:
        if not token_store.rotate_refresh_token(db, token_id, successor_id, now):
            db.rollback()
            logger.info("Refresh token %s was rotated concurrently", token_id)
            raise AuthenticationError(INVALID_REFRESH_TOKEN)

        new_refresh_token = _issue_refresh_token(db, user_id, token_id=successor_id)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise AuthenticationError(INVALID_REFRESH_TOKEN) from exc

    logger.info("Rotated refresh token for user %s", user_id)
    return TokenPair(
        access_token=jwt_handler.create_access_token(user_id),
        refresh_token=new_refresh_token,
    )


def logout(db: Session, raw_token: str | None) -> None:
    if not raw_token:
        return

    revoked = token_store.revoke_refresh_token(db, jwt_handler.hash_refresh_token(raw_token), utc_now())
    db.commit()
    if revoked:
        logger.info("Revoked refresh token on logout")


def verify_email(db: Session, token: str) -> User:
    user_id = token_store.consume_verification_token(db, token)
    if user_id is None:
        db.rollback()
        raise ValidationError.for_field("token", "Invalid verification token")
    db.commit()

    logger.info("Verified email for user %s", user_id)
    return db.get(User, user_id)


def forgot_password(db: Session, email: str) -> str:
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        return FORGOT_PASSWORD_MESSAGE

    user.password_reset_token = jwt_handler.generate_one_time_token()
    user.password_reset_expires = utc_now() + timedelta(minutes=config.PASSWORD_RESET_EXPIRES_MINUTES)
    db.commit()

    # TODO: send the password reset email once a mail provider is configured.
    logger.info("Issued password reset token for user %s", user.id)
    return FORGOT_PASSWORD_MESSAGE


def reset_password(db: Session, token: str, new_password: str) -> None:
    now = utc_now()
    user_id = token_store.consume_reset_token(db, token, hash_password(new_password), now)
    if user_id is None:
        db.rollback()
        raise ValidationError.for_field("token", "Invalid or expired reset token")

    revoked = token_store.revoke_all_for_user(db, user_id, now)
    db.commit()

    logger.info("Reset password for user %s and revoked %d session(s)", user_id, revoked)
