"""Persistence helpers for refresh token rows and one-time user tokens.

Nothing here commits; callers own the transaction.
"""

import uuid
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from backend.models.refresh_token import RefreshToken
from backend.models.user import User


def add_refresh_token(
    db: Session,
    user_id: uuid.UUID,
    token_hash: str,
    expires_at: datetime,
    token_id: uuid.UUID | None = None,
) -> RefreshToken:
    record = RefreshToken(
        id=token_id or uuid.uuid4(),
        user_id=user_id,
        token_hash=token_hash,
        expires_at=expires_at,
    )
    db.add(record)
    return record


def find_active_refresh_token(db: Session, token_hash: str, now: datetime) -> RefreshToken | None:
    return db.query(RefreshToken).filter(
        RefreshToken.token_hash == token_hash,
        RefreshToken.expires_at > now,
        RefreshToken.revoked_at.is_(None),
    ).first()


def rotate_refresh_token(db: Session, token_id: uuid.UUID, successor_id: uuid.UUID, now: datetime) -> bool:
    """Mark an active row as replaced by ``successor_id``.

    The update only matches a row that is still unrevoked and unexpired, so
    when two requests race on the same token exactly one of them sees a
    matched row. Returns whether this call performed the rotation.
    """
    result = db.execute(
        update(RefreshToken)
        .where(
            RefreshToken.id == token_id,
            RefreshToken.revoked_at.is_(None),
            RefreshToken.expires_at > now,
        )
        .values(revoked_at=now, replaced_by_token_id=successor_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def revoke_refresh_token(db: Session, token_hash: str, now: datetime) -> int:
    result = db.execute(
        update(RefreshToken)
        .where(
            RefreshToken.token_hash == token_hash,
            RefreshToken.revoked_at.is_(None),
        )
        .values(revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def revoke_all_for_user(db: Session, user_id: uuid.UUID, now: datetime) -> int:
    result = db.execute(
        update(RefreshToken)
        .where(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked_at.is_(None),
        )
        .values(revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def consume_verification_token(db: Session, token: str) -> uuid.UUID | None:
    """Mark the owner of ``token`` as verified and clear the token.

    Returns the user id, or None when the token matches no user or another
    request consumed it first.
    """
    row = db.query(User.id).filter(User.email_verification_token == token).first()
    if row is None:
        return None

    result = db.execute(
        update(User)
        .where(User.id == row.id, User.email_verification_token == token)
        .values(email_verified=True, email_verification_token=None)
        .execution_options(synchronize_session=False)
    )
    return row.id if result.rowcount == 1 else None


def consume_reset_token(db: Session, token: str, password_hash: str, now: datetime) -> uuid.UUID | None:
    """Store ``password_hash`` for the owner of an unexpired reset token and clear the token."""
    row = db.query(User.id).filter(
        User.password_reset_token == token,
        User.password_reset_expires > now,
    ).first()
    if row is None:
        return None

    result = db.execute(
        update(User)
        .where(
            User.id == row.id,
            User.password_reset_token == token,
            User.password_reset_expires > now,
        )
        .values(password_hash=password_hash, password_reset_token=None, password_reset_expires=None)
        .execution_options(synchronize_session=False)
    )
    return row.id if result.rowcount == 1 else None
