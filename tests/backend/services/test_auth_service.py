from datetime import timedelta

import pytest
from argon2 import PasswordHasher

from backend.auth import jwt_handler
from backend.auth.passwords import needs_rehash, verify_password
from backend.core.errors import AuthenticationError, ConflictError, ValidationError
from backend.database import utc_now
from backend.models.refresh_token import RefreshToken
from backend.models.user import User
from backend.services import auth_service

PASSWORD = 'Abcd123!'


def _register(db, email: str = 'a@x.com') -> User:
    return auth_service.register(db, email, PASSWORD, 'A', 'B')


def _token_row(db, raw_token: str) -> RefreshToken:
    return db.query(RefreshToken).filter(
        RefreshToken.token_hash == jwt_handler.hash_refresh_token(raw_token)
    ).one()


def test_register_creates_unverified_student_with_verification_token(db) -> None:
    user = _register(db)

    assert user.role == 'student'
    assert user.email_verified is False
    assert user.email_verification_token
    assert user.password_hash != PASSWORD
    assert verify_password(user.password_hash, PASSWORD)
    assert db.query(RefreshToken).count() == 0


def test_register_duplicate_email_is_conflict(db) -> None:
    _register(db)

    with pytest.raises(ConflictError) as exception_info:
        _register(db)

    assert exception_info.value.status_code == 409


def test_login_issues_token_pair_and_records_last_login(db) -> None:
    _register(db)

    session = auth_service.login(db, 'a@x.com', PASSWORD)

    assert jwt_handler.decode_access_token(session.tokens.access_token) == session.user.id
    assert session.user.last_login is not None
    row = _token_row(db, session.tokens.refresh_token)
    assert row.user_id == session.user.id
    assert row.revoked_at is None
    assert row.expires_at > utc_now() + timedelta(days=6)


@pytest.mark.parametrize(('email', 'password'), [('a@x.com', 'Wrong123!'), ('nobody@x.com', PASSWORD)])
def test_login_failures_share_one_generic_error(db, email: str, password: str) -> None:
    _register(db)

    with pytest.raises(AuthenticationError) as exception_info:
        auth_service.login(db, email, password)

    assert exception_info.value.message == 'Invalid credentials'


def test_refresh_rotates_token_and_old_token_cannot_be_reused(db) -> None:
    _register(db)
    first = auth_service.login(db, 'a@x.com', PASSWORD).tokens

    second = auth_service.refresh(db, first.refresh_token)

    assert second.refresh_token != first.refresh_token
    old_row = _token_row(db, first.refresh_token)
    new_row = _token_row(db, second.refresh_token)
    assert old_row.revoked_at is not None
    assert old_row.replaced_by_token_id == new_row.id
    assert new_row.revoked_at is None

    with pytest.raises(AuthenticationError):
        auth_service.refresh(db, first.refresh_token)

    third = auth_service.refresh(db, second.refresh_token)
    assert third.refresh_token not in {first.refresh_token, second.refresh_token}


def test_refresh_loses_when_row_was_rotated_concurrently(db, monkeypatch: pytest.MonkeyPatch) -> None:
    _register(db)
    tokens = auth_service.login(db, 'a@x.com', PASSWORD).tokens
    monkeypatch.setattr('backend.services.auth_service.token_store.rotate_refresh_token', lambda *args: False)

    with pytest.raises(AuthenticationError):
        auth_service.refresh(db, tokens.refresh_token)

    assert db.query(RefreshToken).count() == 1


@pytest.mark.parametrize('token', [None, '', 'never-issued'])
def test_refresh_rejects_missing_or_unknown_token(db, token) -> None:
    with pytest.raises(AuthenticationError):
        auth_service.refresh(db, token)


def test_refresh_rejects_expired_token(db) -> None:
    _register(db)
    tokens = auth_service.login(db, 'a@x.com', PASSWORD).tokens
    row = _token_row(db, tokens.refresh_token)
    row.expires_at = utc_now() - timedelta(seconds=1)
    db.commit()

    with pytest.raises(AuthenticationError):
        auth_service.refresh(db, tokens.refresh_token)


def test_logout_revokes_token_without_successor(db) -> None:
    _register(db)
    tokens = auth_service.login(db, 'a@x.com', PASSWORD).tokens

    auth_service.logout(db, tokens.refresh_token)

    row = _token_row(db, tokens.refresh_token)
    assert row.revoked_at is not None
    assert row.replaced_by_token_id is None
    with pytest.raises(AuthenticationError):
        auth_service.refresh(db, tokens.refresh_token)


def test_logout_without_token_is_a_no_op(db) -> None:
    auth_service.logout(db, None)
    auth_service.logout(db, 'unknown')


def test_verify_email_succeeds_exactly_once(db) -> None:
    user = _register(db)
    token = user.email_verification_token

    verified = auth_service.verify_email(db, token)

    assert verified.email_verified is True
    assert verified.email_verification_token is None
    with pytest.raises(ValidationError) as exception_info:
        auth_service.verify_email(db, token)
    assert exception_info.value.errors == [{'field': 'token', 'message': 'Invalid verification token'}]


def test_forgot_password_message_does_not_reveal_accounts(db) -> None:
    user = _register(db)

    known = auth_service.forgot_password(db, 'a@x.com')
    unknown = auth_service.forgot_password(db, 'ghost@x.com')

    assert known == unknown
    db.refresh(user)
    assert user.password_reset_token
    assert user.password_reset_expires > utc_now() + timedelta(minutes=59)


def test_forgot_password_overwrites_previous_reset_token(db) -> None:
    user = _register(db)

    auth_service.forgot_password(db, 'a@x.com')
    db.refresh(user)
    first_token = user.password_reset_token
    auth_service.forgot_password(db, 'a@x.com')
    db.refresh(user)

    assert user.password_reset_token != first_token
    with pytest.raises(ValidationError):
        auth_service.reset_password(db, first_token, 'Newpass1!')


def test_reset_password_revokes_every_session(db) -> None:
    user = _register(db)
    first = auth_service.login(db, 'a@x.com', PASSWORD).tokens
    second = auth_service.login(db, 'a@x.com', PASSWORD).tokens
    rotated = auth_service.refresh(db, second.refresh_token)
    auth_service.forgot_password(db, 'a@x.com')
    db.refresh(user)
    reset_token = user.password_reset_token

    auth_service.reset_password(db, reset_token, 'Newpass1!')

    for raw_token in (first.refresh_token, second.refresh_token, rotated.refresh_token):
        with pytest.raises(AuthenticationError):
            auth_service.refresh(db, raw_token)
    db.refresh(user)
    assert user.password_reset_token is None
    assert user.password_reset_expires is None
    with pytest.raises(AuthenticationError):
        auth_service.login(db, 'a@x.com', PASSWORD)
    assert auth_service.login(db, 'a@x.com', 'Newpass1!').user.id == user.id


def test_reset_password_rejects_expired_token(db) -> None:
    user = _register(db)
    auth_service.forgot_password(db, 'a@x.com')
    db.refresh(user)
    user.password_reset_expires = utc_now() - timedelta(seconds=1)
    db.commit()

    with pytest.raises(ValidationError) as exception_info:
        auth_service.reset_password(db, user.password_reset_token, 'Newpass1!')

    assert exception_info.value.message == 'Invalid or expired reset token'


def test_login_upgrades_outdated_password_hash(db, make_user) -> None:
    user = make_user('legacy@x.com')
    user.password_hash = PasswordHasher(time_cost=1, memory_cost=8, parallelism=1).hash(PASSWORD)
    db.commit()

    auth_service.login(db, 'legacy@x.com', PASSWORD)

    db.refresh(user)
    assert not needs_rehash(user.password_hash)
    assert verify_password(user.password_hash, PASSWORD)
