import uuid
from datetime import timedelta

from backend.auth import token_store
from backend.database import utc_now
from backend.models.refresh_token import RefreshToken
from backend.models.user import User


def _add_token(db, user_id, token_hash: str, expires_in: timedelta = timedelta(days=7)) -> RefreshToken:
    record = token_store.add_refresh_token(db, user_id, token_hash, utc_now() + expires_in)
    db.commit()
    return record


def test_find_active_refresh_token_matches_unrevoked_unexpired_row(db, make_user) -> None:
    user = make_user('store@example.com')
    record = _add_token(db, user.id, 'hash-active')

    found = token_store.find_active_refresh_token(db, 'hash-active', utc_now())

    assert found is not None
    assert found.id == record.id


def test_find_active_refresh_token_ignores_expired_row(db, make_user) -> None:
    user = make_user('store@example.com')
    _add_token(db, user.id, 'hash-expired', expires_in=timedelta(seconds=-1))

    assert token_store.find_active_refresh_token(db, 'hash-expired', utc_now()) is None


def test_rotate_refresh_token_links_successor_and_succeeds_once(db, make_user) -> None:
    user = make_user('store@example.com')
    record = _add_token(db, user.id, 'hash-rotate')
    successor_id = uuid.uuid4()
    now = utc_now()

    assert token_store.rotate_refresh_token(db, record.id, successor_id, now) is True
    assert token_store.rotate_refresh_token(db, record.id, uuid.uuid4(), now) is False
    db.commit()

    rotated = db.get(RefreshToken, record.id)
    assert rotated.revoked_at is not None
    assert rotated.replaced_by_token_id == successor_id
    assert token_store.find_active_refresh_token(db, 'hash-rotate', utc_now()) is None


def test_revoke_refresh_token_leaves_no_successor(db, make_user) -> None:
    user = make_user('store@example.com')
    record = _add_token(db, user.id, 'hash-logout')

    assert token_store.revoke_refresh_token(db, 'hash-logout', utc_now()) == 1
    assert token_store.revoke_refresh_token(db, 'hash-logout', utc_now()) == 0
    db.commit()

    revoked = db.get(RefreshToken, record.id)
    assert revoked.revoked_at is not None
    assert revoked.replaced_by_token_id is None


def test_revoke_all_for_user_only_touches_that_user(db, make_user) -> None:
    owner = make_user('owner@example.com')
    other = make_user('other@example.com')
    _add_token(db, owner.id, 'owner-1')
    _add_token(db, owner.id, 'owner-2')
    _add_token(db, other.id, 'other-1')

    assert token_store.revoke_all_for_user(db, owner.id, utc_now()) == 2
    db.commit()

    assert token_store.find_active_refresh_token(db, 'owner-1', utc_now()) is None
    assert token_store.find_active_refresh_token(db, 'owner-2', utc_now()) is None
    assert token_store.find_active_refresh_token(db, 'other-1', utc_now()) is not None


def test_consume_verification_token_succeeds_once(db, make_user) -> None:
    user = make_user('verify@example.com')
    user.email_verification_token = 'verify-me'
    db.commit()

    assert token_store.consume_verification_token(db, 'verify-me') == user.id
    assert token_store.consume_verification_token(db, 'verify-me') is None
    db.commit()

    db.refresh(user)
    assert user.email_verified is True
    assert user.email_verification_token is None


def test_consume_reset_token_lets_only_one_session_win(db, session_factory, make_user) -> None:
    user = make_user('reset@example.com')
    user.password_reset_token = 'reset-me'
    user.password_reset_expires = utc_now() + timedelta(hours=1)
    db.commit()
    first_session = session_factory()
    second_session = session_factory()

    try:
        # Both sessions saw the token before either consumed it.
        assert first_session.query(User).filter(User.password_reset_token == 'reset-me').count() == 1
        assert second_session.query(User).filter(User.password_reset_token == 'reset-me').count() == 1

        assert token_store.consume_reset_token(first_session, 'reset-me', 'first-hash', utc_now()) == user.id
        first_session.commit()
        assert token_store.consume_reset_token(second_session, 'reset-me', 'second-hash', utc_now()) is None
        second_session.rollback()
    finally:
        first_session.close()
        second_session.close()

    db.refresh(user)
    assert user.password_hash == 'first-hash'
    assert user.password_reset_token is None
    assert user.password_reset_expires is None


def test_consume_reset_token_ignores_expired_token(db, make_user) -> None:
    user = make_user('expired@example.com')
    user.password_reset_token = 'too-late'
    user.password_reset_expires = utc_now() - timedelta(seconds=1)
    db.commit()

    assert token_store.consume_reset_token(db, 'too-late', 'new-hash', utc_now()) is None
