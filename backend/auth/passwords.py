import logging

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

logger = logging.getLogger(__name__)

password_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    """Return a salted Argon2id hash for a non-empty password."""
    if not password:
        raise ValueError("Password must not be empty")
    return password_hasher.hash(password)


def verify_password(stored_hash: str | None, password: str | None) -> bool:
    if not stored_hash or not password:
        return False

    try:
        password_hasher.verify(stored_hash, password)
    except InvalidHashError:
        logger.warning("Stored password hash could not be parsed")
        return False
    except VerificationError:
        return False
    return True


def needs_rehash(stored_hash: str) -> bool:
    """True when the hash was produced with weaker parameters than the current hasher."""
    try:
        return password_hasher.check_needs_rehash(stored_hash)
    except InvalidHashError:
        return False
