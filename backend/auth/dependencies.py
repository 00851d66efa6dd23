import uuid
from dataclasses import dataclass
from datetime import datetime

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.core import config
from backend.core.errors import AuthenticationError
from backend.database import get_db
from backend.models.user import User

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, passed explicitly to route handlers."""

    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    role: str
    email_verified: bool
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            email_verified=user.email_verified,
            created_at=user.created_at,
        )


def extract_access_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    token = request.cookies.get(config.ACCESS_TOKEN_COOKIE)
    if token:
        return token
    if credentials is not None:
        return credentials.credentials
    return None


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> Identity:
    token = extract_access_token(request, credentials)
    if not token:
        raise AuthenticationError("Access token required")

    user_id = jwt_handler.decode_access_token(token)
    if user_id is None:
        raise AuthenticationError("Invalid token")

    # Re-read on every request so role changes apply immediately.
    user = db.get(User, user_id)
    if user is None:
        raise AuthenticationError("Invalid token")
    return Identity.from_user(user)
