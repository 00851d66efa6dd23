import re
import uuid
from datetime import datetime

from fastapi import APIRouter, Cookie, Depends, Response, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from backend.auth.dependencies import Identity, get_current_user
from backend.core import config
from backend.core.schemas import CamelModel, normalize_email
from backend.database import get_db
from backend.services import auth_service
from backend.services.auth_service import TokenPair

router = APIRouter(tags=["auth"])

NAME_PATTERN = re.compile(r"^[A-Za-z\s]+$")
PASSWORD_SPECIAL_CHARACTERS = "@$!%*?&"
MIN_PASSWORD_LENGTH = 8
MAX_NAME_LENGTH = 100


def validate_password_policy(value: str) -> str:
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if (
        not re.search(r"[a-z]", value)
        or not re.search(r"[A-Z]", value)
        or not re.search(r"\d", value)
        or not any(character in PASSWORD_SPECIAL_CHARACTERS for character in value)
    ):
        raise ValueError("Password must contain uppercase, lowercase, number and special character.")
    return value


class RegisterRequest(CamelModel):
    email: str
    password: str
    first_name: str
    last_name: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return validate_password_policy(value)

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized or len(normalized) > MAX_NAME_LENGTH:
            raise ValueError(f"Must be between 1 and {MAX_NAME_LENGTH} characters.")
        if not NAME_PATTERN.match(normalized):
            raise ValueError("Only letters and spaces allowed.")
        return normalized


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        if not value:
            raise ValueError("Password is required.")
        return value


class VerifyEmailRequest(BaseModel):
    token: str

    @field_validator("token")
    @classmethod
    def validate_token(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Verification token is required.")
        return value.strip()


class ForgotPasswordRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)


class ResetPasswordRequest(BaseModel):
    token: str
    password: str

    @field_validator("token")
    @classmethod
    def validate_token(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Reset token is required.")
        return value.strip()

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return validate_password_policy(value)


class UserSummary(CamelModel):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    role: str
    email_verified: bool


class CurrentUserSummary(UserSummary):
    created_at: datetime


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class UserMessageResponse(MessageResponse):
    user: UserSummary


class CurrentUserResponse(CamelModel):
    success: bool = True
    user: CurrentUserSummary


def _cookie_options() -> dict:
    return {"httponly": True, "secure": config.COOKIE_SECURE, "samesite": "strict"}


def set_auth_cookies(response: Response, tokens: TokenPair) -> None:
    response.set_cookie(
        config.ACCESS_TOKEN_COOKIE,
        tokens.access_token,
        max_age=config.ACCESS_TOKEN_EXPIRES_MINUTES * 60,
        path=config.ACCESS_TOKEN_COOKIE_PATH,
        **_cookie_options(),
    )
    response.set_cookie(
        config.REFRESH_TOKEN_COOKIE,
        tokens.refresh_token,
        max_age=config.REFRESH_TOKEN_EXPIRES_DAYS * 24 * 60 * 60,
        path=config.REFRESH_TOKEN_COOKIE_PATH,
        **_cookie_options(),
    )


def clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(config.ACCESS_TOKEN_COOKIE, path=config.ACCESS_TOKEN_COOKIE_PATH, **_cookie_options())
    response.delete_cookie(config.REFRESH_TOKEN_COOKIE, path=config.REFRESH_TOKEN_COOKIE_PATH, **_cookie_options())


@router.post("/register", response_model=UserMessageResponse, status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    user = auth_service.register(db, data.email, data.password, data.first_name, data.last_name)
    return UserMessageResponse(
        message="Registration successful. Please check your email to verify your account.",
        user=UserSummary.model_validate(user),
    )


@router.post("/login", response_model=UserMessageResponse)
def login(data: LoginRequest, response: Response, db: Session = Depends(get_db)):
    session = auth_service.login(db, data.email, data.password)
    set_auth_cookies(response, session.tokens)
    return UserMessageResponse(message="Login successful", user=UserSummary.model_validate(session.user))


@router.post("/refresh", response_model=MessageResponse)
def refresh(
    response: Response,
    refresh_token: str | None = Cookie(default=None, alias=config.REFRESH_TOKEN_COOKIE),
    db: Session = Depends(get_db),
):
    tokens = auth_service.refresh(db, refresh_token)
    set_auth_cookies(response, tokens)
    return MessageResponse(message="Token refreshed successfully")


@router.post("/logout", response_model=MessageResponse)
def logout(
    response: Response,
    refresh_token: str | None = Cookie(default=None, alias=config.REFRESH_TOKEN_COOKIE),
    db: Session = Depends(get_db),
):
    auth_service.logout(db, refresh_token)
    clear_auth_cookies(response)
    return MessageResponse(message="Logout successful")


@router.get("/me", response_model=CurrentUserResponse)
def me(current_user: Identity = Depends(get_current_user)):
    return CurrentUserResponse(user=CurrentUserSummary.model_validate(current_user))


@router.post("/verify-email", response_model=MessageResponse)
def verify_email(data: VerifyEmailRequest, db: Session = Depends(get_db)):
    auth_service.verify_email(db, data.token)
    return MessageResponse(message="Email verified successfully")


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(data: ForgotPasswordRequest, db: Session = Depends(get_db)):
    return MessageResponse(message=auth_service.forgot_password(db, data.email))


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(data: ResetPasswordRequest, db: Session = Depends(get_db)):
    auth_service.reset_password(db, data.token, data.password)
    return MessageResponse(message="Password reset successfully")
