from datetime import datetime
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, File, UploadFile, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from pydantic import BaseModel, EmailStr, Field, field_validator
from zenyukti.core.database import get_db
from zenyukti.core.mail import mailer
from zenyukti.core.urls import resolve_avatar_url
from zenyukti.models.user import User
from zenyukti.api.dependencies import get_current_user, get_public_origin
from zenyukti.services.auth_service import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])

FORGOT_PASSWORD_MESSAGE = "If an account exists for that email, a password reset link has been sent"


def clean_name(value: str) -> str:
    value = value.strip()
    if not 2 <= len(value) <= 50:
        raise ValueError("Name must be between 2 and 50 characters")
    return value


class PasswordField(BaseModel):
    password: str = Field(min_length=6)

    @field_validator("password")
    @classmethod
    def check_password_bytes(cls, value: str) -> str:
        # bcrypt only looks at the first 72 bytes
        if len(value.encode("utf-8")) > 72:
            raise ValueError("Password must be at most 72 bytes")
        return value


class RegisterRequest(PasswordField):
    name: str
    email: EmailStr

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return clean_name(value)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class ProfileUpdateRequest(BaseModel):
    name: str
    email: EmailStr

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return clean_name(value)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(PasswordField):
    pass


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    avatar: Optional[str] = None
    role: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User, origin: str) -> "UserResponse":
        # Avatars go out as absolute URIs
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            avatar=resolve_avatar_url(user.avatar, origin),
            role=user.role,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserData(BaseModel):
    user: UserResponse


class SessionData(UserData):
    token: str


class UserEnvelope(BaseModel):
    data: UserData


class SessionEnvelope(BaseModel):
    data: SessionData


class MessageResponse(BaseModel):
    message: str


def session_envelope(user: User, token: str, origin: str) -> SessionEnvelope:
    return SessionEnvelope(data=SessionData(user=UserResponse.from_user(user, origin), token=token))


def user_envelope(user: User, origin: str) -> UserEnvelope:
    return UserEnvelope(data=UserData(user=UserResponse.from_user(user, origin)))


# Public routes
# -----------------------------

@router.post("/register", response_model=SessionEnvelope, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    db: Session = Depends(get_db),
    origin: str = Depends(get_public_origin)
):
    """Register a new member and return a session token"""
    try:
        user, token = auth_service.register(db, payload.name, payload.email, payload.password)
    except SQLAlchemyError:
        # Rollback prevents partial state; the generic handler hides details
        db.rollback()
        raise
    return session_envelope(user, token, origin)


@router.post("/login", response_model=SessionEnvelope)
async def login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    origin: str = Depends(get_public_origin)
):
    """Login and get a session token"""
    user, token = auth_service.login(db, payload.email, payload.password)
    return session_envelope(user, token, origin)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    payload: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """Start a password reset; the response never reveals whether the email exists"""
    ticket = auth_service.forgot_password(db, payload.email)
    if ticket is not None:
        # Sent after the response so SMTP latency does not leak account existence
        background_tasks.add_task(mailer.send_password_reset, payload.email, ticket)
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password/{token}", response_model=SessionEnvelope)
async def reset_password(
    token: str,
    payload: ResetPasswordRequest,
    db: Session = Depends(get_db),
    origin: str = Depends(get_public_origin)
):
    """Set a new password with a reset ticket and return a fresh session"""
    user, session_token = auth_service.reset_password(db, token, payload.password)
    return session_envelope(user, session_token, origin)


# Protected routes
# -----------------------------

@router.get("/me", response_model=UserEnvelope)
async def get_me(
    current_user: User = Depends(get_current_user),
    origin: str = Depends(get_public_origin)
):
    """Get current user information"""
    return user_envelope(current_user, origin)


@router.put("/profile", response_model=UserEnvelope)
async def update_profile(
    payload: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    origin: str = Depends(get_public_origin)
):
    """Update display name and email"""
    user = auth_service.update_profile(db, current_user.id, payload.name, payload.email)
    return user_envelope(user, origin)


@router.post("/avatar", response_model=UserEnvelope)
async def upload_avatar(
    avatar: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    origin: str = Depends(get_public_origin)
):
    """Upload a new avatar image (multipart field 'avatar')"""
    user = await auth_service.upload_avatar(db, current_user.id, avatar)
    return user_envelope(user, origin)
