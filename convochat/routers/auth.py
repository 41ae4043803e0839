# convochat/routers/auth.py
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from google.auth.exceptions import GoogleAuthError
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy.orm import Session

from .. import sessions
from ..clients import GoogleIdentityVerifier, SmtpNotifier, get_identity_verifier, get_notifier
from ..config import Settings, get_settings
from ..database import get_db
from ..errors import BadRequest, Unauthorized
from ..models import Users
from ..security import current_user

logger = logging.getLogger(__name__)

authRoutes = APIRouter(prefix="/api/auth", tags=["auth"])

db_link = Annotated[Session, Depends(get_db)]
app_settings = Annotated[Settings, Depends(get_settings)]


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)


class LoginRequest(BaseModel):
    email: str
    password: str


class GoogleLoginRequest(BaseModel):
    token: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str
    new_password: str = Field(..., alias="newPassword", min_length=6, max_length=128)


class TokenResponse(BaseModel):
    token: str
    email: str


class MessageResponse(BaseModel):
    message: str


class UserOut(BaseModel):
    id: int
    email: str
    google_linked: bool


@authRoutes.post("/signup", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def signup(payload: SignupRequest, db: db_link):
    sessions.signup(db, payload.email, payload.password)
    return MessageResponse(message="User created")


@authRoutes.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: db_link, settings: app_settings):
    issued = sessions.authenticate(db, payload.email, payload.password, settings)
    return TokenResponse(token=issued.token, email=issued.email)


@authRoutes.post("/google-login", response_model=TokenResponse)
def google_login(
    payload: GoogleLoginRequest,
    db: db_link,
    settings: app_settings,
    verifier: Annotated[GoogleIdentityVerifier, Depends(get_identity_verifier)],
):
    try:
        identity = verifier.verify(payload.token)
    except (ValueError, GoogleAuthError) as e:
        logger.warning("Google token rejected: %s", e)
        raise BadRequest("Google verification failed")
    issued = sessions.authenticate_external(db, identity, settings)
    return TokenResponse(token=issued.token, email=issued.email)


@authRoutes.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    payload: ForgotPasswordRequest,
    db: db_link,
    settings: app_settings,
    notifier: Annotated[SmtpNotifier, Depends(get_notifier)],
):
    sessions.issue_reset_token(db, payload.email, notifier, settings)
    return MessageResponse(message="Reset link sent!")


@authRoutes.post("/reset-password", response_model=MessageResponse)
def reset_password(payload: ResetPasswordRequest, db: db_link, settings: app_settings):
    sessions.consume_reset_token(db, payload.token, payload.new_password, settings)
    return MessageResponse(message="Password updated")


@authRoutes.get("/me", response_model=UserOut)
def read_me(user: current_user, db: db_link):
    record = db.get(Users, user.user_id)
    if record is None:
        raise Unauthorized("User not found")
    return UserOut(id=record.id, email=record.email, google_linked=bool(record.google_id))
