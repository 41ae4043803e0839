"""
Account lifecycle: signup, password and Google login, and the
password-reset-by-email flow.

Every successful login path ends in `_issue`, so password and Google
sessions carry identical credentials.
"""
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .clients import SmtpNotifier, VerifiedIdentity
from .config import Settings
from .errors import Conflict, InvalidCredentials, InvalidToken, NotFound, UpstreamError
from .models import Users
from .security import (
    RESET_TOKEN_TYPE,
    create_access_token,
    create_reset_token,
    decode_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

RESET_MAIL_SUBJECT = "Reset Password"


@dataclass(frozen=True)
class IssuedCredential:
    token: str
    email: str


def normalize_email(email: str) -> str:
    return email.strip().lower()


def find_user_by_email(db: Session, email: str) -> Optional[Users]:
    return db.query(Users).filter(Users.email == normalize_email(email)).first()


def _issue(user: Users, settings: Settings) -> IssuedCredential:
    token = create_access_token(email=user.email, user_id=user.id, settings=settings)
    return IssuedCredential(token=token, email=user.email)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def signup(db: Session, email: str, password: str) -> Users:
    user = Users(email=normalize_email(email), hashed_password=hash_password(password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Signup rejected, email already registered: %s", user.email)
        raise Conflict()
    db.refresh(user)
    logger.info("Created user %s (id=%s)", user.email, user.id)
    return user


def authenticate(db: Session, email: str, password: str, settings: Settings) -> IssuedCredential:
    user = find_user_by_email(db, email)
    password_ok = verify_password(password, user.hashed_password if user else None)
    if user is None or not password_ok:
        logger.info("Failed login for %s", normalize_email(email))
        raise InvalidCredentials()
    logger.info("User %s logged in", user.id)
    return _issue(user, settings)


def authenticate_external(db: Session, identity: VerifiedIdentity, settings: Settings) -> IssuedCredential:
    email = normalize_email(identity.email)
    user = find_user_by_email(db, email)
    if user is None:
        user = Users(email=email, google_id=identity.subject_id)
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # created concurrently by another request
            db.rollback()
            user = find_user_by_email(db, email)
        else:
            db.refresh(user)
            logger.info("Created Google user %s (id=%s)", user.email, user.id)
    elif not user.google_id:
        user.google_id = identity.subject_id
        db.commit()

    logger.info("User %s logged in with Google", user.id)
    return _issue(user, settings)


def issue_reset_token(db: Session, email: str, notifier: SmtpNotifier, settings: Settings) -> str:
    user = find_user_by_email(db, email)
    if user is None:
        raise NotFound("User not found")

    token = create_reset_token(user.id, settings)
    user.reset_token = token
    user.reset_token_expires = datetime.now(timezone.utc) + timedelta(
        minutes=settings.RESET_TOKEN_EXPIRE_MINUTES
    )
    db.commit()

    link = f"{settings.FRONTEND_URL.rstrip('/')}/reset-password/{token}"
    try:
        notifier.send(user.email, RESET_MAIL_SUBJECT, f"Reset link: {link}")
    except Exception as e:
        logger.exception("Could not send reset mail to user %s", user.id)
        raise UpstreamError(str(e))

    logger.info("Issued password reset for user %s", user.id)
    return token


def consume_reset_token(db: Session, token: str, new_password: str, settings: Settings) -> None:
    try:
        payload = decode_token(token, settings, RESET_TOKEN_TYPE)
        user_id = int(payload["sub"])
    except (JWTError, KeyError, ValueError):
        raise InvalidToken()

    user = db.get(Users, user_id)
    if user is None or not user.reset_token or user.reset_token_expires is None:
        raise InvalidToken()
    if not hmac.compare_digest(user.reset_token.encode(), token.encode()):
        raise InvalidToken()
    if _as_utc(user.reset_token_expires) <= datetime.now(timezone.utc):
        raise InvalidToken()

    user.hashed_password = hash_password(new_password)
    user.reset_token = None
    user.reset_token_expires = None
    db.commit()
    logger.info("Password reset completed for user %s", user.id)
