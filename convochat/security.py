# convochat/security.py
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Dict, Optional, Union

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from passlib.context import CryptContext

from .config import Settings, get_settings
from .errors import Unauthorized

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
RESET_TOKEN_TYPE = "reset"

bcrypt_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# auto_error=False: a missing header is left to the dependency to classify
oauth2_bearer = OAuth2PasswordBearer(tokenUrl="api/auth/login", auto_error=False)


@dataclass(frozen=True)
class Guest:
    """Request carrying no valid credential."""


@dataclass(frozen=True)
class Authenticated:
    user_id: int
    email: str


GUEST = Guest()
Identity = Union[Guest, Authenticated]


def hash_password(plain: str) -> str:
    return bcrypt_context.hash(plain)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    """Constant-time check; burns a dummy verify when there is no hash to compare."""
    if not hashed:
        bcrypt_context.dummy_verify()
        return False
    return bcrypt_context.verify(plain, hashed)


def _encode(claims: Dict[str, Any], expires_delta: timedelta, settings: Settings) -> str:
    to_encode = dict(claims)
    to_encode["exp"] = datetime.now(timezone.utc) + expires_delta
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, settings: Settings, expected_type: str) -> Dict[str, Any]:
    """Verify signature, expiry and token type. Raises JWTError on any failure."""
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    if payload.get("type") != expected_type:
        raise JWTError("Unexpected token type")
    return payload


def create_access_token(
    email: str, user_id: int, settings: Settings, expires_delta: Optional[timedelta] = None
) -> str:
    return _encode(
        {"sub": email, "uid": user_id, "type": ACCESS_TOKEN_TYPE},
        expires_delta or timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS),
        settings,
    )


def create_reset_token(user_id: int, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    # jti keeps two resets issued within the same second distinct
    return _encode(
        {"sub": str(user_id), "type": RESET_TOKEN_TYPE, "jti": secrets.token_hex(8)},
        expires_delta or timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES),
        settings,
    )


def verify_credential(token: Optional[str], settings: Settings) -> Authenticated:
    if not token:
        raise Unauthorized("No token, authorization denied")
    try:
        payload = decode_token(token, settings, ACCESS_TOKEN_TYPE)
    except JWTError:
        raise Unauthorized("Token is not valid")

    email = payload.get("sub")
    user_id = payload.get("uid")
    if not email or not isinstance(user_id, int):
        raise Unauthorized("Not authorized: missing claims")
    return Authenticated(user_id=user_id, email=email)


def require_auth(
    token: Annotated[Optional[str], Depends(oauth2_bearer)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Authenticated:
    return verify_credential(token, settings)


def optional_auth(
    token: Annotated[Optional[str], Depends(oauth2_bearer)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Identity:
    # browser clients send the literal strings when local storage is empty
    if not token or token in ("null", "undefined"):
        return GUEST
    try:
        return verify_credential(token, settings)
    except Unauthorized:
        logger.debug("Ignoring invalid bearer token on optional-auth route")
        return GUEST


current_user = Annotated[Authenticated, Depends(require_auth)]
current_identity = Annotated[Identity, Depends(optional_auth)]
