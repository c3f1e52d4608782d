import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from zenyukti.core.config import settings
from zenyukti.core.errors import InvalidToken

# CryptContext handles password hashing using bcrypt
# bcrypt is slow by design to prevent brute-force attacks
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash using constant-time comparison"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Unrecognized or corrupt hash - treat as a mismatch
        return False


def dummy_verify() -> None:
    """Spend the same time as verify_password when there is no user to check."""
    pwd_context.dummy_verify()


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt"""
    # bcrypt generates a salt per hash, so equal passwords hash differently
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token with expiration"""
    # Copy data to avoid mutating the original dict
    to_encode = data.copy()

    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "iat": now})

    # Algorithm must match in decode - changing this breaks all existing tokens
    encoded_jwt = jwt.encode(
        to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT token"""
    try:
        # Verify signature and expiration automatically
        # Returns None if token is invalid, expired, or tampered with
        payload = jwt.decode(token, settings.SECRET_KEY,
                             algorithms=[settings.ALGORITHM])
        return payload
    except JWTError:
        return None


def issue_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> tuple[str, datetime]:
    """Issue a session token bound to user_id. Returns (token, expires_at)."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    expires_at = datetime.now(timezone.utc) + expires_delta
    token = create_access_token(
        {"sub": str(user_id), "type": ACCESS_TOKEN_TYPE},
        expires_delta=expires_delta,
    )
    return token, expires_at


def verify_access_token(token: Optional[str]) -> int:
    """
    Return the user id a session token is bound to.

    Raises InvalidToken when the token is missing, malformed, signed with a
    different secret, expired, or carries no usable subject.
    """
    if not token:
        raise InvalidToken("Not authorized, no token")

    payload = decode_access_token(token)
    if payload is None:
        raise InvalidToken()

    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise InvalidToken()

    # JWT standard uses 'sub' (subject) claim for user identifier
    user_id_str = payload.get("sub")
    try:
        return int(user_id_str)
    except (ValueError, TypeError):
        raise InvalidToken()


def hash_reset_ticket(ticket: str) -> str:
    """Digest stored in place of the raw reset ticket"""
    return hashlib.sha256(ticket.encode("utf-8")).hexdigest()


def generate_reset_ticket() -> tuple[str, str]:
    """Return (raw ticket for the email link, digest for the database)"""
    ticket = secrets.token_urlsafe(32)
    return ticket, hash_reset_ticket(ticket)
