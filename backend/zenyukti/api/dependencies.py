from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from zenyukti.core.config import settings
from zenyukti.core.database import get_db
from zenyukti.core.security import verify_access_token
from zenyukti.core.urls import origin_of
from zenyukti.models.user import User
from zenyukti.services.auth_service import auth_service

# Bearer scheme - extracts token from Authorization header
# auto_error=False so a missing header reaches our own InvalidToken error
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from the bearer token.

    Raises InvalidToken (401) for a missing, malformed or expired token and
    NotFound (404) when the account behind a valid token no longer exists.
    """
    token = credentials.credentials if credentials else None
    user_id = verify_access_token(token)
    return auth_service.get_me(db, user_id)


def get_public_origin(request: Request) -> str:
    """Origin used to absolutize avatar paths in responses"""
    if settings.PUBLIC_URL:
        return origin_of(settings.PUBLIC_URL)
    return origin_of(str(request.base_url))
