"""
Bearer-token identity for the issue API.

Tokens are issued by the identity provider; this module only verifies them.
The `sub` claim carries the user ID. create_access_token exists for tests
and operator tooling.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

import repositories.db_models as db_models
from models.config import settings
from models.exceptions import (
    AuthenticationException,
    InactiveUserException,
    InsufficientPermissionsException,
)
from repositories.database import get_db
from repositories.user_repository import UserRepository

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if "sub" in to_encode:
        to_encode["sub"] = str(to_encode["sub"])
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_user_id(token: str) -> int:
    """
    Extract the user ID from a token.

    Raises:
        AuthenticationException: Expired, malformed or missing subject.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.exceptions.ExpiredSignatureError:
        raise AuthenticationException("Session expired. Please log in again.")
    except jwt.exceptions.InvalidTokenError:
        raise AuthenticationException("Could not validate credentials")

    subject = payload.get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError):
        raise AuthenticationException("Could not validate credentials")


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> db_models.User:
    """
    Get the current authenticated user from the bearer token.

    Raises:
        AuthenticationException: If credentials are missing, invalid or the
            user doesn't exist.
    """
    if credentials is None:
        raise AuthenticationException("Not authenticated")

    user = UserRepository(db).get_by_id(decode_user_id(credentials.credentials))
    if user is None:
        raise AuthenticationException("Could not validate credentials")
    return user


async def get_current_active_user(
    current_user: db_models.User = Depends(get_current_user),
) -> db_models.User:
    """
    Raises:
        InactiveUserException: If the user account has been deactivated.
    """
    if not bool(current_user.is_active):
        raise InactiveUserException("Account has been deactivated")
    return current_user


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[db_models.User]:
    """
    Get current user if authenticated, otherwise return None.

    An expired token still raises so the client knows to re-login; a
    malformed one is treated as anonymous.
    """
    if credentials is None:
        return None
    try:
        user_id = decode_user_id(credentials.credentials)
    except AuthenticationException as e:
        if "expired" in e.message:
            raise
        return None
    return UserRepository(db).get_active_by_id(user_id)


async def get_government_user(
    current_user: db_models.User = Depends(get_current_active_user),
) -> db_models.User:
    """
    Require a government staff account.

    Raises:
        InsufficientPermissionsException: For citizen accounts.
    """
    if not current_user.is_government:
        raise InsufficientPermissionsException(
            "Access denied. Government officials only."
        )
    return current_user
