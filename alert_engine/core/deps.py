"""Dependency injection utilities."""

from typing import Optional

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from alert_engine.core.database import get_db
from alert_engine.core.exceptions import AuthenticationException
from alert_engine.core.principal import Principal
from alert_engine.core.security import verify_token
from alert_engine.models.user import User
from alert_engine.services.user import UserService

logger = structlog.get_logger()
security = HTTPBearer(auto_error=False)


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> User:
    """Get current authenticated user.

    Every failure is a 401 so the dashboard drops its stored token instead
    of retrying with stale credentials.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationException("Not authenticated")

    username = verify_token(credentials.credentials)

    if username is None:
        raise AuthenticationException("Could not validate credentials")

    user_service = UserService(db)
    user = await user_service.get_by_username(username)

    if user is None:
        raise AuthenticationException("User not found")

    if not user.is_active:
        raise AuthenticationException("Inactive user")

    return user


async def get_principal(current_user: User = Depends(get_current_user)) -> Principal:
    """Get the principal for the authenticated user."""
    return Principal.from_user(current_user)
