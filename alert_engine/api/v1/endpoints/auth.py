"""Authentication endpoints."""

import structlog
from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from alert_engine.core.database import get_db
from alert_engine.core.deps import get_current_user
from alert_engine.core.exceptions import AuthenticationException
from alert_engine.core.security import create_access_token
from alert_engine.models.user import User
from alert_engine.schemas.user import Token, UserLogin, UserResponse
from alert_engine.services.user import UserService

logger = structlog.get_logger()

router = APIRouter()


async def _issue_token(db: AsyncSession, username: str, password: str) -> dict:
    user = await UserService(db).authenticate(username, password)
    if not user:
        logger.warning("Login failed", username=username)
        raise AuthenticationException("Incorrect username or password")
    if not user.is_active:
        raise AuthenticationException("Inactive user")

    logger.info("User logged in successfully", user_id=user.id, username=user.username)
    return {
        "access_token": create_access_token(subject=user.username),
        "token_type": "bearer",
    }


@router.post("/login", response_model=Token)
async def login(
    login_data: UserLogin,
    db: AsyncSession = Depends(get_db),
):
    """Login with JSON data and get access token."""
    return await _issue_token(db, login_data.username, login_data.password)


@router.post("/token", response_model=Token)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    """OAuth2 compatible login endpoint (for Swagger UI)."""
    return await _issue_token(db, form_data.username, form_data.password)


@router.get("/me", response_model=UserResponse)
async def read_current_user(current_user: User = Depends(get_current_user)):
    """Return the authenticated user."""
    return current_user
