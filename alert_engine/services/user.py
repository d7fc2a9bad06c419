"""Read-side user lookups and credential checks.

Accounts are managed by the core platform; the alert engine only resolves
bearer tokens and logins against the shared ``users`` table.
"""

from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alert_engine.core.security import verify_password
from alert_engine.models.user import User

logger = structlog.get_logger()


class UserService:
    """Service for user-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def get_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def authenticate(self, username: str, password: str) -> Optional[User]:
        """Authenticate by username or email; ``None`` on any mismatch."""
        user = await self.get_by_username(username)
        if not user:
            user = await self.get_by_email(username)

        if not user or not verify_password(password, user.hashed_password):
            logger.info("Login rejected", username=username)
            return None

        return user
