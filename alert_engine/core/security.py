"""Bearer token and password helpers.

Tokens are HS256 JWTs whose subject is the username, so tokens issued by the
core platform are accepted as long as both services share ``SECRET_KEY``.
"""

from datetime import timedelta
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from alert_engine.core.clock import utcnow
from alert_engine.core.config import get_settings

ALGORITHM = "HS256"
BCRYPT_MAX_BYTES = 72


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed access token for ``subject``."""
    settings = get_settings()
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {"sub": str(subject), "exp": utcnow() + lifetime}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[str]:
    """Subject of a valid, unexpired token; ``None`` otherwise."""
    try:
        payload = jwt.decode(token, get_settings().SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None

    subject = payload.get("sub")
    return subject if isinstance(subject, str) and subject else None


def _password_bytes(password: str) -> bytes:
    # bcrypt ignores everything past 72 bytes
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed hash stored for the user
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")
