from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt

from ..core.config import settings
from .clock import utcnow


def normalize_email(email: str) -> str:
    """Return a normalized representation of an email address."""
    return email.strip().lower()


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    return jwt.encode(
        {"sub": normalize_email(subject), "exp": expire},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )


def decode_access_token(token: str) -> Optional[str]:
    """Return the token subject (email) or None when the token is invalid."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    sub = payload.get("sub")
    return normalize_email(sub) if isinstance(sub, str) else None
