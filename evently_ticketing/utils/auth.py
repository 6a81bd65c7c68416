"""
JWT helpers for tokens issued by the external identity provider.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from ..config import settings


class TokenData(BaseModel):
    """Claims the service relies on."""
    user_id: str
    email: Optional[str] = None
    full_name: Optional[str] = None


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed JWT access token.

    Used by development tooling and tests; production tokens come from the
    identity provider and share its secret.

    Args:
        data: Claims to encode (``sub`` and ``email`` at minimum)
        expires_delta: Optional custom expiration time

    Returns:
        The encoded JWT token
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str) -> Optional[TokenData]:
    """
    Verify and decode a JWT token.

    Args:
        token: The JWT token to verify

    Returns:
        TokenData if token is valid, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"verify_aud": False}
        )
    except JWTError:
        return None

    user_id = payload.get("sub")
    if user_id is None:
        return None

    metadata = payload.get("user_metadata") or {}
    return TokenData(
        user_id=user_id,
        email=payload.get("email"),
        full_name=metadata.get("full_name")
    )
