"""
Security utilities

JWT verification for the live session channel. Tokens are issued by the
account service; this backend only verifies them.
"""

from typing import Optional

from jose import JWTError, jwt

from companion.core.config import settings
from companion.core.errors import AuthenticationError


def decode_token(token: str) -> Optional[dict]:
    """
    Decode and validate JWT token

    Args:
        token: JWT token string

    Returns:
        Decoded payload if valid, None otherwise
    """
    try:
        return jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError:
        return None


def verify_token(token: str) -> Optional[str]:
    """
    Verify token and extract user ID

    Returns:
        User ID (sub claim) if valid, None otherwise
    """
    payload = decode_token(token)
    if payload is None:
        return None

    user_id: Optional[str] = payload.get("sub")
    return user_id


def authenticate(token: str) -> str:
    """User id for a valid token; raises AuthenticationError otherwise"""
    user_id = verify_token(token)
    if not user_id:
        raise AuthenticationError("Invalid token")
    return user_id
