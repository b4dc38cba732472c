"""
Authentication and authorization utilities.

Callers exchange an API key for a short-lived JWT. The token subject is
the owner id: jobs enqueued with the token belong to that principal, and
only that principal may read or cancel them.
"""

import hmac
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from invite_jobs.config import get_settings

# Security scheme
security = HTTPBearer()


class TokenData(BaseModel):
    """Data extracted from JWT token."""

    owner_id: str
    exp: datetime


class AuthenticatedUser(BaseModel):
    """Authenticated caller context."""

    owner_id: str


def create_access_token(
    owner_id: str,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        owner_id: The principal the token is issued for.
        expires_delta: Optional custom expiration time.

    Returns:
        The encoded JWT token.
    """
    settings = get_settings()

    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.api_access_token_expire_minutes)

    issued_at = datetime.now(timezone.utc)
    to_encode = {
        "sub": owner_id,
        "exp": issued_at + expires_delta,
        "iat": issued_at,
    }

    return jwt.encode(
        to_encode,
        settings.api_secret_key,
        algorithm=settings.api_algorithm,
    )


def decode_token(token: str) -> TokenData:
    """
    Decode and validate a JWT token.

    Raises:
        HTTPException: If token is invalid, expired or has no subject.
    """
    settings = get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.api_secret_key,
            algorithms=[settings.api_algorithm],
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    owner_id = payload.get("sub")
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing subject",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return TokenData(
        owner_id=owner_id,
        exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> AuthenticatedUser:
    """FastAPI dependency resolving the bearer token to its owner."""
    token_data = decode_token(credentials.credentials)
    return AuthenticatedUser(owner_id=token_data.owner_id)


# Type alias for dependency injection
CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]


def validate_api_key(api_key: str, owner_id: str) -> bool:
    """
    Validate an API key for a principal.

    With API_KEY configured the key must match it; otherwise any non-empty
    key is accepted, which is only meant for local development.
    """
    if not api_key or not owner_id:
        return False

    expected = get_settings().api_key
    if expected:
        return hmac.compare_digest(api_key.encode(), expected.encode())
    return True
