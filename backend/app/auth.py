"""Authentication for the gigmarket API.

Bearer JWTs carry the user id in ``sub`` and the marketplace role in
``role``. Issuing tokens belongs to the identity provider; create_access_token
exists for local development and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from gigmarket.types import Role, UserRef

from .config import Settings, get_settings

security = HTTPBearer(auto_error=False)


def create_access_token(
    user_id: str,
    role: Role | str,
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token for a user."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode = {
        "sub": user_id,
        "role": Role(role).value,
        "exp": expire,
        "iat": now,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise _unauthorized("Invalid or expired token")


def user_from_claims(payload: dict) -> UserRef:
    """Build the calling UserRef from token claims."""
    if payload.get("type") != "access":
        raise _unauthorized("Invalid token type")
    user_id = payload.get("sub")
    if not user_id:
        raise _unauthorized("Token has no subject")
    try:
        return UserRef(id=user_id, role=Role(payload.get("role")))
    except ValueError:
        raise _unauthorized("Token has no valid role")


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> UserRef:
    """Identity of the caller, from the bearer token."""
    if credentials is None:
        raise _unauthorized("Not authenticated")
    return user_from_claims(decode_token(credentials.credentials, settings))


CurrentUser = Annotated[UserRef, Depends(get_current_user)]
