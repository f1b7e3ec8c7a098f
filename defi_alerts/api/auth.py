"""JWT authentication for owner-scoped API endpoints.

Provides:
- create_access_token(): Issue a JWT whose ``sub`` claim is the owner id
- verify_jwt(): FastAPI dependency that validates JWT Bearer tokens
- get_current_owner(): Dependency returning the authenticated owner id

In development mode (DEBUG=true), authentication is bypassed and all
requests are treated as the "dev-user" owner.
"""

import logging
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from defi_alerts.core.config import settings

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)

DEV_OWNER = "dev-user"


def create_access_token(subject: str, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token for *subject* (the owner id).

    Args:
        subject: Owner identifier.
        expires_delta: Custom expiry. Defaults to settings.jwt_expiry_minutes.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "exp": now + (expires_delta or timedelta(minutes=settings.jwt_expiry_minutes)),
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def verify_jwt(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Validate JWT Bearer token. Bypassed when DEBUG=true."""
    if settings.debug:
        return {"sub": DEV_OWNER}

    if credentials is None:
        raise _unauthorized("Missing authentication token")
    try:
        return jwt.decode(
            credentials.credentials,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid authentication token")


async def get_current_owner(user: dict = Depends(verify_jwt)) -> str:
    """Return the owner id (``sub`` claim) of the authenticated caller."""
    owner_id = user.get("sub")
    if not owner_id:
        logger.info("Rejected token without subject claim")
        raise _unauthorized("Token has no subject")
    return str(owner_id)
