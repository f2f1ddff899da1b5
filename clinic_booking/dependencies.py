"""FastAPI dependencies."""

import secrets
from typing import Annotated, Any

import structlog
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.config import settings
from clinic_booking.core.exceptions import AccountLockedException, ForbiddenException
from clinic_booking.core.redis_client import CacheManager, get_redis_client
from clinic_booking.core.security import decode_access_token
from clinic_booking.database import get_db
from clinic_booking.schemas.auth import Actor, Role

# Security
security = HTTPBearer()


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Actor:
    """
    Build the acting identity from a JWT token.

    Args:
        credentials: Bearer token credentials

    Returns:
        Authenticated actor

    Raises:
        HTTPException: If token is invalid or expired
        AccountLockedException: If the token belongs to a locked account
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _credentials_error()

    subject = payload.get("sub")
    if subject is None or not isinstance(subject, str):
        raise _credentials_error()

    try:
        role = Role(payload.get("role", Role.PATIENT.value))
    except ValueError:
        raise _credentials_error("Unknown role")

    if payload.get("is_locked"):
        raise AccountLockedException()

    structlog.contextvars.bind_contextvars(actor_id=subject, actor_role=role.value)
    return Actor(id=subject, role=role, line_user_id=payload.get("line_user_id"))


async def require_admin(
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> Actor:
    """Allow admins and super admins only."""
    if not actor.is_admin:
        raise ForbiddenException("Administrator access required")
    return actor


async def require_super_admin(
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> Actor:
    """Allow super admins only."""
    if not actor.is_super_admin:
        raise ForbiddenException("Super administrator access required")
    return actor


async def verify_system_secret(
    x_system_secret: Annotated[str | None, Header()] = None,
) -> None:
    """
    Authenticate scheduled jobs by the shared system secret.

    Raises:
        HTTPException: If the header is missing or wrong
    """
    if not x_system_secret or not secrets.compare_digest(
        x_system_secret, settings.system_job_secret
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid system secret",
        )


def get_cache(
    redis_client: Annotated[Any, Depends(get_redis_client)],
) -> CacheManager:
    """Cache manager bound to the request's Redis client."""
    return CacheManager(redis_client)


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
AdminActor = Annotated[Actor, Depends(require_admin)]
SuperAdminActor = Annotated[Actor, Depends(require_super_admin)]
RedisClient = Annotated[Any, Depends(get_redis_client)]
Cache = Annotated[CacheManager, Depends(get_cache)]
SystemJob = Depends(verify_system_secret)
