"""Health check endpoints."""

from datetime import date

from fastapi import APIRouter, status
from pydantic import BaseModel

from clinic_booking.config import settings
from clinic_booking.core.clock import clinic_today
from clinic_booking.core.redis_client import check_redis_connection
from clinic_booking.database import check_database_connection

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    clinic_timezone: str
    clinic_date: date


class DetailedHealthResponse(HealthResponse):
    """Health check including the backing services.

    Redis only carries the catalog cache and the batch job locks, so an
    unreachable Redis degrades the service without stopping bookings.
    """

    database: str
    redis: str


def _base_fields() -> dict:
    return {
        "version": settings.app_version,
        "environment": settings.environment,
        "clinic_timezone": settings.clinic_timezone,
        "clinic_date": clinic_today(),
    }


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns:
        Service status and the clinic's current date
    """
    return HealthResponse(status="healthy", **_base_fields())


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Detailed health check",
)
async def detailed_health_check() -> DetailedHealthResponse:
    """Health check with database and Redis status."""
    db_healthy = await check_database_connection()
    redis_healthy = await check_redis_connection()

    if not db_healthy:
        overall = "unhealthy"
    elif not redis_healthy:
        overall = "degraded"
    else:
        overall = "healthy"

    return DetailedHealthResponse(
        status=overall,
        database="healthy" if db_healthy else "unhealthy",
        redis="healthy" if redis_healthy else "unhealthy",
        **_base_fields(),
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    """Liveness check without touching any backing service."""
    return {"message": "pong"}
