"""Endpoints for scheduled batch jobs."""

from fastapi import APIRouter, Body, status

from clinic_booking.core.redis_client import SweepLock
from clinic_booking.dependencies import DatabaseSession, RedisClient, SystemJob
from clinic_booking.schemas.system import (
    AutoUpdateStatusRequest,
    AutoUpdateStatusResponse,
    BlacklistCheckResponse,
)
from clinic_booking.services.lifecycle_sweeper import LifecycleSweeper

router = APIRouter(prefix="/system", dependencies=[SystemJob])


@router.post(
    "/auto-update-status",
    response_model=AutoUpdateStatusResponse,
    status_code=status.HTTP_200_OK,
    tags=["System"],
    summary="Mark elapsed bookings as no-show",
)
async def auto_update_status(
    db: DatabaseSession,
    redis_client: RedisClient,
    data: AutoUpdateStatusRequest | None = Body(None),
) -> AutoUpdateStatusResponse:
    """
    Run the no-show sweep.

    Args:
        db: Database session
        redis_client: Redis client for the single-flight lock
        data: Optional reference time

    Returns:
        Appointments moved to no-show
    """
    async with SweepLock(redis_client).hold("auto-update-status"):
        sweeper = LifecycleSweeper(db)
        return await sweeper.mark_no_shows(data.current_time if data else None)


@router.post(
    "/blacklist-check",
    response_model=BlacklistCheckResponse,
    status_code=status.HTTP_200_OK,
    tags=["System"],
    summary="Blacklist patients at the no-show limit",
)
async def blacklist_check(
    db: DatabaseSession,
    redis_client: RedisClient,
) -> BlacklistCheckResponse:
    """Run the blacklist batch check."""
    async with SweepLock(redis_client).hold("blacklist-check"):
        sweeper = LifecycleSweeper(db)
        return await sweeper.blacklist_check()
