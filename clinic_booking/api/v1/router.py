"""API v1 router configuration."""

from fastapi import APIRouter

from clinic_booking.api.v1.endpoints import admin, appointments, health, slots, system

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(slots.router, tags=["Catalog"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
api_router.include_router(admin.router, tags=["Admin"])
api_router.include_router(system.router, tags=["System"])
