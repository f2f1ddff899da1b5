"""Appointment endpoints."""

from uuid import UUID

from fastapi import APIRouter, Body, Query, status

from clinic_booking.dependencies import Cache, CurrentActor, DatabaseSession
from clinic_booking.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentUpdate,
)
from clinic_booking.services.reservation_service import ReservationService

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Create new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    actor: CurrentActor,
    db: DatabaseSession,
    cache: Cache,
) -> AppointmentResponse:
    """
    Book a treatment into a time slot.

    Patients book for themselves; admins pass ``patient_id`` or
    ``line_user_id``. A full slot answers with ``alternativeSlots``.

    Args:
        data: Booking request
        actor: Authenticated actor
        db: Database session
        cache: Cache manager

    Returns:
        Created appointment
    """
    service = ReservationService(db, cache)
    return await service.create_appointment(data, actor)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    actor: CurrentActor,
    db: DatabaseSession,
    patient_id: UUID | None = Query(None, description="Admins only"),
) -> AppointmentListResponse:
    """List the calling patient's appointments (or a patient's, for admins)."""
    service = ReservationService(db)
    return await service.list_appointments(actor, patient_id)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Get one appointment."""
    service = ReservationService(db)
    return await service.get_appointment(appointment_id, actor)


@router.put(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Modify appointment",
)
async def modify_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    actor: CurrentActor,
    db: DatabaseSession,
    cache: Cache,
) -> AppointmentResponse:
    """
    Move a booked appointment to another slot or treatment.

    Args:
        appointment_id: Appointment to modify
        data: New slot and/or treatment
        actor: Authenticated actor
        db: Database session
        cache: Cache manager

    Returns:
        Updated appointment
    """
    service = ReservationService(db, cache)
    return await service.modify_appointment(appointment_id, data, actor)


@router.delete(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    cache: Cache,
    data: AppointmentCancel | None = Body(None),
) -> AppointmentResponse:
    """Cancel a booked appointment and return its minutes to the slot."""
    service = ReservationService(db, cache)
    return await service.cancel_appointment(
        appointment_id,
        actor,
        reason=data.reason if data else None,
    )
