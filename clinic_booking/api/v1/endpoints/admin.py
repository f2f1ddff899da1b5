"""Admin endpoints for clinic staff."""

from uuid import UUID

from fastapi import APIRouter, status

from clinic_booking.dependencies import AdminActor, Cache, DatabaseSession, SuperAdminActor
from clinic_booking.schemas.admin import (
    AppointmentStatusUpdate,
    BlacklistCreate,
    BlacklistEntry,
    BlacklistListResponse,
    DeactivationResponse,
)
from clinic_booking.schemas.appointments import AppointmentResponse
from clinic_booking.schemas.catalog import (
    ScheduleAvailabilityResponse,
    ScheduleAvailabilityUpdate,
    TimeSlotAdjust,
    TimeSlotResponse,
)
from clinic_booking.services.blacklist_service import BlacklistService
from clinic_booking.services.capacity_ledger import CapacityLedger
from clinic_booking.services.lifecycle_sweeper import CascadeResult, LifecycleSweeper
from clinic_booking.services.notification_service import NotificationService
from clinic_booking.services.reservation_service import ReservationService
from clinic_booking.services.schedule_service import ScheduleService

router = APIRouter(prefix="/admin")


async def _deactivation_response(result: CascadeResult) -> DeactivationResponse:
    notified = await NotificationService.dispatch(result.targets)
    return DeactivationResponse(
        id=result.entity_id,
        is_active=False,
        cancelled_appointments=len(result.cancelled_appointment_ids),
        cancelled_appointment_ids=result.cancelled_appointment_ids,
        notified_patients=notified,
    )


@router.put(
    "/appointments/{appointment_id}/status",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Admin"],
    summary="Change appointment status",
)
async def update_appointment_status(
    appointment_id: UUID,
    data: AppointmentStatusUpdate,
    actor: AdminActor,
    db: DatabaseSession,
    cache: Cache,
) -> AppointmentResponse:
    """
    Check in, complete or cancel an appointment.

    Args:
        appointment_id: Appointment to change
        data: Target status and optional cancel reason
        actor: Administrator
        db: Database session
        cache: Cache manager

    Returns:
        Updated appointment
    """
    service = ReservationService(db, cache)
    return await service.update_status(appointment_id, data, actor)


@router.patch(
    "/time-slots/{slot_id}",
    response_model=TimeSlotResponse,
    status_code=status.HTTP_200_OK,
    tags=["Admin"],
    summary="Adjust remaining minutes",
)
async def adjust_time_slot(
    slot_id: UUID,
    data: TimeSlotAdjust,
    actor: AdminActor,
    db: DatabaseSession,
) -> TimeSlotResponse:
    """Manually set a slot's remaining minutes."""
    ledger = CapacityLedger(db)
    slot = await ledger.adjust_remaining(slot_id, data.remaining_minutes, actor.id)
    return TimeSlotResponse.model_validate(
        {**slot, "is_available": slot["remaining_minutes"] > 0}
    )


@router.patch(
    "/schedules/{schedule_id}",
    response_model=ScheduleAvailabilityResponse,
    status_code=status.HTTP_200_OK,
    tags=["Admin"],
    summary="Suspend or restore a schedule",
)
async def update_schedule_availability(
    schedule_id: UUID,
    data: ScheduleAvailabilityUpdate,
    actor: AdminActor,
    db: DatabaseSession,
) -> ScheduleAvailabilityResponse:
    """
    Suspend or restore a doctor's clinic day.

    Patients booked on a suspended day are notified; their appointments
    stay booked.
    """
    service = ScheduleService(db)
    schedule, targets = await service.set_availability(schedule_id, data.is_available, actor)
    notified = await NotificationService.dispatch(targets)
    return ScheduleAvailabilityResponse(
        id=schedule["id"],
        doctor_id=schedule["doctor_id"],
        date=schedule["date"],
        is_available=schedule["is_available"],
        notified_patients=notified,
    )


@router.post(
    "/doctors/{doctor_id}/disable",
    response_model=DeactivationResponse,
    status_code=status.HTTP_200_OK,
    tags=["Admin"],
    summary="Disable a doctor",
)
async def disable_doctor(
    doctor_id: UUID,
    actor: AdminActor,
    db: DatabaseSession,
    cache: Cache,
) -> DeactivationResponse:
    """Disable a doctor and cancel their future booked appointments."""
    sweeper = LifecycleSweeper(db, cache)
    result = await sweeper.deactivate_doctor(doctor_id, actor)
    return await _deactivation_response(result)


@router.post(
    "/treatments/{treatment_type_id}/disable",
    response_model=DeactivationResponse,
    status_code=status.HTTP_200_OK,
    tags=["Admin"],
    summary="Disable a treatment type",
)
async def disable_treatment_type(
    treatment_type_id: UUID,
    actor: AdminActor,
    db: DatabaseSession,
    cache: Cache,
) -> DeactivationResponse:
    """Disable a treatment type and cancel its future booked appointments."""
    sweeper = LifecycleSweeper(db, cache)
    result = await sweeper.deactivate_treatment_type(treatment_type_id, actor)
    return await _deactivation_response(result)


@router.get(
    "/blacklist",
    response_model=BlacklistListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Admin"],
    summary="List blacklisted patients",
)
async def list_blacklist(actor: AdminActor, db: DatabaseSession) -> BlacklistListResponse:
    """List blacklisted patients."""
    return await BlacklistService(db).list()


@router.post(
    "/blacklist",
    response_model=BlacklistEntry,
    status_code=status.HTTP_201_CREATED,
    tags=["Admin"],
    summary="Blacklist a patient",
)
async def add_to_blacklist(
    data: BlacklistCreate,
    actor: AdminActor,
    db: DatabaseSession,
) -> BlacklistEntry:
    """Blacklist a patient manually."""
    return await BlacklistService(db).add(data.patient_id, data.reason, actor)


@router.delete(
    "/blacklist/{patient_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Admin"],
    summary="Remove a patient from the blacklist",
)
async def remove_from_blacklist(
    patient_id: UUID,
    actor: SuperAdminActor,
    db: DatabaseSession,
) -> None:
    """Lift a patient's blacklisting (super admins only)."""
    await BlacklistService(db).remove(patient_id, actor)
