"""Slot and treatment catalog endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_booking.core.clock import booking_window, clinic_today
from clinic_booking.dependencies import Cache, DatabaseSession
from clinic_booking.schemas.catalog import (
    AvailableDatesResponse,
    DoctorResponse,
    TimeSlotResponse,
    TreatmentTypeResponse,
)
from clinic_booking.services.capacity_ledger import CapacityLedger
from clinic_booking.services.treatment_catalog import TreatmentCatalog

router = APIRouter()


@router.get(
    "/slots",
    response_model=list[TimeSlotResponse],
    status_code=status.HTTP_200_OK,
    tags=["Catalog"],
    summary="List a doctor's slots for one day",
)
async def list_slots(
    db: DatabaseSession,
    doctor_id: UUID = Query(...),
    slot_date: date = Query(..., alias="date"),
) -> list[TimeSlotResponse]:
    """
    List time slots with their remaining minutes.

    Args:
        db: Database session
        doctor_id: Doctor to list
        slot_date: Schedule date

    Returns:
        Slots ordered by start time
    """
    ledger = CapacityLedger(db)
    slots = await ledger.list_slots(doctor_id, slot_date)
    return [TimeSlotResponse.model_validate(slot) for slot in slots]


@router.get(
    "/treatment-types",
    response_model=list[TreatmentTypeResponse],
    status_code=status.HTTP_200_OK,
    tags=["Catalog"],
    summary="List active treatment types",
)
async def list_treatment_types(db: DatabaseSession, cache: Cache) -> list[TreatmentTypeResponse]:
    """List active treatment types in display order."""
    catalog = TreatmentCatalog(db, cache)
    treatments = await catalog.list_active()
    return [TreatmentTypeResponse.model_validate(treatment) for treatment in treatments]


@router.get(
    "/available-dates",
    response_model=AvailableDatesResponse,
    status_code=status.HTTP_200_OK,
    tags=["Catalog"],
    summary="List bookable dates",
)
async def list_available_dates(
    db: DatabaseSession,
    doctor_id: UUID | None = Query(None),
) -> AvailableDatesResponse:
    """
    List dates in the booking window that still have free minutes.

    Args:
        db: Database session
        doctor_id: Only consider this doctor

    Returns:
        Dates with the doctors on duty, plus the window bounds
    """
    today = clinic_today()
    min_date, max_date = booking_window(today)
    ledger = CapacityLedger(db)
    dates = await ledger.available_dates(today, doctor_id)
    return AvailableDatesResponse(dates=dates, min_date=min_date, max_date=max_date)


@router.get(
    "/doctors",
    response_model=list[DoctorResponse],
    status_code=status.HTTP_200_OK,
    tags=["Catalog"],
    summary="List active doctors",
)
async def list_doctors(
    db: DatabaseSession,
    treatment_type_id: UUID | None = Query(None),
    slot_date: date | None = Query(None, alias="date"),
) -> list[DoctorResponse]:
    """List active doctors, optionally those offering a treatment or on duty that day."""
    catalog = TreatmentCatalog(db)
    listed = await catalog.list_doctors(treatment_type_id, slot_date)
    return [DoctorResponse.model_validate(doctor) for doctor in listed]
