"""Schemas for slots, schedules and treatment types."""

from datetime import date, time
from uuid import UUID

from pydantic import BaseModel, Field


class TreatmentTypeResponse(BaseModel):
    """Treatment type as shown to patients."""

    id: UUID
    name: str
    duration_minutes: int
    is_active: bool
    sort_order: int = 0

    model_config = {"from_attributes": True}


class TimeSlotResponse(BaseModel):
    """Time slot with its capacity."""

    id: UUID
    schedule_id: UUID
    start_time: time
    end_time: time
    total_minutes: int
    remaining_minutes: int
    is_available: bool = True

    model_config = {"from_attributes": True}


class TimeSlotAdjust(BaseModel):
    """Manual remaining-minutes adjustment."""

    remaining_minutes: int = Field(..., ge=0)


class ScheduleAvailabilityUpdate(BaseModel):
    """Suspend or restore a schedule."""

    is_available: bool


class ScheduleAvailabilityResponse(BaseModel):
    """Schedule after an availability change."""

    id: UUID
    doctor_id: UUID
    date: date
    is_available: bool
    notified_patients: list[str] = Field(default_factory=list)


class DoctorSummary(BaseModel):
    """Doctor as listed under a bookable date."""

    id: UUID
    name: str


class DoctorResponse(DoctorSummary):
    """Doctor with the treatments they offer; an empty list means all of them."""

    is_active: bool
    treatment_types: list[TreatmentTypeResponse] = Field(default_factory=list)


class AvailableDate(BaseModel):
    """A date with at least one slot that still has minutes."""

    date: date
    doctors: list[DoctorSummary]


class AvailableDatesResponse(BaseModel):
    """Bookable dates inside the booking window."""

    dates: list[AvailableDate]
    min_date: date
    max_date: date
