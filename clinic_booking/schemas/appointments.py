"""Appointment schemas for request/response validation."""

from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from clinic_booking.core.state_machine import AppointmentStatus

__all__ = [
    "AlternativeSlot",
    "AppointmentCancel",
    "AppointmentCreate",
    "AppointmentListResponse",
    "AppointmentResponse",
    "AppointmentStatus",
    "AppointmentUpdate",
]


class AppointmentCreate(BaseModel):
    """Schema for creating a new appointment.

    Patients are identified by their token; admins booking on behalf of a
    patient pass ``patient_id`` or ``line_user_id``.
    """

    patient_id: UUID | None = None
    line_user_id: str | None = Field(None, min_length=1, max_length=100)
    time_slot_id: UUID
    treatment_type_id: UUID
    doctor_id: UUID | None = Field(
        None, description="Optional; must match the doctor owning the slot"
    )
    appointment_date: date | None = Field(
        None, description="Optional; must match the slot's schedule date"
    )


class AppointmentUpdate(BaseModel):
    """Schema for moving a booked appointment to another slot or treatment."""

    time_slot_id: UUID | None = None
    treatment_type_id: UUID | None = None

    @model_validator(mode="after")
    def require_change(self) -> "AppointmentUpdate":
        """Reject empty modification requests."""
        if self.time_slot_id is None and self.treatment_type_id is None:
            raise ValueError("Provide time_slot_id and/or treatment_type_id")
        return self


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=500)


class AlternativeSlot(BaseModel):
    """Another slot of the same doctor and day able to take the booking."""

    id: UUID
    doctor_id: UUID
    date: date
    start_time: time
    end_time: time
    remaining_minutes: int


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    patient_id: UUID
    doctor_id: UUID
    treatment_type_id: UUID
    time_slot_id: UUID
    appointment_date: date
    start_time: time | None = None
    end_time: time | None = None
    status: AppointmentStatus
    cancelled_reason: str | None = None
    cancelled_by: str | None = None
    created_at: datetime
    updated_at: datetime
    notification_sent: bool | None = None

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for appointment list response."""

    total: int
    items: list[AppointmentResponse]
