"""Admin-specific schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from clinic_booking.core.state_machine import AppointmentStatus


class AppointmentStatusUpdate(BaseModel):
    """Schema for an administrative status change."""

    status: AppointmentStatus
    cancelled_reason: str | None = Field(None, max_length=500)


class DeactivationResponse(BaseModel):
    """Result of disabling a doctor or a treatment type."""

    id: UUID
    is_active: bool
    cancelled_appointments: int
    cancelled_appointment_ids: list[UUID]
    notified_patients: list[str]


class BlacklistCreate(BaseModel):
    """Manually blacklist a patient."""

    patient_id: UUID
    reason: str = Field(..., min_length=1, max_length=500)


class BlacklistEntry(BaseModel):
    """Blacklist record with the patient's name."""

    id: UUID
    patient_id: UUID
    patient_name: str
    reason: str
    created_by: str | None = None
    created_at: datetime


class BlacklistListResponse(BaseModel):
    """All blacklisted patients."""

    total: int
    items: list[BlacklistEntry]
