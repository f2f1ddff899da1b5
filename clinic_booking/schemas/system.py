"""Schemas for system batch jobs."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class AutoUpdateStatusRequest(BaseModel):
    """Optional clock override for the no-show sweep."""

    current_time: datetime | None = Field(
        None, description="Reference instant; defaults to now"
    )


class NoShowUpdate(BaseModel):
    """One appointment marked as no-show."""

    appointment_id: UUID
    patient_id: UUID
    new_no_show_count: int


class AutoUpdateStatusResponse(BaseModel):
    """Result of the no-show sweep."""

    success: bool = True
    processed_count: int
    updated_appointments: list[NoShowUpdate]


class BlacklistedPatient(BaseModel):
    """One patient blacklisted by the batch check."""

    patient_id: UUID
    no_show_count: int


class BlacklistCheckResponse(BaseModel):
    """Result of the blacklist batch check."""

    success: bool = True
    processed_count: int
    blacklisted_patients: list[BlacklistedPatient]
