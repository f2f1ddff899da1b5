"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from clinic_booking.models.base import metadata

_ACTIVE = text("status IN ('booked', 'checked_in')")

appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Ownership / references
    Column("patient_id", Uuid, ForeignKey("patients.id"), nullable=False, index=True),
    Column("doctor_id", Uuid, ForeignKey("doctors.id"), nullable=False, index=True),
    Column("treatment_type_id", Uuid, ForeignKey("treatment_types.id"), nullable=False),
    Column("time_slot_id", Uuid, ForeignKey("time_slots.id"), nullable=False, index=True),
    Column("appointment_date", Date, nullable=False, index=True),
    # Status management
    Column(
        "status",
        Text,
        nullable=False,
        server_default="booked",
    ),
    Column("cancelled_reason", Text, nullable=True),
    Column("cancelled_by", Text, nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    # Constraints
    CheckConstraint(
        "status IN ('booked', 'checked_in', 'completed', 'cancelled', 'no_show')",
        name="status_values",
    ),
)

# At most one active appointment per patient per day
Index(
    "uq_appointments_active_patient_date",
    appointments.c.patient_id,
    appointments.c.appointment_date,
    unique=True,
    postgresql_where=_ACTIVE,
    sqlite_where=_ACTIVE,
)
