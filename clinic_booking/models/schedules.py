"""Schedule and time slot tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Table,
    Time,
    UniqueConstraint,
    Uuid,
    func,
    text,
)

from clinic_booking.models.base import metadata

# One doctor's availability for one calendar date
schedules = Table(
    "schedules",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "doctor_id",
        Uuid,
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("date", Date, nullable=False, index=True),
    # False while the doctor's clinic day is suspended
    Column("is_available", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("doctor_id", "date", name="uq_schedules_doctor_date"),
)

# Capacity ledger: the single source of truth for bookable minutes
time_slots = Table(
    "time_slots",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "schedule_id",
        Uuid,
        ForeignKey("schedules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    Column("total_minutes", Integer, nullable=False, server_default=text("30")),
    Column("remaining_minutes", Integer, nullable=False, server_default=text("30")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "remaining_minutes >= 0 AND remaining_minutes <= total_minutes",
        name="remaining_range",
    ),
)
