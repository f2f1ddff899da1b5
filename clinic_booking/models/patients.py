"""Patient and blacklist tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from clinic_booking.models.base import metadata

patients = Table(
    "patients",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # LINE identity used for notifications
    Column("line_user_id", Text, nullable=True, unique=True, index=True),
    # Identity fields
    Column("name", Text, nullable=False),
    Column("phone", String(20)),
    Column("national_id", String(20), nullable=True, unique=True),
    Column("birth_date", Date),
    Column("notes", Text),
    # Attendance tracking
    Column("no_show_count", Integer, nullable=False, server_default=text("0")),
    Column("is_blacklisted", Boolean, nullable=False, server_default=text("false"), index=True),
    # Metadata
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "no_show_count >= 0 AND no_show_count <= 3",
        name="no_show_range",
    ),
)

blacklists = Table(
    "blacklists",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "patient_id",
        Uuid,
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    Column("reason", Text, nullable=False),
    # NULL when created by the batch check
    Column("created_by", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
