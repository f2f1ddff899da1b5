"""Operation log table for administrative actions."""

from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Table, Text, Uuid, func

from clinic_booking.models.base import metadata

operation_logs = Table(
    "operation_logs",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("actor_id", Text, nullable=True),
    Column("action", Text, nullable=False, index=True),
    Column("target_type", Text, nullable=False),
    Column("target_id", Text, nullable=False),
    Column("details", JSON, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
