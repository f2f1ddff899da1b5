"""Initial schema - doctors, schedules, slots, patients, appointments.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id", postgresql.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Upgrade database schema."""
    # Enable pgcrypto extension
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # Catalog
    op.create_table(
        "doctors",
        _id_column(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_doctors"),
    )
    op.create_index("ix_doctors_is_active", "doctors", ["is_active"])

    op.create_table(
        "treatment_types",
        _id_column(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("sort_order", sa.Integer(), server_default=sa.text("0"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "duration_minutes >= 1 AND duration_minutes <= 30",
            name="ck_treatment_types_duration_range",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_treatment_types"),
    )
    op.create_index("ix_treatment_types_is_active", "treatment_types", ["is_active"])

    op.create_table(
        "doctor_treatments",
        sa.Column("doctor_id", postgresql.UUID(), nullable=False),
        sa.Column("treatment_type_id", postgresql.UUID(), nullable=False),
        sa.ForeignKeyConstraint(
            ["doctor_id"],
            ["doctors.id"],
            name="fk_doctor_treatments_doctor_id_doctors",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["treatment_type_id"],
            ["treatment_types.id"],
            name="fk_doctor_treatments_treatment_type_id_treatment_types",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("doctor_id", "treatment_type_id", name="pk_doctor_treatments"),
    )

    # Capacity
    op.create_table(
        "schedules",
        _id_column(),
        sa.Column("doctor_id", postgresql.UUID(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("is_available", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["doctor_id"], ["doctors.id"], name="fk_schedules_doctor_id_doctors", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("doctor_id", "date", name="uq_schedules_doctor_date"),
        sa.PrimaryKeyConstraint("id", name="pk_schedules"),
    )
    op.create_index("ix_schedules_doctor_id", "schedules", ["doctor_id"])
    op.create_index("ix_schedules_date", "schedules", ["date"])

    op.create_table(
        "time_slots",
        _id_column(),
        sa.Column("schedule_id", postgresql.UUID(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("total_minutes", sa.Integer(), server_default=sa.text("30"), nullable=False),
        sa.Column("remaining_minutes", sa.Integer(), server_default=sa.text("30"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "remaining_minutes >= 0 AND remaining_minutes <= total_minutes",
            name="ck_time_slots_remaining_range",
        ),
        sa.ForeignKeyConstraint(
            ["schedule_id"],
            ["schedules.id"],
            name="fk_time_slots_schedule_id_schedules",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_time_slots"),
    )
    op.create_index("ix_time_slots_schedule_id", "time_slots", ["schedule_id"])

    # Patients
    op.create_table(
        "patients",
        _id_column(),
        sa.Column("line_user_id", sa.Text(), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("phone", sa.VARCHAR(length=20), nullable=True),
        sa.Column("national_id", sa.VARCHAR(length=20), nullable=True),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("no_show_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "is_blacklisted", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        *_timestamps(),
        sa.CheckConstraint(
            "no_show_count >= 0 AND no_show_count <= 3",
            name="ck_patients_no_show_range",
        ),
        sa.UniqueConstraint("national_id", name="uq_patients_national_id"),
        sa.PrimaryKeyConstraint("id", name="pk_patients"),
    )
    op.create_index("ix_patients_line_user_id", "patients", ["line_user_id"], unique=True)
    op.create_index("ix_patients_is_blacklisted", "patients", ["is_blacklisted"])

    op.create_table(
        "blacklists",
        _id_column(),
        sa.Column("patient_id", postgresql.UUID(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("created_by", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["patient_id"],
            ["patients.id"],
            name="fk_blacklists_patient_id_patients",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("patient_id", name="uq_blacklists_patient_id"),
        sa.PrimaryKeyConstraint("id", name="pk_blacklists"),
    )

    # Appointments
    op.create_table(
        "appointments",
        _id_column(),
        sa.Column("patient_id", postgresql.UUID(), nullable=False),
        sa.Column("doctor_id", postgresql.UUID(), nullable=False),
        sa.Column("treatment_type_id", postgresql.UUID(), nullable=False),
        sa.Column("time_slot_id", postgresql.UUID(), nullable=False),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("status", sa.Text(), server_default="booked", nullable=False),
        sa.Column("cancelled_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_by", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('booked', 'checked_in', 'completed', 'cancelled', 'no_show')",
            name="ck_appointments_status_values",
        ),
        sa.ForeignKeyConstraint(
            ["patient_id"], ["patients.id"], name="fk_appointments_patient_id_patients"
        ),
        sa.ForeignKeyConstraint(
            ["doctor_id"], ["doctors.id"], name="fk_appointments_doctor_id_doctors"
        ),
        sa.ForeignKeyConstraint(
            ["treatment_type_id"],
            ["treatment_types.id"],
            name="fk_appointments_treatment_type_id_treatment_types",
        ),
        sa.ForeignKeyConstraint(
            ["time_slot_id"], ["time_slots.id"], name="fk_appointments_time_slot_id_time_slots"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_appointments"),
    )
    op.create_index("ix_appointments_patient_id", "appointments", ["patient_id"])
    op.create_index("ix_appointments_doctor_id", "appointments", ["doctor_id"])
    op.create_index("ix_appointments_time_slot_id", "appointments", ["time_slot_id"])
    op.create_index("ix_appointments_appointment_date", "appointments", ["appointment_date"])
    op.create_index(
        "uq_appointments_active_patient_date",
        "appointments",
        ["patient_id", "appointment_date"],
        unique=True,
        postgresql_where=sa.text("status IN ('booked', 'checked_in')"),
    )

    # Audit trail
    op.create_table(
        "operation_logs",
        _id_column(),
        sa.Column("actor_id", sa.Text(), nullable=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("target_type", sa.Text(), nullable=False),
        sa.Column("target_id", sa.Text(), nullable=False),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_operation_logs"),
    )
    op.create_index("ix_operation_logs_action", "operation_logs", ["action"])


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table("operation_logs")
    op.drop_index("uq_appointments_active_patient_date", table_name="appointments")
    op.drop_table("appointments")
    op.drop_table("blacklists")
    op.drop_table("patients")
    op.drop_table("time_slots")
    op.drop_table("schedules")
    op.drop_table("doctor_treatments")
    op.drop_table("treatment_types")
    op.drop_table("doctors")
