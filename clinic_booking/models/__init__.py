"""Database models."""

from clinic_booking.models.appointments import appointments
from clinic_booking.models.base import metadata
from clinic_booking.models.doctors import doctor_treatments, doctors, treatment_types
from clinic_booking.models.operation_logs import operation_logs
from clinic_booking.models.patients import blacklists, patients
from clinic_booking.models.schedules import schedules, time_slots

__all__ = [
    "appointments",
    "blacklists",
    "doctor_treatments",
    "doctors",
    "metadata",
    "operation_logs",
    "patients",
    "schedules",
    "time_slots",
    "treatment_types",
]
