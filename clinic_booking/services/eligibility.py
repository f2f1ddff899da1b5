"""Pre-transaction booking eligibility checks."""

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import and_, exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.config import settings
from clinic_booking.core.clock import booking_window
from clinic_booking.core.exceptions import (
    BadRequestException,
    BlacklistedException,
    DateTooFarException,
    DuplicateDailyBookingException,
    PastDateException,
    TreatmentNotOfferedException,
)
from clinic_booking.core.state_machine import ACTIVE_STATUSES
from clinic_booking.models.appointments import appointments
from clinic_booking.models.doctors import doctor_treatments, doctors
from clinic_booking.models.patients import blacklists


class EligibilityGuard:
    """
    Rule checks evaluated before the reservation transaction.

    These reads are advisory. The daily-duplicate check is repeated under
    the patient's row lock inside the transaction.
    """

    def __init__(self, db: AsyncSession):
        """Initialize guard with database session."""
        self.db = db

    async def check_blacklist(self, patient: dict[str, Any]) -> None:
        """
        Reject blacklisted patients.

        Raises:
            BlacklistedException: If the flag is set or a blacklist record exists
        """
        if patient["is_blacklisted"]:
            raise BlacklistedException()

        result = await self.db.execute(
            select(exists().where(blacklists.c.patient_id == patient["id"]))
        )
        if result.scalar():
            raise BlacklistedException()

    @staticmethod
    def check_booking_window(appointment_date: date, today: date) -> None:
        """
        Ensure the date lies within today .. today + window (inclusive).

        Raises:
            PastDateException: Date before today
            DateTooFarException: Date after the last bookable day
        """
        first, last = booking_window(today)
        if appointment_date < first:
            raise PastDateException()
        if appointment_date > last:
            raise DateTooFarException(
                f"Appointments can be booked at most {settings.booking_window_days} days ahead"
            )

    async def check_daily_duplicate(
        self,
        patient_id: UUID,
        appointment_date: date,
        exclude_appointment_id: UUID | None = None,
    ) -> None:
        """
        Ensure the patient has no other active appointment that day.

        Raises:
            DuplicateDailyBookingException: If one exists
        """
        conditions = [
            appointments.c.patient_id == patient_id,
            appointments.c.appointment_date == appointment_date,
            appointments.c.status.in_([status.value for status in ACTIVE_STATUSES]),
        ]
        if exclude_appointment_id is not None:
            conditions.append(appointments.c.id != exclude_appointment_id)

        result = await self.db.execute(select(exists().where(and_(*conditions))))
        if result.scalar():
            raise DuplicateDailyBookingException()

    async def check_treatment_offered(self, doctor_id: UUID, treatment_type_id: UUID) -> None:
        """
        Ensure the doctor offers the treatment.

        A doctor without any offering rows is treated as offering every
        treatment. Skipped when offering enforcement is switched off.

        Raises:
            TreatmentNotOfferedException: If the doctor does not offer it
        """
        if not settings.enforce_treatment_offering:
            return

        result = await self.db.execute(
            select(doctor_treatments.c.treatment_type_id).where(
                doctor_treatments.c.doctor_id == doctor_id
            )
        )
        offered = set(result.scalars().all())
        if offered and treatment_type_id not in offered:
            raise TreatmentNotOfferedException()

    async def check_bookable(self, slot: dict[str, Any], treatment: dict[str, Any]) -> None:
        """
        Ensure the slot's schedule, doctor and the treatment are all open.

        Raises:
            BadRequestException: If any of them is suspended or inactive
        """
        if not treatment["is_active"]:
            raise BadRequestException("Treatment type is not available")
        if not slot["schedule_available"]:
            raise BadRequestException("The doctor is not seeing patients on this date")

        result = await self.db.execute(
            select(doctors.c.is_active).where(doctors.c.id == slot["doctor_id"])
        )
        if not result.scalar():
            raise BadRequestException("Doctor is not available")

    async def run_all(
        self,
        patient: dict[str, Any],
        slot: dict[str, Any],
        treatment: dict[str, Any],
        today: date,
        exclude_appointment_id: UUID | None = None,
    ) -> None:
        """Evaluate every booking rule, failing on the first violation."""
        await self.check_blacklist(patient)
        self.check_booking_window(slot["date"], today)
        await self.check_bookable(slot, treatment)
        await self.check_treatment_offered(slot["doctor_id"], treatment["id"])
        await self.check_daily_duplicate(
            patient["id"],
            slot["date"],
            exclude_appointment_id=exclude_appointment_id,
        )
