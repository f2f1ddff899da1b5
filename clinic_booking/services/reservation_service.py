"""Reservation protocol: create, modify and cancel appointments."""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.config import settings
from clinic_booking.core.clock import clinic_today, ensure_aware, slot_instant, utcnow
from clinic_booking.core.exceptions import (
    BadRequestException,
    ConflictException,
    DuplicateDailyBookingException,
    ForbiddenException,
    InsufficientCapacityException,
    InvalidTransitionException,
    NotFoundException,
    NotModifiableException,
    PastDateException,
    TooLateToModifyException,
)
from clinic_booking.core.redis_client import CacheManager
from clinic_booking.core.state_machine import AppointmentStatus, validate_transition
from clinic_booking.models.appointments import appointments
from clinic_booking.models.doctors import doctors, treatment_types
from clinic_booking.models.patients import patients
from clinic_booking.models.schedules import time_slots
from clinic_booking.schemas.admin import AppointmentStatusUpdate
from clinic_booking.schemas.appointments import (
    AlternativeSlot,
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentUpdate,
)
from clinic_booking.schemas.auth import Actor
from clinic_booking.services.audit_service import record_operation
from clinic_booking.services.capacity_ledger import CapacityLedger
from clinic_booking.services.eligibility import EligibilityGuard
from clinic_booking.services.notification_service import NotificationKind, NotificationService
from clinic_booking.services.treatment_catalog import TreatmentCatalog

logger = structlog.get_logger(__name__)

PATIENT_CANCEL_REASON = "Cancelled by patient"
ADMIN_CANCEL_REASON = "Cancelled by clinic"


class ReservationService:
    """
    Service for booking, moving and cancelling appointments.

    Every ledger mutation happens inside one transaction on ``db`` with the
    affected time slot rows locked; any failure rolls the whole transaction
    back before the exception leaves the service.
    """

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize service with database session and optional cache manager."""
        self.db = db
        self.ledger = CapacityLedger(db)
        self.catalog = TreatmentCatalog(db, cache_manager)
        self.guard = EligibilityGuard(db)

    # Lookups

    async def _get_patient(
        self,
        patient_id: UUID | None = None,
        line_user_id: str | None = None,
    ) -> dict[str, Any]:
        if patient_id is not None:
            condition = patients.c.id == patient_id
        elif line_user_id is not None:
            condition = patients.c.line_user_id == line_user_id
        else:
            raise BadRequestException("Patient id or LINE user id is required")

        result = await self.db.execute(select(patients).where(condition))
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Patient not found")
        return dict(row)

    async def _lock_patient(self, patient_id: UUID) -> None:
        # Serialises concurrent bookings of the same patient
        await self.db.execute(
            select(patients.c.id).where(patients.c.id == patient_id).with_for_update()
        )

    async def _resolve_patient(self, data: AppointmentCreate, actor: Actor) -> dict[str, Any]:
        if actor.is_admin:
            return await self._get_patient(data.patient_id, data.line_user_id)

        if not actor.line_user_id:
            raise ForbiddenException("Patient identity is missing a LINE user id")
        if data.line_user_id and data.line_user_id != actor.line_user_id:
            raise ForbiddenException("Patients can only book for themselves")

        patient = await self._get_patient(line_user_id=actor.line_user_id)
        if data.patient_id and data.patient_id != patient["id"]:
            raise ForbiddenException("Patients can only book for themselves")
        return patient

    async def _get_appointment(self, appointment_id: UUID) -> dict[str, Any]:
        stmt = (
            select(
                appointments,
                time_slots.c.start_time,
                time_slots.c.end_time,
                patients.c.line_user_id,
            )
            .join(time_slots, appointments.c.time_slot_id == time_slots.c.id)
            .join(patients, appointments.c.patient_id == patients.c.id)
            .where(appointments.c.id == appointment_id)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Appointment not found")
        return dict(row)

    async def _lock_appointment(self, appointment_id: UUID) -> dict[str, Any]:
        """
        Lock an appointment row and return its committed state.

        Slot and treatment ids read before this call may be stale; ledger
        writes must use the values returned here.
        """
        result = await self.db.execute(
            select(appointments).where(appointments.c.id == appointment_id).with_for_update()
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Appointment not found")
        return dict(row)

    @staticmethod
    def _ensure_access(appointment: dict[str, Any], actor: Actor) -> None:
        if actor.is_admin:
            return
        if not actor.line_user_id or appointment["line_user_id"] != actor.line_user_id:
            raise ForbiddenException("Access denied to this appointment")

    async def _load_response(
        self,
        appointment_id: UUID,
        notification_sent: bool | None = None,
    ) -> AppointmentResponse:
        appointment = await self._get_appointment(appointment_id)
        response = AppointmentResponse.model_validate(appointment)
        response.notification_sent = notification_sent
        return response

    async def _notify(self, appointment_id: UUID, kind: NotificationKind) -> bool:
        """Send the patient a notification about one appointment."""
        stmt = (
            select(
                patients.c.line_user_id,
                appointments.c.appointment_date,
                time_slots.c.start_time,
                doctors.c.name.label("doctor_name"),
                treatment_types.c.name.label("treatment_name"),
            )
            .join(patients, appointments.c.patient_id == patients.c.id)
            .join(time_slots, appointments.c.time_slot_id == time_slots.c.id)
            .join(doctors, appointments.c.doctor_id == doctors.c.id)
            .join(treatment_types, appointments.c.treatment_type_id == treatment_types.c.id)
            .where(appointments.c.id == appointment_id)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            return False

        return await NotificationService.notify(
            row["line_user_id"],
            kind,
            {
                "date": row["appointment_date"].isoformat(),
                "time": row["start_time"].strftime("%H:%M"),
                "doctor": row["doctor_name"],
                "treatment": row["treatment_name"],
            },
        )

    async def _suggest_alternatives(
        self,
        exc: InsufficientCapacityException,
        slot: dict[str, Any],
        minutes: int,
    ) -> None:
        candidates = await self.ledger.find_alternative_slots(slot, minutes)
        exc.alternative_slots = [
            AlternativeSlot.model_validate(candidate).model_dump() for candidate in candidates
        ]

    # Operations

    async def create_appointment(
        self,
        data: AppointmentCreate,
        actor: Actor,
        now: datetime | None = None,
    ) -> AppointmentResponse:
        """
        Book a treatment into a time slot.

        Args:
            data: Booking request
            actor: Authenticated patient or admin
            now: Reference instant (defaults to the current time)

        Returns:
            Created appointment with ``notification_sent``

        Raises:
            NotFoundException: Unknown patient, slot or treatment
            BlacklistedException: Patient is blacklisted
            PastDateException / DateTooFarException: Date outside the window
            DuplicateDailyBookingException: Patient already booked that day
            InsufficientCapacityException: Slot lacks minutes (with alternatives)
        """
        today = clinic_today(now)
        patient = await self._resolve_patient(data, actor)
        treatment = await self.catalog.get_treatment(data.treatment_type_id)
        slot = await self.ledger.get_slot(data.time_slot_id)

        if data.doctor_id is not None and data.doctor_id != slot["doctor_id"]:
            raise BadRequestException("Time slot does not belong to the selected doctor")
        if data.appointment_date is not None and data.appointment_date != slot["date"]:
            raise BadRequestException("Time slot is not on the selected date")

        await self.guard.run_all(patient, slot, treatment, today)

        minutes = treatment["duration_minutes"]
        try:
            await self._lock_patient(patient["id"])
            await self.guard.check_daily_duplicate(patient["id"], slot["date"])

            locked = await self.ledger.lock_slot(slot["id"])
            await self.ledger.reserve(locked, minutes)

            result = await self.db.execute(
                insert(appointments)
                .values(
                    patient_id=patient["id"],
                    doctor_id=locked["doctor_id"],
                    treatment_type_id=treatment["id"],
                    time_slot_id=locked["id"],
                    appointment_date=locked["date"],
                    status=AppointmentStatus.BOOKED.value,
                )
                .returning(appointments.c.id)
            )
            appointment_id = result.scalar_one()
            await self.db.commit()
        except InsufficientCapacityException as exc:
            await self.db.rollback()
            await self._suggest_alternatives(exc, slot, minutes)
            raise
        except IntegrityError as e:
            await self.db.rollback()
            logger.info("appointment_insert_conflict", patient_id=str(patient["id"]), error=str(e))
            raise DuplicateDailyBookingException() from e
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "appointment_created",
            appointment_id=str(appointment_id),
            patient_id=str(patient["id"]),
            time_slot_id=str(slot["id"]),
            minutes=minutes,
        )

        sent = await self._notify(appointment_id, NotificationKind.BOOKING_CREATED)
        return await self._load_response(appointment_id, notification_sent=sent)

    async def modify_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentUpdate,
        actor: Actor,
        now: datetime | None = None,
    ) -> AppointmentResponse:
        """
        Move a booked appointment to another slot and/or treatment.

        The old minutes are released and the new minutes reserved in one
        transaction; if the reservation fails the release is undone too.

        Raises:
            NotFoundException: Unknown appointment, slot or treatment
            NotModifiableException: Appointment is not booked
            TooLateToModifyException: Slot starts within the cutoff
            InsufficientCapacityException: New slot lacks minutes
            ConflictException: Another request moved the appointment first
        """
        now = ensure_aware(now) if now is not None else utcnow()
        today = clinic_today(now)

        current = await self._get_appointment(appointment_id)
        self._ensure_access(current, actor)

        if current["status"] != AppointmentStatus.BOOKED.value:
            raise NotModifiableException()

        starts_at = slot_instant(current["appointment_date"], current["start_time"])
        if starts_at - now <= timedelta(hours=settings.modify_cutoff_hours):
            raise TooLateToModifyException(
                f"Appointments cannot be modified within {settings.modify_cutoff_hours} "
                "hours of the slot start"
            )

        old_slot_id = current["time_slot_id"]
        new_slot_id = data.time_slot_id or old_slot_id
        old_treatment = await self.catalog.get_treatment(current["treatment_type_id"])
        new_treatment = old_treatment
        if data.treatment_type_id and data.treatment_type_id != old_treatment["id"]:
            new_treatment = await self.catalog.get_treatment(data.treatment_type_id)

        new_slot = await self.ledger.get_slot(new_slot_id)
        date_changed = new_slot["date"] != current["appointment_date"]

        if new_slot_id != old_slot_id:
            self.guard.check_booking_window(new_slot["date"], today)
            if slot_instant(new_slot["date"], new_slot["start_time"]) <= now:
                raise PastDateException("Selected time slot has already started")
        await self.guard.check_bookable(new_slot, new_treatment)
        await self.guard.check_treatment_offered(new_slot["doctor_id"], new_treatment["id"])
        if date_changed:
            await self.guard.check_daily_duplicate(
                current["patient_id"], new_slot["date"], exclude_appointment_id=appointment_id
            )

        new_minutes = new_treatment["duration_minutes"]
        try:
            await self._lock_patient(current["patient_id"])
            held = await self._lock_appointment(appointment_id)
            if held["status"] != AppointmentStatus.BOOKED.value:
                raise NotModifiableException()
            if (
                held["time_slot_id"] != old_slot_id
                or held["treatment_type_id"] != old_treatment["id"]
            ):
                raise ConflictException("Appointment was changed by another request")

            if date_changed:
                await self.guard.check_daily_duplicate(
                    current["patient_id"],
                    new_slot["date"],
                    exclude_appointment_id=appointment_id,
                )

            locked = await self.ledger.lock_slots([old_slot_id, new_slot_id])
            await self.ledger.release(locked[old_slot_id], old_treatment["duration_minutes"])
            # Same slot: the snapshot already reflects the release
            await self.ledger.reserve(locked[new_slot_id], new_minutes)

            result = await self.db.execute(
                update(appointments)
                .where(
                    and_(
                        appointments.c.id == appointment_id,
                        appointments.c.status == AppointmentStatus.BOOKED.value,
                    )
                )
                .values(
                    time_slot_id=new_slot_id,
                    treatment_type_id=new_treatment["id"],
                    doctor_id=locked[new_slot_id]["doctor_id"],
                    appointment_date=locked[new_slot_id]["date"],
                    updated_at=datetime.now(UTC),
                )
            )
            if result.rowcount == 0:
                raise NotModifiableException()

            await self.db.commit()
        except InsufficientCapacityException as exc:
            await self.db.rollback()
            await self._suggest_alternatives(exc, new_slot, new_minutes)
            raise
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateDailyBookingException() from e
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "appointment_modified",
            appointment_id=str(appointment_id),
            old_time_slot_id=str(old_slot_id),
            new_time_slot_id=str(new_slot_id),
            minutes=new_minutes,
        )

        sent = await self._notify(appointment_id, NotificationKind.BOOKING_MODIFIED)
        return await self._load_response(appointment_id, notification_sent=sent)

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        actor: Actor,
        reason: str | None = None,
    ) -> AppointmentResponse:
        """
        Cancel a booked appointment and return its minutes to the slot.

        Raises:
            NotFoundException: Unknown appointment
            ForbiddenException: Patient cancelling someone else's booking
            InvalidTransitionException: Appointment is not booked
        """
        current = await self._get_appointment(appointment_id)
        self._ensure_access(current, actor)
        validate_transition(current["status"], AppointmentStatus.CANCELLED, actor.kind)

        if reason is None:
            reason = ADMIN_CANCEL_REASON if actor.is_admin else PATIENT_CANCEL_REASON

        try:
            # A concurrent modify may have moved the booking since the read above
            held = await self._lock_appointment(appointment_id)
            validate_transition(held["status"], AppointmentStatus.CANCELLED, actor.kind)
            minutes = await self.catalog.duration_minutes(held["treatment_type_id"])
            slot = await self.ledger.lock_slot(held["time_slot_id"])

            result = await self.db.execute(
                update(appointments)
                .where(
                    and_(
                        appointments.c.id == appointment_id,
                        appointments.c.status == AppointmentStatus.BOOKED.value,
                    )
                )
                .values(
                    status=AppointmentStatus.CANCELLED.value,
                    cancelled_by=actor.id,
                    cancelled_reason=reason,
                    updated_at=datetime.now(UTC),
                )
            )
            if result.rowcount == 0:
                raise InvalidTransitionException("Appointment is no longer booked")

            await self.ledger.release(slot, minutes)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "appointment_cancelled",
            appointment_id=str(appointment_id),
            cancelled_by=actor.id,
            minutes=minutes,
        )

        sent = await self._notify(appointment_id, NotificationKind.BOOKING_CANCELLED)
        return await self._load_response(appointment_id, notification_sent=sent)

    async def update_status(
        self,
        appointment_id: UUID,
        data: AppointmentStatusUpdate,
        actor: Actor,
    ) -> AppointmentResponse:
        """
        Apply an administrative status change (check-in, completion, cancel).

        Raises:
            NotFoundException: Unknown appointment
            InvalidTransitionException: Lifecycle forbids the change
        """
        current = await self._get_appointment(appointment_id)
        validate_transition(current["status"], data.status, actor.kind)

        if data.status == AppointmentStatus.CANCELLED:
            return await self.cancel_appointment(appointment_id, actor, data.cancelled_reason)

        try:
            result = await self.db.execute(
                update(appointments)
                .where(
                    and_(
                        appointments.c.id == appointment_id,
                        appointments.c.status == current["status"],
                    )
                )
                .values(status=data.status.value, updated_at=datetime.now(UTC))
            )
            if result.rowcount == 0:
                raise InvalidTransitionException("Appointment status changed concurrently")

            await record_operation(
                self.db,
                actor.id,
                "UPDATE_APPOINTMENT_STATUS",
                "appointment",
                appointment_id,
                {"previous_status": current["status"], "new_status": data.status.value},
            )
            await self.db.commit()
        except IntegrityError as e:
            # late check-in collides with another active booking that day
            await self.db.rollback()
            raise DuplicateDailyBookingException() from e
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "appointment_status_updated",
            appointment_id=str(appointment_id),
            previous_status=current["status"],
            new_status=data.status.value,
            actor_id=actor.id,
        )
        return await self._load_response(appointment_id)

    async def get_appointment(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """Get one appointment the actor may see."""
        appointment = await self._get_appointment(appointment_id)
        self._ensure_access(appointment, actor)
        return AppointmentResponse.model_validate(appointment)

    async def list_appointments(
        self,
        actor: Actor,
        patient_id: UUID | None = None,
    ) -> AppointmentListResponse:
        """
        List appointments of the calling patient, or of ``patient_id`` for admins.
        """
        if actor.is_admin:
            if patient_id is None:
                raise BadRequestException("patient_id is required")
            condition = appointments.c.patient_id == patient_id
        else:
            if not actor.line_user_id:
                return AppointmentListResponse(total=0, items=[])
            condition = patients.c.line_user_id == actor.line_user_id

        stmt = (
            select(
                appointments,
                time_slots.c.start_time,
                time_slots.c.end_time,
            )
            .join(time_slots, appointments.c.time_slot_id == time_slots.c.id)
            .join(patients, appointments.c.patient_id == patients.c.id)
            .where(condition)
            .order_by(appointments.c.appointment_date.desc(), time_slots.c.start_time.desc())
        )
        result = await self.db.execute(stmt)
        items = [AppointmentResponse.model_validate(dict(row)) for row in result.mappings().all()]
        return AppointmentListResponse(total=len(items), items=items)
