"""Lifecycle sweeper: batch status jobs and deactivation cascades."""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, exists, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.config import settings
from clinic_booking.core.clock import clinic_today, ensure_aware, slot_instant, utcnow
from clinic_booking.core.exceptions import NotFoundException
from clinic_booking.core.redis_client import CacheManager
from clinic_booking.core.state_machine import ActorKind, AppointmentStatus, validate_transition
from clinic_booking.models.appointments import appointments
from clinic_booking.models.doctors import doctors, treatment_types
from clinic_booking.models.patients import blacklists, patients
from clinic_booking.models.schedules import time_slots
from clinic_booking.schemas.auth import Actor
from clinic_booking.schemas.system import (
    AutoUpdateStatusResponse,
    BlacklistCheckResponse,
    BlacklistedPatient,
    NoShowUpdate,
)
from clinic_booking.services.audit_service import record_operation
from clinic_booking.services.capacity_ledger import CapacityLedger
from clinic_booking.services.notification_service import NotificationKind, NotificationTarget
from clinic_booking.services.treatment_catalog import TreatmentCatalog

logger = structlog.get_logger(__name__)


@dataclass
class CascadeResult:
    """Outcome of a deactivation cascade."""

    entity_id: UUID
    cancelled_appointment_ids: list[UUID] = field(default_factory=list)
    targets: list[NotificationTarget] = field(default_factory=list)


class LifecycleSweeper:
    """Jobs that move appointments and patients along without a request."""

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize sweeper with database session and optional cache manager."""
        self.db = db
        self.ledger = CapacityLedger(db)
        self.catalog = TreatmentCatalog(db, cache_manager)

    async def _lock_appointment(
        self,
        appointment_id: UUID,
        *conditions: Any,
    ) -> dict[str, Any] | None:
        """
        Lock one appointment row and re-read it with its slot and names.

        Returns None when the row no longer matches ``conditions``.
        """
        stmt = (
            select(
                appointments.c.id,
                appointments.c.status,
                appointments.c.time_slot_id,
                appointments.c.treatment_type_id,
                appointments.c.appointment_date,
                time_slots.c.end_time,
                patients.c.line_user_id,
                doctors.c.name.label("doctor_name"),
                treatment_types.c.name.label("treatment_name"),
                treatment_types.c.duration_minutes,
            )
            .join(time_slots, appointments.c.time_slot_id == time_slots.c.id)
            .join(patients, appointments.c.patient_id == patients.c.id)
            .join(doctors, appointments.c.doctor_id == doctors.c.id)
            .join(treatment_types, appointments.c.treatment_type_id == treatment_types.c.id)
            .where(and_(appointments.c.id == appointment_id, *conditions))
            .with_for_update(of=appointments)
        )
        row = (await self.db.execute(stmt)).mappings().first()
        return dict(row) if row else None

    async def mark_no_shows(self, current_time: datetime | None = None) -> AutoUpdateStatusResponse:
        """
        Mark booked appointments whose slot has ended as no-show.

        Each appointment is handled in its own short transaction, so a rerun
        only picks up what is still booked.

        Args:
            current_time: Reference instant (defaults to now)

        Returns:
            Processed count and the appointments that changed
        """
        now = ensure_aware(current_time) if current_time is not None else utcnow()
        today = clinic_today(now)

        result = await self.db.execute(
            select(
                appointments.c.id,
                appointments.c.patient_id,
                appointments.c.appointment_date,
                time_slots.c.end_time,
            )
            .join(time_slots, appointments.c.time_slot_id == time_slots.c.id)
            .where(
                and_(
                    appointments.c.status == AppointmentStatus.BOOKED.value,
                    appointments.c.appointment_date <= today,
                )
            )
            .order_by(appointments.c.appointment_date, time_slots.c.end_time)
        )
        # Ends strictly before now
        overdue = [
            row
            for row in result.mappings().all()
            if slot_instant(row["appointment_date"], row["end_time"]) < now
        ]
        await self.db.commit()

        updates: list[NoShowUpdate] = []
        for row in overdue:
            try:
                locked = await self.db.execute(
                    select(patients.c.no_show_count)
                    .where(patients.c.id == row["patient_id"])
                    .with_for_update()
                )
                count = locked.scalar_one()

                held = await self._lock_appointment(
                    row["id"], appointments.c.status == AppointmentStatus.BOOKED.value
                )
                if held is None or slot_instant(held["appointment_date"], held["end_time"]) >= now:
                    await self.db.rollback()
                    continue
                validate_transition(held["status"], AppointmentStatus.NO_SHOW, ActorKind.SYSTEM)

                changed = await self.db.execute(
                    update(appointments)
                    .where(
                        and_(
                            appointments.c.id == row["id"],
                            appointments.c.status == AppointmentStatus.BOOKED.value,
                        )
                    )
                    .values(status=AppointmentStatus.NO_SHOW.value, updated_at=datetime.now(UTC))
                )
                if changed.rowcount == 0:
                    await self.db.rollback()
                    continue

                new_count = min(count + 1, settings.max_no_show_count)
                await self.db.execute(
                    update(patients)
                    .where(patients.c.id == row["patient_id"])
                    .values(no_show_count=new_count, updated_at=datetime.now(UTC))
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

            logger.info(
                "no_show_marked",
                appointment_id=str(row["id"]),
                patient_id=str(row["patient_id"]),
                no_show_count=new_count,
            )
            updates.append(
                NoShowUpdate(
                    appointment_id=row["id"],
                    patient_id=row["patient_id"],
                    new_no_show_count=new_count,
                )
            )

        logger.info("no_show_sweep_finished", candidates=len(overdue), updated=len(updates))
        return AutoUpdateStatusResponse(processed_count=len(updates), updated_appointments=updates)

    async def blacklist_check(self) -> BlacklistCheckResponse:
        """
        Blacklist every patient who reached the no-show limit.

        Patients that already have a blacklist record are left alone, so the
        check can run any number of times.
        """
        limit = settings.max_no_show_count
        result = await self.db.execute(
            select(patients.c.id).where(
                and_(
                    patients.c.no_show_count >= limit,
                    patients.c.is_blacklisted.is_(False),
                )
            )
        )
        candidates = list(result.scalars().all())
        await self.db.commit()

        blacklisted: list[BlacklistedPatient] = []
        for patient_id in candidates:
            try:
                locked = await self.db.execute(
                    select(patients.c.no_show_count, patients.c.is_blacklisted)
                    .where(patients.c.id == patient_id)
                    .with_for_update()
                )
                patient = locked.mappings().one()
                if patient["is_blacklisted"] or patient["no_show_count"] < limit:
                    await self.db.rollback()
                    continue

                await self.db.execute(
                    update(patients)
                    .where(patients.c.id == patient_id)
                    .values(is_blacklisted=True, updated_at=datetime.now(UTC))
                )

                listed = await self.db.execute(
                    select(exists().where(blacklists.c.patient_id == patient_id))
                )
                if not listed.scalar():
                    await self.db.execute(
                        insert(blacklists).values(
                            patient_id=patient_id,
                            reason=f"No-show count reached {patient['no_show_count']}",
                            created_by=None,
                        )
                    )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

            logger.info(
                "patient_blacklisted",
                patient_id=str(patient_id),
                no_show_count=patient["no_show_count"],
            )
            blacklisted.append(
                BlacklistedPatient(patient_id=patient_id, no_show_count=patient["no_show_count"])
            )

        return BlacklistCheckResponse(
            processed_count=len(blacklisted),
            blacklisted_patients=blacklisted,
        )

    async def _cascade_cancel(
        self,
        condition: Any,
        actor: Actor,
        reason: str,
        kind: NotificationKind,
        today: date,
        result: CascadeResult,
    ) -> None:
        """Cancel future booked appointments matching ``condition``; caller commits."""
        matching = (
            condition,
            appointments.c.status == AppointmentStatus.BOOKED.value,
            appointments.c.appointment_date >= today,
        )
        candidates = await self.db.execute(
            select(appointments.c.id).where(and_(*matching)).order_by(appointments.c.id)
        )

        for appointment_id in candidates.scalars().all():
            # Re-read under lock: the booking may have moved or ended meanwhile
            row = await self._lock_appointment(appointment_id, *matching)
            if row is None:
                continue
            validate_transition(row["status"], AppointmentStatus.CANCELLED, ActorKind.SYSTEM)

            slot = await self.ledger.lock_slot(row["time_slot_id"])
            changed = await self.db.execute(
                update(appointments)
                .where(
                    and_(
                        appointments.c.id == row["id"],
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
            if changed.rowcount == 0:
                continue

            await self.ledger.release(slot, row["duration_minutes"])
            result.cancelled_appointment_ids.append(row["id"])
            if row["line_user_id"]:
                result.targets.append(
                    NotificationTarget(
                        line_user_id=row["line_user_id"],
                        kind=kind,
                        context={
                            "date": row["appointment_date"].isoformat(),
                            "time": slot["start_time"].strftime("%H:%M"),
                            "doctor": row["doctor_name"],
                            "treatment": row["treatment_name"],
                        },
                    )
                )

    async def deactivate_doctor(
        self,
        doctor_id: UUID,
        actor: Actor,
        today: date | None = None,
    ) -> CascadeResult:
        """
        Disable a doctor and cancel their future booked appointments.

        Args:
            doctor_id: Doctor to disable
            actor: Administrator performing the change
            today: Clinic date the cascade starts from (defaults to today)

        Returns:
            Cancelled appointment ids and the notifications to send

        Raises:
            NotFoundException: If the doctor does not exist
        """
        today = today or clinic_today()
        result = CascadeResult(entity_id=doctor_id)

        try:
            changed = await self.db.execute(
                update(doctors)
                .where(doctors.c.id == doctor_id)
                .values(is_active=False, updated_at=datetime.now(UTC))
            )
            if changed.rowcount == 0:
                raise NotFoundException("Doctor not found")

            await self._cascade_cancel(
                appointments.c.doctor_id == doctor_id,
                actor,
                "Doctor is no longer available",
                NotificationKind.DOCTOR_DEACTIVATED,
                today,
                result,
            )
            await record_operation(
                self.db,
                actor.id,
                "DISABLE_DOCTOR",
                "doctor",
                doctor_id,
                {"cancelled_appointments": len(result.cancelled_appointment_ids)},
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "doctor_deactivated",
            doctor_id=str(doctor_id),
            cancelled=len(result.cancelled_appointment_ids),
            actor_id=actor.id,
        )
        return result

    async def deactivate_treatment_type(
        self,
        treatment_type_id: UUID,
        actor: Actor,
        today: date | None = None,
    ) -> CascadeResult:
        """
        Disable a treatment type and cancel its future booked appointments.

        Raises:
            NotFoundException: If the treatment type does not exist
        """
        today = today or clinic_today()
        result = CascadeResult(entity_id=treatment_type_id)

        try:
            changed = await self.db.execute(
                update(treatment_types)
                .where(treatment_types.c.id == treatment_type_id)
                .values(is_active=False, updated_at=datetime.now(UTC))
            )
            if changed.rowcount == 0:
                raise NotFoundException("Treatment type not found")

            await self._cascade_cancel(
                appointments.c.treatment_type_id == treatment_type_id,
                actor,
                "Treatment is no longer offered",
                NotificationKind.TREATMENT_DEACTIVATED,
                today,
                result,
            )
            await record_operation(
                self.db,
                actor.id,
                "DISABLE_TREATMENT_TYPE",
                "treatment_type",
                treatment_type_id,
                {"cancelled_appointments": len(result.cancelled_appointment_ids)},
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        self.catalog.invalidate(treatment_type_id)
        logger.info(
            "treatment_type_deactivated",
            treatment_type_id=str(treatment_type_id),
            cancelled=len(result.cancelled_appointment_ids),
            actor_id=actor.id,
        )
        return result
