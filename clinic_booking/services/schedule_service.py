"""Schedule availability management."""

from datetime import UTC, date, datetime
from uuid import UUID

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.core.clock import clinic_today
from clinic_booking.core.exceptions import BadRequestException, NotFoundException
from clinic_booking.core.state_machine import AppointmentStatus
from clinic_booking.models.appointments import appointments
from clinic_booking.models.doctors import doctors
from clinic_booking.models.patients import patients
from clinic_booking.models.schedules import schedules, time_slots
from clinic_booking.schemas.auth import Actor
from clinic_booking.services.audit_service import record_operation
from clinic_booking.services.notification_service import NotificationKind, NotificationTarget

logger = structlog.get_logger(__name__)


class ScheduleService:
    """Service for suspending and restoring a doctor's clinic day."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def _affected_targets(self, schedule: dict) -> list[NotificationTarget]:
        stmt = (
            select(
                patients.c.line_user_id,
                time_slots.c.start_time,
                doctors.c.name.label("doctor_name"),
            )
            .select_from(appointments)
            .join(time_slots, appointments.c.time_slot_id == time_slots.c.id)
            .join(patients, appointments.c.patient_id == patients.c.id)
            .join(doctors, appointments.c.doctor_id == doctors.c.id)
            .where(
                and_(
                    time_slots.c.schedule_id == schedule["id"],
                    appointments.c.status == AppointmentStatus.BOOKED.value,
                )
            )
            .order_by(time_slots.c.start_time)
        )
        result = await self.db.execute(stmt)
        return [
            NotificationTarget(
                line_user_id=row["line_user_id"],
                kind=NotificationKind.SCHEDULE_SUSPENDED,
                context={
                    "date": schedule["date"].isoformat(),
                    "time": row["start_time"].strftime("%H:%M"),
                    "doctor": row["doctor_name"],
                },
            )
            for row in result.mappings().all()
            if row["line_user_id"]
        ]

    async def set_availability(
        self,
        schedule_id: UUID,
        is_available: bool,
        actor: Actor,
        today: date | None = None,
    ) -> tuple[dict, list[NotificationTarget]]:
        """
        Suspend or restore a schedule.

        Suspending keeps existing appointments but returns a notification
        target for every booked patient. Only future dates can be restored.

        Args:
            schedule_id: Schedule to change
            is_available: New availability
            actor: Administrator performing the change
            today: Clinic date used for the restore rule

        Returns:
            Updated schedule and the notifications to send

        Raises:
            NotFoundException: If the schedule does not exist
            BadRequestException: If restoring today or a past date
        """
        today = today or clinic_today()
        targets: list[NotificationTarget] = []

        try:
            result = await self.db.execute(
                select(schedules).where(schedules.c.id == schedule_id).with_for_update()
            )
            row = result.mappings().first()
            if not row:
                raise NotFoundException("Schedule not found")
            schedule = dict(row)

            if is_available and not schedule["is_available"] and schedule["date"] <= today:
                raise BadRequestException("Only future schedules can be restored")

            if schedule["is_available"] != is_available:
                await self.db.execute(
                    update(schedules)
                    .where(schedules.c.id == schedule_id)
                    .values(is_available=is_available, updated_at=datetime.now(UTC))
                )
                if not is_available:
                    targets = await self._affected_targets(schedule)

                await record_operation(
                    self.db,
                    actor.id,
                    "RESTORE_SCHEDULE" if is_available else "SUSPEND_SCHEDULE",
                    "schedule",
                    schedule_id,
                    {"date": schedule["date"].isoformat(), "affected_patients": len(targets)},
                )
                schedule["is_available"] = is_available

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "schedule_availability_changed",
            schedule_id=str(schedule_id),
            is_available=is_available,
            affected=len(targets),
            actor_id=actor.id,
        )
        return schedule, targets
