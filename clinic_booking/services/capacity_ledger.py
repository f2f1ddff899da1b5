"""Capacity ledger: remaining treatment minutes per time slot."""

from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.core.clock import booking_window
from clinic_booking.core.exceptions import (
    CapacityAdjustmentException,
    InsufficientCapacityException,
    NotFoundException,
)
from clinic_booking.models.doctors import doctors
from clinic_booking.models.schedules import schedules, time_slots
from clinic_booking.services.audit_service import record_operation

logger = structlog.get_logger(__name__)

_SLOT_COLUMNS = (
    time_slots,
    schedules.c.date,
    schedules.c.doctor_id,
    schedules.c.is_available.label("schedule_available"),
)


class CapacityLedger:
    """
    Reads and writes slot capacity.

    ``reserve`` and ``release`` take a slot snapshot returned by
    ``lock_slot``/``lock_slots``; the snapshot is only trustworthy while the
    row lock is held, i.e. until the caller's transaction ends.
    """

    def __init__(self, db: AsyncSession):
        """Initialize ledger with database session."""
        self.db = db

    def _slot_query(self):
        return select(*_SLOT_COLUMNS).join(schedules, time_slots.c.schedule_id == schedules.c.id)

    async def get_slot(self, slot_id: UUID) -> dict[str, Any]:
        """
        Read a slot without locking it.

        Raises:
            NotFoundException: If the slot does not exist
        """
        result = await self.db.execute(self._slot_query().where(time_slots.c.id == slot_id))
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Time slot not found")
        return dict(row)

    async def lock_slot(self, slot_id: UUID) -> dict[str, Any]:
        """
        Lock a slot row for update and return its current state.

        Blocks while another transaction holds the row, then returns the
        committed values.

        Raises:
            NotFoundException: If the slot does not exist
        """
        stmt = (
            self._slot_query()
            .where(time_slots.c.id == slot_id)
            .with_for_update(of=time_slots)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Time slot not found")
        return dict(row)

    async def lock_slots(self, slot_ids: list[UUID]) -> dict[UUID, dict[str, Any]]:
        """
        Lock several slot rows in ascending id order.

        Raises:
            NotFoundException: If any slot does not exist
        """
        wanted = sorted(set(slot_ids), key=str)
        stmt = (
            self._slot_query()
            .where(time_slots.c.id.in_(wanted))
            .order_by(time_slots.c.id)
            .with_for_update(of=time_slots)
        )
        result = await self.db.execute(stmt)
        locked = {row["id"]: dict(row) for row in result.mappings().all()}
        if len(locked) != len(wanted):
            raise NotFoundException("Time slot not found")
        return locked

    async def _write_remaining(self, slot_id: UUID, remaining: int) -> None:
        await self.db.execute(
            update(time_slots)
            .where(time_slots.c.id == slot_id)
            .values(remaining_minutes=remaining, updated_at=datetime.now(UTC))
        )

    async def reserve(self, slot: dict[str, Any], minutes: int) -> int:
        """
        Deduct ``minutes`` from a locked slot.

        Args:
            slot: Snapshot returned by a lock call (updated in place)
            minutes: Minutes required by the treatment

        Returns:
            Remaining minutes after the deduction

        Raises:
            InsufficientCapacityException: If the slot cannot take the minutes
        """
        if slot["remaining_minutes"] < minutes:
            logger.info(
                "capacity_insufficient",
                slot_id=str(slot["id"]),
                remaining=slot["remaining_minutes"],
                required=minutes,
            )
            raise InsufficientCapacityException()

        remaining = slot["remaining_minutes"] - minutes
        await self._write_remaining(slot["id"], remaining)
        slot["remaining_minutes"] = remaining
        return remaining

    async def release(self, slot: dict[str, Any], minutes: int) -> int:
        """
        Return ``minutes`` to a locked slot, never past its total.

        A release that would overflow the total means the ledger and the
        bookings disagree (usually after a manual adjustment); it is clamped
        and logged as a warning.

        Returns:
            Remaining minutes after the release
        """
        target = slot["remaining_minutes"] + minutes
        remaining = min(target, slot["total_minutes"])
        if remaining != target:
            logger.warning(
                "capacity_release_clamped",
                slot_id=str(slot["id"]),
                attempted=target,
                total=slot["total_minutes"],
            )

        await self._write_remaining(slot["id"], remaining)
        slot["remaining_minutes"] = remaining
        return remaining

    async def adjust_remaining(
        self,
        slot_id: UUID,
        remaining_minutes: int,
        actor_id: str,
    ) -> dict[str, Any]:
        """
        Manually set a slot's remaining minutes.

        Exhausted slots cannot be reopened this way.

        Args:
            slot_id: Slot to adjust
            remaining_minutes: New remaining minutes
            actor_id: Administrator performing the change

        Returns:
            Updated slot

        Raises:
            NotFoundException: If the slot does not exist
            CapacityAdjustmentException: If the policy forbids the change
        """
        try:
            slot = await self.lock_slot(slot_id)

            if slot["remaining_minutes"] == 0:
                raise CapacityAdjustmentException(
                    "Slots with no remaining minutes cannot be adjusted manually"
                )
            if remaining_minutes > slot["total_minutes"]:
                raise CapacityAdjustmentException(
                    "Remaining minutes cannot exceed the slot's total minutes"
                )

            previous = slot["remaining_minutes"]
            await self._write_remaining(slot_id, remaining_minutes)
            slot["remaining_minutes"] = remaining_minutes

            await record_operation(
                self.db,
                actor_id,
                "UPDATE_TIME_SLOT",
                "time_slot",
                slot_id,
                {
                    "previous_remaining_minutes": previous,
                    "new_remaining_minutes": remaining_minutes,
                },
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "capacity_adjusted",
            slot_id=str(slot_id),
            previous=previous,
            remaining=remaining_minutes,
            actor_id=actor_id,
        )
        return slot

    async def find_alternative_slots(
        self,
        slot: dict[str, Any],
        minutes: int,
    ) -> list[dict[str, Any]]:
        """
        Suggest other slots of the same doctor and day with enough room.

        Advisory only: read without locks, may be stale by the time the
        caller retries.
        """
        stmt = (
            select(*_SLOT_COLUMNS)
            .join(schedules, time_slots.c.schedule_id == schedules.c.id)
            .join(doctors, schedules.c.doctor_id == doctors.c.id)
            .where(
                and_(
                    schedules.c.doctor_id == slot["doctor_id"],
                    schedules.c.date == slot["date"],
                    schedules.c.is_available.is_(True),
                    doctors.c.is_active.is_(True),
                    time_slots.c.id != slot["id"],
                    time_slots.c.remaining_minutes >= minutes,
                )
            )
            .order_by(time_slots.c.start_time)
        )
        result = await self.db.execute(stmt)
        return [
            {
                "id": row["id"],
                "doctor_id": row["doctor_id"],
                "date": row["date"],
                "start_time": row["start_time"],
                "end_time": row["end_time"],
                "remaining_minutes": row["remaining_minutes"],
            }
            for row in result.mappings().all()
        ]

    async def list_slots(self, doctor_id: UUID, slot_date: date) -> list[dict[str, Any]]:
        """
        List a doctor's slots for one day.

        Suspended schedules and inactive doctors yield no slots.
        """
        stmt = (
            select(*_SLOT_COLUMNS)
            .join(schedules, time_slots.c.schedule_id == schedules.c.id)
            .join(doctors, schedules.c.doctor_id == doctors.c.id)
            .where(
                and_(
                    schedules.c.doctor_id == doctor_id,
                    schedules.c.date == slot_date,
                    schedules.c.is_available.is_(True),
                    doctors.c.is_active.is_(True),
                )
            )
            .order_by(time_slots.c.start_time)
        )
        result = await self.db.execute(stmt)
        return [
            {**dict(row), "is_available": row["remaining_minutes"] > 0}
            for row in result.mappings().all()
        ]

    async def available_dates(
        self,
        today: date,
        doctor_id: UUID | None = None,
    ) -> list[dict[str, Any]]:
        """
        Bookable dates in the window starting at ``today``.

        A date qualifies when an active doctor has an open schedule with at
        least one slot that still has minutes. Each entry lists those doctors.
        """
        first, last = booking_window(today)
        conditions = [
            schedules.c.date >= first,
            schedules.c.date <= last,
            schedules.c.is_available.is_(True),
            doctors.c.is_active.is_(True),
            time_slots.c.remaining_minutes > 0,
        ]
        if doctor_id is not None:
            conditions.append(schedules.c.doctor_id == doctor_id)

        stmt = (
            select(schedules.c.date, doctors.c.id, doctors.c.name)
            .select_from(schedules)
            .join(doctors, schedules.c.doctor_id == doctors.c.id)
            .join(time_slots, time_slots.c.schedule_id == schedules.c.id)
            .where(and_(*conditions))
            .distinct()
            .order_by(schedules.c.date, doctors.c.name)
        )
        result = await self.db.execute(stmt)

        by_date: dict[date, dict[str, Any]] = {}
        for row in result.mappings().all():
            entry = by_date.setdefault(row["date"], {"date": row["date"], "doctors": []})
            entry["doctors"].append({"id": row["id"], "name": row["name"]})
        return list(by_date.values())
