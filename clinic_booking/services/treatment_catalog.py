"""Treatment and doctor catalog lookups."""

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.config import settings
from clinic_booking.core.exceptions import NotFoundException
from clinic_booking.core.redis_client import CacheManager
from clinic_booking.models.doctors import doctor_treatments, doctors, treatment_types
from clinic_booking.models.schedules import schedules, time_slots


class TreatmentCatalog:
    """Read-only access to treatment types and the doctors offering them."""

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize catalog with database session and optional cache manager."""
        self.db = db
        self.cache = cache_manager

    @staticmethod
    def _cache_key(treatment_type_id: UUID) -> str:
        """Generate cache key for a treatment type."""
        return f"treatment:{treatment_type_id}"

    async def get_treatment(self, treatment_type_id: UUID) -> dict[str, Any]:
        """
        Get a treatment type by id.

        Raises:
            NotFoundException: If the treatment type does not exist
        """
        if self.cache:
            cached = self.cache.get_json(self._cache_key(treatment_type_id))
            if cached:
                cached["id"] = UUID(cached["id"])
                return cached

        result = await self.db.execute(
            select(treatment_types).where(treatment_types.c.id == treatment_type_id)
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Treatment type not found")

        treatment = {
            "id": row["id"],
            "name": row["name"],
            "duration_minutes": row["duration_minutes"],
            "is_active": row["is_active"],
            "sort_order": row["sort_order"],
        }

        if self.cache:
            self.cache.set_json(
                self._cache_key(treatment_type_id),
                treatment,
                ttl=settings.treatment_cache_ttl,
            )

        return treatment

    async def duration_minutes(self, treatment_type_id: UUID) -> int:
        """Minutes a treatment deducts from a slot."""
        treatment = await self.get_treatment(treatment_type_id)
        return treatment["duration_minutes"]

    async def list_active(self) -> list[dict[str, Any]]:
        """Active treatment types in display order."""
        result = await self.db.execute(
            select(treatment_types)
            .where(treatment_types.c.is_active.is_(True))
            .order_by(treatment_types.c.sort_order, treatment_types.c.name)
        )
        return [dict(row) for row in result.mappings().all()]

    async def list_doctors(
        self,
        treatment_type_id: UUID | None = None,
        slot_date: date | None = None,
    ) -> list[dict[str, Any]]:
        """
        Active doctors a patient can pick, by name.

        Args:
            treatment_type_id: Keep doctors offering this treatment. A doctor
                without offering rows offers everything.
            slot_date: Keep doctors on duty that day with minutes left

        Returns:
            Doctors with the treatments they explicitly offer (empty = all)
        """
        stmt = (
            select(doctors.c.id, doctors.c.name, doctors.c.is_active)
            .where(doctors.c.is_active.is_(True))
            .order_by(doctors.c.name)
        )
        if treatment_type_id is not None and settings.enforce_treatment_offering:
            offers_it = (
                select(doctor_treatments.c.doctor_id)
                .where(
                    and_(
                        doctor_treatments.c.doctor_id == doctors.c.id,
                        doctor_treatments.c.treatment_type_id == treatment_type_id,
                    )
                )
                .exists()
            )
            offers_any = (
                select(doctor_treatments.c.doctor_id)
                .where(doctor_treatments.c.doctor_id == doctors.c.id)
                .exists()
            )
            stmt = stmt.where(or_(offers_it, ~offers_any))
        if slot_date is not None:
            on_duty = (
                select(schedules.c.id)
                .join(time_slots, time_slots.c.schedule_id == schedules.c.id)
                .where(
                    and_(
                        schedules.c.doctor_id == doctors.c.id,
                        schedules.c.date == slot_date,
                        schedules.c.is_available.is_(True),
                        time_slots.c.remaining_minutes > 0,
                    )
                )
                .exists()
            )
            stmt = stmt.where(on_duty)

        result = await self.db.execute(stmt)
        listed = {row["id"]: {**dict(row), "treatment_types": []} for row in result.mappings()}
        if not listed:
            return []

        offered = await self.db.execute(
            select(doctor_treatments.c.doctor_id, treatment_types)
            .join(treatment_types, doctor_treatments.c.treatment_type_id == treatment_types.c.id)
            .where(
                and_(
                    doctor_treatments.c.doctor_id.in_(list(listed)),
                    treatment_types.c.is_active.is_(True),
                )
            )
            .order_by(treatment_types.c.sort_order, treatment_types.c.name)
        )
        for row in offered.mappings():
            treatment = dict(row)
            listed[treatment.pop("doctor_id")]["treatment_types"].append(treatment)
        return list(listed.values())

    def invalidate(self, treatment_type_id: UUID) -> None:
        """Drop a cached treatment type after it changes."""
        if self.cache:
            self.cache.delete(self._cache_key(treatment_type_id))
