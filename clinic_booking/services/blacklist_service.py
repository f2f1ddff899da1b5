"""Administrative blacklist management."""

from datetime import UTC, datetime
from uuid import UUID

import structlog
from sqlalchemy import delete, exists, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
)
from clinic_booking.models.patients import blacklists, patients
from clinic_booking.schemas.admin import BlacklistEntry, BlacklistListResponse
from clinic_booking.schemas.auth import Actor
from clinic_booking.services.audit_service import record_operation

logger = structlog.get_logger(__name__)


class BlacklistService:
    """Service for adding, removing and listing blacklisted patients."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def _lock_patient(self, patient_id: UUID) -> dict:
        result = await self.db.execute(
            select(patients).where(patients.c.id == patient_id).with_for_update()
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Patient not found")
        return dict(row)

    async def _entry(self, patient_id: UUID) -> BlacklistEntry:
        result = await self.db.execute(
            select(blacklists, patients.c.name.label("patient_name"))
            .join(patients, blacklists.c.patient_id == patients.c.id)
            .where(blacklists.c.patient_id == patient_id)
        )
        return BlacklistEntry.model_validate(dict(result.mappings().one()))

    async def add(self, patient_id: UUID, reason: str, actor: Actor) -> BlacklistEntry:
        """
        Blacklist a patient.

        Raises:
            NotFoundException: If the patient does not exist
            ConflictException: If the patient is already blacklisted
        """
        try:
            await self._lock_patient(patient_id)

            listed = await self.db.execute(
                select(exists().where(blacklists.c.patient_id == patient_id))
            )
            if listed.scalar():
                raise ConflictException("Patient is already blacklisted")

            await self.db.execute(
                insert(blacklists).values(patient_id=patient_id, reason=reason, created_by=actor.id)
            )
            await self.db.execute(
                update(patients)
                .where(patients.c.id == patient_id)
                .values(is_blacklisted=True, updated_at=datetime.now(UTC))
            )
            await record_operation(
                self.db, actor.id, "ADD_BLACKLIST", "patient", patient_id, {"reason": reason}
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("blacklist_added", patient_id=str(patient_id), actor_id=actor.id)
        return await self._entry(patient_id)

    async def remove(self, patient_id: UUID, actor: Actor) -> None:
        """
        Lift a patient's blacklisting. Super admins only.

        The no-show counter is left as is; the batch check only lists
        patients that are not flagged, so the next sweep may list the
        patient again if the counter is still at the limit.

        Raises:
            ForbiddenException: If the actor is not a super admin
            NotFoundException: If the patient is not blacklisted
        """
        if not actor.is_super_admin:
            raise ForbiddenException("Only super admins can remove blacklist entries")

        try:
            patient = await self._lock_patient(patient_id)

            result = await self.db.execute(
                delete(blacklists).where(blacklists.c.patient_id == patient_id)
            )
            if result.rowcount == 0 and not patient["is_blacklisted"]:
                raise NotFoundException("Patient is not blacklisted")

            await self.db.execute(
                update(patients)
                .where(patients.c.id == patient_id)
                .values(is_blacklisted=False, updated_at=datetime.now(UTC))
            )
            await record_operation(self.db, actor.id, "REMOVE_BLACKLIST", "patient", patient_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("blacklist_removed", patient_id=str(patient_id), actor_id=actor.id)

    async def list(self) -> BlacklistListResponse:
        """List every blacklist record, newest first."""
        result = await self.db.execute(
            select(blacklists, patients.c.name.label("patient_name"))
            .join(patients, blacklists.c.patient_id == patients.c.id)
            .order_by(blacklists.c.created_at.desc())
        )
        items = [BlacklistEntry.model_validate(dict(row)) for row in result.mappings().all()]
        return BlacklistListResponse(total=len(items), items=items)
