"""Operation log for administrative actions."""

from typing import Any
from uuid import UUID

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_booking.models.operation_logs import operation_logs


async def record_operation(
    db: AsyncSession,
    actor_id: str | None,
    action: str,
    target_type: str,
    target_id: UUID | str,
    details: dict[str, Any] | None = None,
) -> None:
    """
    Add an operation log row to the current transaction.

    The caller commits, so the log entry lands together with the change it
    describes.
    """
    await db.execute(
        insert(operation_logs).values(
            actor_id=actor_id,
            action=action,
            target_type=target_type,
            target_id=str(target_id),
            details=details,
        )
    )
