"""Notification service for pushing LINE messages to patients."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
import structlog

from clinic_booking.config import settings

logger = structlog.get_logger(__name__)


class NotificationKind(str, Enum):
    """Events that notify a patient."""

    BOOKING_CREATED = "booking_created"
    BOOKING_MODIFIED = "booking_modified"
    BOOKING_CANCELLED = "booking_cancelled"
    SCHEDULE_SUSPENDED = "schedule_suspended"
    DOCTOR_DEACTIVATED = "doctor_deactivated"
    TREATMENT_DEACTIVATED = "treatment_deactivated"


MESSAGE_TEMPLATES: dict[NotificationKind, str] = {
    NotificationKind.BOOKING_CREATED: (
        "Your appointment is confirmed.\n"
        "Date: {date}\nTime: {time}\nDoctor: {doctor}\nTreatment: {treatment}"
    ),
    NotificationKind.BOOKING_MODIFIED: (
        "Your appointment has been changed.\nDate: {date}\nTime: {time}"
    ),
    NotificationKind.BOOKING_CANCELLED: "Your appointment on {date} has been cancelled.",
    NotificationKind.SCHEDULE_SUSPENDED: (
        "Dr. {doctor} will not be seeing patients on {date}. "
        "Please contact the clinic to rearrange your visit."
    ),
    NotificationKind.DOCTOR_DEACTIVATED: (
        "Dr. {doctor} is no longer available, so your appointment on {date} "
        "has been cancelled. We apologise for the inconvenience."
    ),
    NotificationKind.TREATMENT_DEACTIVATED: (
        'The treatment "{treatment}" is no longer offered, so your appointment '
        "on {date} has been cancelled. We apologise for the inconvenience."
    ),
}


@dataclass
class NotificationTarget:
    """One message waiting to be sent after a transaction commits."""

    line_user_id: str
    kind: NotificationKind
    context: dict[str, Any] = field(default_factory=dict)


def render_message(kind: NotificationKind, context: dict[str, Any]) -> str:
    """Fill the template for ``kind``; missing fields render empty."""
    values: dict[str, Any] = {"date": "", "time": "", "doctor": "", "treatment": ""}
    values.update({key: "" if value is None else value for key, value in context.items()})
    return MESSAGE_TEMPLATES[kind].format(**values)


class NotificationService:
    """Service for sending LINE push notifications."""

    @staticmethod
    def _mock_mode() -> bool:
        return not settings.is_production or not settings.line_channel_access_token

    @staticmethod
    async def notify(
        line_user_id: str | None,
        kind: NotificationKind,
        context: dict[str, Any] | None = None,
    ) -> bool:
        """
        Send one notification.

        Delivery problems are logged and reported through the return value;
        they never propagate to the booking flow.

        Args:
            line_user_id: Recipient's LINE user id
            kind: Event being notified
            context: Template values (date, time, doctor, treatment)

        Returns:
            True if the message was accepted by LINE (or logged in mock mode)
        """
        if not line_user_id:
            logger.info("notification_skipped_no_line_id", kind=kind.value)
            return False

        text = render_message(kind, context or {})

        if NotificationService._mock_mode():
            logger.info(
                "line_message_mocked",
                line_user_id=line_user_id,
                kind=kind.value,
                text=text,
            )
            return True

        try:
            async with httpx.AsyncClient(timeout=settings.line_request_timeout) as client:
                response = await client.post(
                    settings.line_push_url,
                    headers={
                        "Authorization": f"Bearer {settings.line_channel_access_token}",
                    },
                    json={
                        "to": line_user_id,
                        "messages": [{"type": "text", "text": text}],
                    },
                )
        except httpx.HTTPError as e:
            logger.error(
                "line_message_failed",
                line_user_id=line_user_id,
                kind=kind.value,
                error=str(e),
            )
            return False

        if response.status_code != 200:
            logger.warning(
                "line_message_rejected",
                line_user_id=line_user_id,
                kind=kind.value,
                status_code=response.status_code,
            )
            return False

        logger.info("line_message_sent", line_user_id=line_user_id, kind=kind.value)
        return True

    @staticmethod
    async def dispatch(targets: list[NotificationTarget]) -> list[str]:
        """
        Send a batch of notifications collected by a cascade.

        Args:
            targets: Messages to send

        Returns:
            LINE user ids that were notified successfully
        """
        notified: list[str] = []
        for target in targets:
            if await NotificationService.notify(target.line_user_id, target.kind, target.context):
                notified.append(target.line_user_id)

        logger.info(
            "notification_batch_dispatched",
            requested=len(targets),
            delivered=len(notified),
        )
        return notified
