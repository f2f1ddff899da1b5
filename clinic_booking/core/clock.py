"""Clinic-local time helpers.

Schedules store a calendar date and slots store wall-clock times, both in
the clinic's timezone. Every comparison against "now" goes through these
helpers so the instant arithmetic lives in one place.
"""

from datetime import UTC, date, datetime, time, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo

from clinic_booking.config import settings


@lru_cache
def clinic_tz() -> ZoneInfo:
    """Timezone the clinic's schedules are expressed in."""
    return ZoneInfo(settings.clinic_timezone)


def utcnow() -> datetime:
    """Current aware UTC time."""
    return datetime.now(UTC)


def ensure_aware(moment: datetime) -> datetime:
    """Treat naive datetimes as clinic-local time."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=clinic_tz())
    return moment


def clinic_today(now: datetime | None = None) -> date:
    """Calendar date at the clinic for ``now`` (defaults to the current time)."""
    moment = ensure_aware(now) if now is not None else utcnow()
    return moment.astimezone(clinic_tz()).date()


def slot_instant(slot_date: date, wall_time: time) -> datetime:
    """Aware instant of a slot boundary on a schedule date."""
    return datetime.combine(slot_date, wall_time, tzinfo=clinic_tz())


def booking_window(today: date) -> tuple[date, date]:
    """Inclusive first and last bookable dates."""
    return today, today + timedelta(days=settings.booking_window_days)
