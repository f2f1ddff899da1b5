"""Appointment lifecycle rules."""

from enum import Enum

from clinic_booking.core.exceptions import InvalidTransitionException


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    BOOKED = "booked"
    CHECKED_IN = "checked_in"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class ActorKind(str, Enum):
    """Who is asking for a status change."""

    PATIENT = "patient"
    ADMIN = "admin"
    SYSTEM = "system"


# Statuses that hold a slot and count towards the one-per-day rule
ACTIVE_STATUSES = frozenset({AppointmentStatus.BOOKED, AppointmentStatus.CHECKED_IN})

TERMINAL_STATUSES = frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED})

# (from, to) -> actor kinds allowed to perform it
TRANSITIONS: dict[tuple[AppointmentStatus, AppointmentStatus], frozenset[ActorKind]] = {
    (AppointmentStatus.BOOKED, AppointmentStatus.CHECKED_IN): frozenset({ActorKind.ADMIN}),
    (AppointmentStatus.BOOKED, AppointmentStatus.CANCELLED): frozenset(
        {ActorKind.PATIENT, ActorKind.ADMIN, ActorKind.SYSTEM}
    ),
    (AppointmentStatus.BOOKED, AppointmentStatus.NO_SHOW): frozenset({ActorKind.SYSTEM}),
    (AppointmentStatus.CHECKED_IN, AppointmentStatus.COMPLETED): frozenset({ActorKind.ADMIN}),
    # late check-in correction
    (AppointmentStatus.NO_SHOW, AppointmentStatus.CHECKED_IN): frozenset({ActorKind.ADMIN}),
}


def allowed_targets(
    current: AppointmentStatus,
    actor: ActorKind | None = None,
) -> set[AppointmentStatus]:
    """Statuses reachable from ``current``, optionally for one actor kind."""
    return {
        target
        for (source, target), actors in TRANSITIONS.items()
        if source == current and (actor is None or actor in actors)
    }


def can_transition(
    current: AppointmentStatus,
    target: AppointmentStatus,
    actor: ActorKind,
) -> bool:
    """Check a transition without raising."""
    return actor in TRANSITIONS.get((current, target), frozenset())


def validate_transition(
    current: AppointmentStatus | str,
    target: AppointmentStatus | str,
    actor: ActorKind,
) -> None:
    """
    Ensure a status change is legal before it is written.

    Args:
        current: Status stored on the appointment
        target: Requested status
        actor: Kind of actor requesting the change

    Raises:
        InvalidTransitionException: If the lifecycle forbids the change
    """
    current = AppointmentStatus(current)
    target = AppointmentStatus(target)

    if current in TERMINAL_STATUSES:
        raise InvalidTransitionException(
            f"Appointment is {current.value} and can no longer change status"
        )

    allowed = TRANSITIONS.get((current, target))
    if allowed is None:
        raise InvalidTransitionException(
            f"Cannot change appointment status from {current.value} to {target.value}"
        )

    if actor not in allowed:
        raise InvalidTransitionException(
            f"Status change from {current.value} to {target.value} "
            f"cannot be requested by {actor.value}"
        )
