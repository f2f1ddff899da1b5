"""Tests for the appointment lifecycle rules."""

import pytest

from clinic_booking.core.exceptions import InvalidTransitionException
from clinic_booking.core.state_machine import (
    ActorKind,
    AppointmentStatus,
    allowed_targets,
    can_transition,
    validate_transition,
)

S = AppointmentStatus


@pytest.mark.parametrize(
    ("current", "target", "actor"),
    [
        (S.BOOKED, S.CHECKED_IN, ActorKind.ADMIN),
        (S.BOOKED, S.CANCELLED, ActorKind.PATIENT),
        (S.BOOKED, S.CANCELLED, ActorKind.ADMIN),
        (S.BOOKED, S.CANCELLED, ActorKind.SYSTEM),
        (S.BOOKED, S.NO_SHOW, ActorKind.SYSTEM),
        (S.CHECKED_IN, S.COMPLETED, ActorKind.ADMIN),
        (S.NO_SHOW, S.CHECKED_IN, ActorKind.ADMIN),
    ],
)
def test_allowed_transitions(current, target, actor) -> None:
    assert can_transition(current, target, actor)
    validate_transition(current, target, actor)


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (S.BOOKED, S.COMPLETED),
        (S.NO_SHOW, S.BOOKED),
        (S.NO_SHOW, S.COMPLETED),
        (S.CHECKED_IN, S.BOOKED),
    ],
)
def test_forbidden_transitions(current, target) -> None:
    assert not can_transition(current, target, ActorKind.ADMIN)
    with pytest.raises(InvalidTransitionException):
        validate_transition(current, target, ActorKind.ADMIN)


@pytest.mark.parametrize("terminal", [S.COMPLETED, S.CANCELLED])
def test_terminal_states_have_no_exit(terminal) -> None:
    assert allowed_targets(terminal) == set()
    for target in S:
        with pytest.raises(InvalidTransitionException):
            validate_transition(terminal, target, ActorKind.ADMIN)


def test_no_show_is_reserved_for_the_sweeper() -> None:
    """Staff cannot mark a booking as no-show by hand."""
    assert not can_transition(S.BOOKED, S.NO_SHOW, ActorKind.ADMIN)
    assert can_transition(S.BOOKED, S.NO_SHOW, ActorKind.SYSTEM)


def test_patient_can_only_cancel() -> None:
    assert allowed_targets(S.BOOKED, ActorKind.PATIENT) == {S.CANCELLED}
    with pytest.raises(InvalidTransitionException):
        validate_transition(S.BOOKED, S.CHECKED_IN, ActorKind.PATIENT)


def test_accepts_raw_status_strings() -> None:
    validate_transition("booked", "checked_in", ActorKind.ADMIN)
