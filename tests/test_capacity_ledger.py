"""Tests for the capacity ledger."""

from datetime import time, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import insert, select, update

from clinic_booking.config import settings
from clinic_booking.core.clock import clinic_today
from clinic_booking.core.exceptions import (
    CapacityAdjustmentException,
    InsufficientCapacityException,
    NotFoundException,
)
from clinic_booking.models import doctors, operation_logs
from clinic_booking.services.capacity_ledger import CapacityLedger
from conftest import add_schedule, remaining_of, set_remaining


@pytest.mark.asyncio
async def test_reserve_deducts_minutes(db_session, clinic) -> None:
    ledger = CapacityLedger(db_session)
    slot = await ledger.lock_slot(clinic.slot_ids[0])

    assert await ledger.reserve(slot, 10) == 20
    await db_session.commit()

    assert slot["remaining_minutes"] == 20
    assert await remaining_of(db_session, clinic.slot_ids[0]) == 20


@pytest.mark.asyncio
async def test_reserve_exact_balance_empties_slot(db_session, clinic) -> None:
    await set_remaining(db_session, clinic.slot_ids[0], 10)
    ledger = CapacityLedger(db_session)

    slot = await ledger.lock_slot(clinic.slot_ids[0])
    assert await ledger.reserve(slot, 10) == 0


@pytest.mark.asyncio
async def test_reserve_rejects_when_short(db_session, clinic) -> None:
    await set_remaining(db_session, clinic.slot_ids[0], 5)
    ledger = CapacityLedger(db_session)

    slot = await ledger.lock_slot(clinic.slot_ids[0])
    with pytest.raises(InsufficientCapacityException):
        await ledger.reserve(slot, 10)
    await db_session.rollback()

    assert await remaining_of(db_session, clinic.slot_ids[0]) == 5


@pytest.mark.asyncio
async def test_release_returns_minutes(db_session, clinic) -> None:
    await set_remaining(db_session, clinic.slot_ids[0], 10)
    ledger = CapacityLedger(db_session)

    slot = await ledger.lock_slot(clinic.slot_ids[0])
    assert await ledger.release(slot, 20) == 30


@pytest.mark.asyncio
async def test_release_is_clamped_at_total(db_session, clinic) -> None:
    await set_remaining(db_session, clinic.slot_ids[0], 25)
    ledger = CapacityLedger(db_session)

    slot = await ledger.lock_slot(clinic.slot_ids[0])
    assert await ledger.release(slot, 10) == 30
    await db_session.commit()

    assert await remaining_of(db_session, clinic.slot_ids[0]) == 30


@pytest.mark.asyncio
async def test_lock_slots_returns_every_slot(db_session, clinic) -> None:
    ledger = CapacityLedger(db_session)
    locked = await ledger.lock_slots([clinic.slot_ids[2], clinic.slot_ids[0], clinic.slot_ids[0]])

    assert set(locked) == {clinic.slot_ids[0], clinic.slot_ids[2]}
    assert locked[clinic.slot_ids[0]]["doctor_id"] == clinic.doctor_id


@pytest.mark.asyncio
async def test_lock_unknown_slot(db_session, clinic) -> None:
    ledger = CapacityLedger(db_session)
    with pytest.raises(NotFoundException):
        await ledger.lock_slot(uuid4())
    with pytest.raises(NotFoundException):
        await ledger.lock_slots([clinic.slot_ids[0], uuid4()])


@pytest.mark.asyncio
async def test_adjust_remaining_logs_operation(db_session, clinic) -> None:
    ledger = CapacityLedger(db_session)

    slot = await ledger.adjust_remaining(clinic.slot_ids[1], 15, "admin-1")

    assert slot["remaining_minutes"] == 15
    assert await remaining_of(db_session, clinic.slot_ids[1]) == 15
    result = await db_session.execute(select(operation_logs))
    log = result.mappings().one()
    assert log["action"] == "UPDATE_TIME_SLOT"
    assert log["actor_id"] == "admin-1"
    assert log["details"]["new_remaining_minutes"] == 15


@pytest.mark.asyncio
async def test_adjust_remaining_rejects_exhausted_slot(db_session, clinic) -> None:
    await set_remaining(db_session, clinic.slot_ids[1], 0)
    ledger = CapacityLedger(db_session)

    with pytest.raises(CapacityAdjustmentException):
        await ledger.adjust_remaining(clinic.slot_ids[1], 20, "admin-1")

    assert await remaining_of(db_session, clinic.slot_ids[1]) == 0


@pytest.mark.asyncio
async def test_adjust_remaining_rejects_above_total(db_session, clinic) -> None:
    ledger = CapacityLedger(db_session)
    with pytest.raises(CapacityAdjustmentException):
        await ledger.adjust_remaining(clinic.slot_ids[1], 31, "admin-1")


@pytest.mark.asyncio
async def test_alternative_slots_have_enough_room(db_session, clinic) -> None:
    await set_remaining(db_session, clinic.slot_ids[0], 5)
    await set_remaining(db_session, clinic.slot_ids[1], 15)
    ledger = CapacityLedger(db_session)
    slot = await ledger.get_slot(clinic.slot_ids[0])

    alternatives = await ledger.find_alternative_slots(slot, 20)

    assert [alt["id"] for alt in alternatives] == [clinic.slot_ids[2]]
    assert alternatives[0]["remaining_minutes"] == 30


@pytest.mark.asyncio
async def test_list_slots_flags_full_slots(db_session, clinic) -> None:
    await set_remaining(db_session, clinic.slot_ids[0], 0)
    ledger = CapacityLedger(db_session)

    slots = await ledger.list_slots(clinic.doctor_id, clinic.schedule.date)

    assert [slot["id"] for slot in slots] == clinic.slot_ids
    assert [slot["is_available"] for slot in slots] == [False, True, True]


async def add_doctor(db, name: str):
    result = await db.execute(insert(doctors).values(name=name).returning(doctors.c.id))
    doctor_id = result.scalar_one()
    await db.commit()
    return doctor_id


@pytest.mark.asyncio
async def test_available_dates_need_free_minutes_inside_window(db_session, clinic) -> None:
    today = clinic_today()
    wu = await add_doctor(db_session, "Dr. Wu")
    await add_schedule(db_session, wu, clinic.schedule.date, [time(14, 0)])
    await add_schedule(db_session, wu, today + timedelta(days=3), [time(9, 0)], remaining=[0])
    await add_schedule(
        db_session, wu, today + timedelta(days=4), [time(9, 0)], is_available=False
    )
    await add_schedule(db_session, wu, today - timedelta(days=1), [time(9, 0)])
    last_day = today + timedelta(days=settings.booking_window_days)
    await add_schedule(db_session, wu, last_day, [time(9, 0)])
    await add_schedule(db_session, wu, last_day + timedelta(days=1), [time(9, 0)])

    dates = await CapacityLedger(db_session).available_dates(today)

    assert [entry["date"] for entry in dates] == [clinic.schedule.date, last_day]
    assert [doctor["name"] for doctor in dates[0]["doctors"]] == ["Dr. Lin", "Dr. Wu"]
    assert [doctor["id"] for doctor in dates[1]["doctors"]] == [wu]


@pytest.mark.asyncio
async def test_available_dates_skip_inactive_and_filtered_doctors(db_session, clinic) -> None:
    today = clinic_today()
    wu = await add_doctor(db_session, "Dr. Wu")
    wu_day = today + timedelta(days=6)
    await add_schedule(db_session, wu, wu_day, [time(9, 0)])
    ledger = CapacityLedger(db_session)

    only_lin = await ledger.available_dates(today, doctor_id=clinic.doctor_id)
    assert [entry["date"] for entry in only_lin] == [clinic.schedule.date]

    await db_session.execute(
        update(doctors).where(doctors.c.id == clinic.doctor_id).values(is_active=False)
    )
    await db_session.commit()

    dates = await ledger.available_dates(today)
    assert [entry["date"] for entry in dates] == [wu_day]


@pytest.mark.asyncio
async def test_available_dates_drop_a_day_once_every_slot_is_full(db_session, clinic) -> None:
    for slot_id in clinic.slot_ids:
        await set_remaining(db_session, slot_id, 0)

    assert await CapacityLedger(db_session).available_dates(clinic_today()) == []
