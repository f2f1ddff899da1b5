"""Tests for the scheduled batch job endpoints."""

from datetime import time, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import update

from clinic_booking.core.clock import slot_instant
from clinic_booking.models import patients


@pytest.mark.asyncio
async def test_system_secret_required(client: AsyncClient) -> None:
    response = await client.post("/api/v1/system/blacklist-check")
    assert response.status_code == 401

    response = await client.post(
        "/api/v1/system/blacklist-check", headers={"X-System-Secret": "wrong"}
    )
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "E017"


@pytest.mark.asyncio
async def test_auto_update_status_with_reference_time(
    client: AsyncClient,
    clinic,
    patient_headers: dict,
    system_headers: dict,
) -> None:
    created = await client.post(
        "/api/v1/appointments/",
        json={
            "time_slot_id": str(clinic.slot_ids[0]),
            "treatment_type_id": str(clinic.short_treatment_id),
        },
        headers=patient_headers,
    )
    after_end = slot_instant(clinic.schedule.date, time(9, 30)) + timedelta(minutes=5)

    response = await client.post(
        "/api/v1/system/auto-update-status",
        json={"current_time": after_end.isoformat()},
        headers=system_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["processed_count"] == 1
    assert data["updated_appointments"][0]["appointment_id"] == created.json()["id"]
    assert data["updated_appointments"][0]["new_no_show_count"] == 1


@pytest.mark.asyncio
async def test_auto_update_status_without_body(
    client: AsyncClient,
    clinic,
    system_headers: dict,
) -> None:
    response = await client.post("/api/v1/system/auto-update-status", headers=system_headers)
    assert response.status_code == 200
    assert response.json()["processed_count"] == 0


@pytest.mark.asyncio
async def test_blacklist_check(
    client: AsyncClient,
    clinic,
    db_session,
    system_headers: dict,
) -> None:
    await db_session.execute(
        update(patients).where(patients.c.id == clinic.patient_id).values(no_show_count=3)
    )
    await db_session.commit()

    response = await client.post("/api/v1/system/blacklist-check", headers=system_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["processed_count"] == 1
    assert data["blacklisted_patients"] == [
        {"patient_id": str(clinic.patient_id), "no_show_count": 3}
    ]


@pytest.mark.asyncio
async def test_concurrent_run_is_refused(
    client: AsyncClient,
    clinic,
    redis_mock,
    system_headers: dict,
) -> None:
    redis_mock.lock.return_value.acquire.return_value = False

    response = await client.post("/api/v1/system/blacklist-check", headers=system_headers)
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "E018"
