"""Tests for admin endpoints."""

import pytest
from httpx import AsyncClient

from conftest import remaining_of, set_remaining


async def book(client: AsyncClient, clinic, headers: dict, slot_index: int = 0, treatment_id=None):
    response = await client.post(
        "/api/v1/appointments/",
        json={
            "time_slot_id": str(clinic.slot_ids[slot_index]),
            "treatment_type_id": str(treatment_id or clinic.short_treatment_id),
        },
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_admin_endpoints_require_admin(
    client: AsyncClient,
    clinic,
    patient_headers: dict,
) -> None:
    response = await client.get("/api/v1/admin/blacklist", headers=patient_headers)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "E016"


@pytest.mark.asyncio
async def test_check_in_and_complete(
    client: AsyncClient,
    clinic,
    patient_headers: dict,
    admin_headers: dict,
) -> None:
    appointment = await book(client, clinic, patient_headers)
    url = f"/api/v1/admin/appointments/{appointment['id']}/status"

    response = await client.put(url, json={"status": "checked_in"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "checked_in"

    response = await client.put(url, json={"status": "completed"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "completed"


@pytest.mark.asyncio
async def test_invalid_status_transition(
    client: AsyncClient,
    clinic,
    patient_headers: dict,
    admin_headers: dict,
) -> None:
    appointment = await book(client, clinic, patient_headers)

    response = await client.put(
        f"/api/v1/admin/appointments/{appointment['id']}/status",
        json={"status": "completed"},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "E008"


@pytest.mark.asyncio
async def test_admin_cancel_releases_minutes(
    client: AsyncClient,
    clinic,
    db_session,
    patient_headers: dict,
    admin_headers: dict,
) -> None:
    appointment = await book(client, clinic, patient_headers)

    response = await client.put(
        f"/api/v1/admin/appointments/{appointment['id']}/status",
        json={"status": "cancelled", "cancelled_reason": "Doctor called in sick"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "cancelled"
    assert data["cancelled_reason"] == "Doctor called in sick"
    assert data["cancelled_by"] == "admin-1"
    assert await remaining_of(db_session, clinic.slot_ids[0]) == 30


@pytest.mark.asyncio
async def test_adjust_time_slot(
    client: AsyncClient,
    clinic,
    admin_headers: dict,
) -> None:
    response = await client.patch(
        f"/api/v1/admin/time-slots/{clinic.slot_ids[0]}",
        json={"remaining_minutes": 12},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["remaining_minutes"] == 12
    assert data["is_available"] is True


@pytest.mark.asyncio
async def test_adjust_exhausted_time_slot_is_rejected(
    client: AsyncClient,
    clinic,
    db_session,
    admin_headers: dict,
) -> None:
    await set_remaining(db_session, clinic.slot_ids[0], 0)

    response = await client.patch(
        f"/api/v1/admin/time-slots/{clinic.slot_ids[0]}",
        json={"remaining_minutes": 30},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "E001"
    assert await remaining_of(db_session, clinic.slot_ids[0]) == 0


@pytest.mark.asyncio
async def test_suspend_schedule_notifies_patients(
    client: AsyncClient,
    clinic,
    patient_actor,
    patient_headers: dict,
    admin_headers: dict,
    notify_mock,
) -> None:
    await book(client, clinic, patient_headers)
    notify_mock.reset_mock()

    response = await client.patch(
        f"/api/v1/admin/schedules/{clinic.schedule.id}",
        json={"is_available": False},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["is_available"] is False
    assert data["notified_patients"] == [patient_actor.line_user_id]
    assert notify_mock.await_count == 1


@pytest.mark.asyncio
async def test_booking_on_suspended_schedule_is_rejected(
    client: AsyncClient,
    clinic,
    patient_headers: dict,
    admin_headers: dict,
) -> None:
    await client.patch(
        f"/api/v1/admin/schedules/{clinic.schedule.id}",
        json={"is_available": False},
        headers=admin_headers,
    )

    response = await client.post(
        "/api/v1/appointments/",
        json={
            "time_slot_id": str(clinic.slot_ids[0]),
            "treatment_type_id": str(clinic.short_treatment_id),
        },
        headers=patient_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_disable_doctor(
    client: AsyncClient,
    clinic,
    db_session,
    patient_actor,
    patient_headers: dict,
    admin_headers: dict,
) -> None:
    appointment = await book(client, clinic, patient_headers)

    response = await client.post(
        f"/api/v1/admin/doctors/{clinic.doctor_id}/disable", headers=admin_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["is_active"] is False
    assert data["cancelled_appointments"] == 1
    assert data["cancelled_appointment_ids"] == [appointment["id"]]
    assert data["notified_patients"] == [patient_actor.line_user_id]
    assert await remaining_of(db_session, clinic.slot_ids[0]) == 30


@pytest.mark.asyncio
async def test_disable_treatment(
    client: AsyncClient,
    clinic,
    patient_headers: dict,
    admin_headers: dict,
) -> None:
    await book(client, clinic, patient_headers)

    response = await client.post(
        f"/api/v1/admin/treatments/{clinic.long_treatment_id}/disable", headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["cancelled_appointments"] == 0

    treatments = await client.get("/api/v1/treatment-types")
    assert [item["name"] for item in treatments.json()] == ["Acupuncture"]


@pytest.mark.asyncio
async def test_blacklist_lifecycle(
    client: AsyncClient,
    clinic,
    admin_headers: dict,
    super_admin_headers: dict,
) -> None:
    response = await client.post(
        "/api/v1/admin/blacklist",
        json={"patient_id": str(clinic.patient_id), "reason": "Abusive behaviour"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    assert response.json()["patient_name"] == "Chen Mei"

    duplicate = await client.post(
        "/api/v1/admin/blacklist",
        json={"patient_id": str(clinic.patient_id), "reason": "Again"},
        headers=admin_headers,
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "E018"

    listing = await client.get("/api/v1/admin/blacklist", headers=admin_headers)
    assert listing.json()["total"] == 1

    denied = await client.delete(
        f"/api/v1/admin/blacklist/{clinic.patient_id}", headers=admin_headers
    )
    assert denied.status_code == 403

    removed = await client.delete(
        f"/api/v1/admin/blacklist/{clinic.patient_id}", headers=super_admin_headers
    )
    assert removed.status_code == 204

    listing = await client.get("/api/v1/admin/blacklist", headers=admin_headers)
    assert listing.json()["total"] == 0
