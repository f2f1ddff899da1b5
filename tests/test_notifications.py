"""Tests for LINE notifications."""

import httpx
import pytest

from clinic_booking.config import settings
from clinic_booking.services.notification_service import (
    NotificationKind,
    NotificationService,
    NotificationTarget,
    render_message,
)

# Captured before the autouse fixture replaces it
send_notification = NotificationService.notify


@pytest.fixture
def line_api(monkeypatch):
    """Route LINE pushes to an in-memory transport and record them."""
    sent: list[httpx.Request] = []
    responses = {"status": 200}

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(responses["status"], json={})

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )
    monkeypatch.setattr(settings, "environment", "production")
    monkeypatch.setattr(settings, "line_channel_access_token", "line-token")
    return sent, responses


def test_render_booking_created() -> None:
    text = render_message(
        NotificationKind.BOOKING_CREATED,
        {"date": "2026-10-20", "time": "09:30", "doctor": "Dr. Lin", "treatment": "Massage"},
    )
    assert "2026-10-20" in text
    assert "09:30" in text
    assert "Massage" in text


def test_render_tolerates_missing_fields() -> None:
    text = render_message(NotificationKind.BOOKING_CANCELLED, {})
    assert text == "Your appointment on  has been cancelled."


@pytest.mark.asyncio
async def test_notify_without_line_id_is_skipped() -> None:
    assert await send_notification(None, NotificationKind.BOOKING_CREATED, {}) is False


@pytest.mark.asyncio
async def test_notify_outside_production_only_logs(monkeypatch) -> None:
    monkeypatch.setattr(settings, "environment", "development")
    assert await send_notification("U-1", NotificationKind.BOOKING_CREATED, {}) is True


@pytest.mark.asyncio
async def test_notify_pushes_to_line(line_api) -> None:
    sent, _ = line_api

    delivered = await send_notification(
        "U-1", NotificationKind.BOOKING_CANCELLED, {"date": "2026-10-20"}
    )

    assert delivered is True
    assert len(sent) == 1
    assert sent[0].headers["Authorization"] == "Bearer line-token"
    assert b'"to":"U-1"' in sent[0].content.replace(b" ", b"")


@pytest.mark.asyncio
async def test_rejected_push_is_reported_not_raised(line_api) -> None:
    _, responses = line_api
    responses["status"] = 500

    assert await send_notification("U-1", NotificationKind.BOOKING_CREATED, {}) is False


@pytest.mark.asyncio
async def test_dispatch_returns_delivered_ids(notify_mock) -> None:
    notify_mock.side_effect = [True, False]
    targets = [
        NotificationTarget("U-1", NotificationKind.DOCTOR_DEACTIVATED, {"date": "2026-10-20"}),
        NotificationTarget("U-2", NotificationKind.DOCTOR_DEACTIVATED, {"date": "2026-10-20"}),
    ]

    assert await NotificationService.dispatch(targets) == ["U-1"]
