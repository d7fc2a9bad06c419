"""Tests for notification and preference endpoints."""

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select

from alert_engine.models.alert import (
    AlertSeverity,
    Notification,
    NotificationChannel,
    NotificationStatus,
)
from tests.factories import NOW

NOTIFICATIONS_URL = "/api/v1/alerts/notifications"
PREFERENCES_URL = "/api/v1/alerts/preferences"


async def add_notification(session, user, channel=NotificationChannel.IN_APP, **values):
    notification = Notification(
        user_id=user.id,
        title=values.pop("title", "Low capacity factor"),
        message="Capacity factor at Hornsea Two is below 10",
        severity=values.pop("severity", AlertSeverity.HIGH),
        channel=channel,
        created_at=values.pop("created_at", NOW),
        **values,
    )
    session.add(notification)
    await session.commit()
    return notification


@pytest_asyncio.fixture
async def inbox(test_session, test_user):
    """Two in-app notifications and one email for the test user."""
    return [
        await add_notification(test_session, test_user, title="First"),
        await add_notification(test_session, test_user, title="Second"),
        await add_notification(test_session, test_user, channel=NotificationChannel.EMAIL, title="Mailed"),
    ]


@pytest.mark.asyncio
async def test_list_defaults_to_in_app(client: AsyncClient, auth_headers, inbox):
    response = await client.get(NOTIFICATIONS_URL, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["unread_count"] == 2
    assert {n["title"] for n in data["notifications"]} == {"First", "Second"}


@pytest.mark.asyncio
async def test_list_other_channel(client: AsyncClient, auth_headers, inbox):
    response = await client.get(NOTIFICATIONS_URL, params={"channel": "email"}, headers=auth_headers)

    data = response.json()
    assert [n["title"] for n in data["notifications"]] == ["Mailed"]
    # Unread count only ever covers the in-app inbox
    assert data["unread_count"] == 2


@pytest.mark.asyncio
async def test_unread_count(client: AsyncClient, auth_headers, other_auth_headers, inbox):
    response = await client.get(f"{NOTIFICATIONS_URL}/unread-count", headers=auth_headers)
    assert response.json() == {"unread_count": 2}

    response = await client.get(f"{NOTIFICATIONS_URL}/unread-count", headers=other_auth_headers)
    assert response.json() == {"unread_count": 0}


@pytest.mark.asyncio
async def test_mark_read_ignores_foreign_and_read_ids(
    client: AsyncClient, test_session, auth_headers, other_user, inbox
):
    foreign = await add_notification(test_session, other_user)
    ids = [inbox[0].id, foreign.id]

    response = await client.post(f"{NOTIFICATIONS_URL}/mark-read", json={"notification_ids": ids}, headers=auth_headers)
    assert response.json() == {"marked_read": 1}

    response = await client.patch(f"{NOTIFICATIONS_URL}/mark-read", json={"notification_ids": ids}, headers=auth_headers)
    assert response.json() == {"marked_read": 0}

    status = await test_session.scalar(
        select(Notification.status).where(Notification.id == foreign.id)
    )
    assert status == NotificationStatus.UNREAD


@pytest.mark.asyncio
async def test_mark_all_read(client: AsyncClient, auth_headers, inbox):
    response = await client.patch(f"{NOTIFICATIONS_URL}/mark-all-read", headers=auth_headers)
    assert response.json() == {"marked_read": 3}

    response = await client.get(NOTIFICATIONS_URL, params={"status": "unread"}, headers=auth_headers)
    assert response.json()["total"] == 0
    assert response.json()["unread_count"] == 0


@pytest.mark.asyncio
async def test_mark_single_read_and_archive(client: AsyncClient, auth_headers, inbox):
    notification_id = inbox[0].id

    response = await client.patch(f"{NOTIFICATIONS_URL}/{notification_id}/read", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "read"
    assert response.json()["read_at"] is not None

    response = await client.patch(f"{NOTIFICATIONS_URL}/{notification_id}/archive", headers=auth_headers)
    assert response.json()["status"] == "archived"

    response = await client.get(NOTIFICATIONS_URL, params={"status": "archived"}, headers=auth_headers)
    assert [n["id"] for n in response.json()["notifications"]] == [notification_id]


@pytest.mark.asyncio
async def test_foreign_notification_is_not_found(client: AsyncClient, other_auth_headers, inbox):
    response = await client.patch(f"{NOTIFICATIONS_URL}/{inbox[0].id}/read", headers=other_auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_notification_twice(client: AsyncClient, auth_headers, inbox):
    url = f"{NOTIFICATIONS_URL}/{inbox[0].id}"

    assert (await client.delete(url, headers=auth_headers)).status_code == 204
    assert (await client.delete(url, headers=auth_headers)).status_code == 204

    response = await client.get(NOTIFICATIONS_URL, headers=auth_headers)
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_delete_foreign_notification_keeps_it(
    client: AsyncClient, test_session, other_auth_headers, inbox
):
    response = await client.delete(f"{NOTIFICATIONS_URL}/{inbox[0].id}", headers=other_auth_headers)

    assert response.status_code == 204
    remaining = await test_session.scalar(select(Notification.id).where(Notification.id == inbox[0].id))
    assert remaining == inbox[0].id


@pytest.mark.asyncio
async def test_default_preferences(client: AsyncClient, auth_headers, test_user):
    response = await client.get(PREFERENCES_URL, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["user_id"] == test_user.id
    assert data["email_enabled"] is True
    assert data["digest_frequency_hours"] == 24
    assert data["quiet_hours_enabled"] is False
    assert data["min_severity"] == "low"


@pytest.mark.asyncio
async def test_update_preferences(client: AsyncClient, auth_headers):
    payload = {
        "quiet_hours_enabled": True,
        "quiet_hours_start": 22,
        "quiet_hours_end": 7,
        "min_severity": "high",
        "digest_frequency_hours": 6,
    }

    response = await client.put(PREFERENCES_URL, json=payload, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    for key, value in payload.items():
        assert data[key] == value

    # Fields left out keep their stored value
    response = await client.put(PREFERENCES_URL, json={"email_enabled": False}, headers=auth_headers)
    assert response.json()["quiet_hours_start"] == 22
    assert response.json()["email_enabled"] is False


@pytest.mark.parametrize(
    "payload,field",
    [
        ({"digest_frequency_hours": 5}, "digest_frequency_hours"),
        ({"quiet_hours_enabled": True}, "quiet_hours_start"),
        ({"quiet_hours_enabled": True, "quiet_hours_start": 22}, "quiet_hours_end"),
        ({"quiet_hours_start": 24}, "quiet_hours_start"),
        ({"min_severity": "urgent"}, "min_severity"),
    ],
)
@pytest.mark.asyncio
async def test_invalid_preferences_rejected(client: AsyncClient, auth_headers, payload, field):
    response = await client.put(PREFERENCES_URL, json=payload, headers=auth_headers)

    assert response.status_code == 422
    assert field in [d["field"] for d in response.json()["error"]["details"]]
