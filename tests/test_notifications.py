"""Tests for the notification feed."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.client.notifications import NotificationFeed
from src.domain.entities import Notification
from src.domain.enums import ChangeType
from src.domain.errors import Unauthorized
from src.domain.events import RowChange


def _note(note_id: str, read: bool = False) -> dict:
    return {
        "id": note_id,
        "user_id": "u1",
        "title": "Ride confirmed",
        "message": "Paid",
        "type": "ride_confirmed",
        "read": read,
    }


class TestApply:
    def test_insert_prepends_and_caps(self):
        feed = NotificationFeed(AsyncMock(), limit=2, stream=AsyncMock())
        for note_id in ("a", "b", "c"):
            feed.apply(RowChange("notifications", ChangeType.INSERT, _note(note_id)))
        assert [n.id for n in feed.items] == ["c", "b"]
        assert feed.unread_count == 2

    def test_update_merges_without_unreading(self):
        feed = NotificationFeed(AsyncMock(), stream=AsyncMock())
        feed.items = [Notification.from_dict(_note("a", read=True))]
        feed.apply(RowChange("notifications", ChangeType.UPDATE, _note("a", read=False)))
        assert feed.items[0].read is True

    def test_update_for_unknown_row_is_ignored(self):
        feed = NotificationFeed(AsyncMock(), stream=AsyncMock())
        feed.apply(RowChange("notifications", ChangeType.UPDATE, _note("zz")))
        assert feed.items == []

    @pytest.mark.asyncio
    async def test_run_replays_changes_seen_during_load(self):
        api = AsyncMock()
        api.list_notifications.return_value = [Notification.from_dict(_note("a"))]

        async def stream():
            yield RowChange("notifications", ChangeType.INSERT, _note("b"))
            yield RowChange("notifications", ChangeType.UPDATE, _note("a", read=True))

        feed = NotificationFeed(api, stream=stream())
        await feed.run()

        assert [n.id for n in feed.items] == ["b", "a"]
        assert feed.unread_count == 1


class TestFeedAgainstApi:
    async def _paid_ride(self, api):
        ride = await api.create_ride(
            pickup_location="HQ", drop_location="SFO", date="2030-05-01",
            time="09:30", vehicle_type="sedan",
        )
        handle = await api.create_payment_intent(ride)
        await api.confirm_payment(ride.id, handle.client_secret, "pm_card_visa")
        await api.record_payment(ride.id, handle.amount)
        return ride

    @pytest.mark.asyncio
    async def test_load_and_mark_read(self, client, api):
        await api.sign_up("rider@example.com", "secret123", "Riley Rider")
        await self._paid_ride(api)
        await self._paid_ride(api)

        feed = NotificationFeed(api, stream=AsyncMock())
        await feed.load()
        assert feed.unread_count == 2

        await feed.mark_read(feed.items[0].id)
        assert feed.unread_count == 1

        await feed.mark_all_read()
        assert feed.unread_count == 0
        assert all(n.read for n in await api.list_notifications())

    @pytest.mark.asyncio
    async def test_live_insert_from_payment(self, client, api, feed):
        await api.sign_up("rider@example.com", "secret123", "Riley Rider")
        ride = await self._paid_ride(api)

        async def stream():
            for _, change in feed.published:
                if change.table == "notifications":
                    yield change

        notifications = NotificationFeed(api, stream=stream())
        await notifications.follow()
        assert [n.related_ride_id for n in notifications.items] == [ride.id]

    @pytest.mark.asyncio
    async def test_mark_read_failure_sets_message(self):
        api = AsyncMock()
        api.mark_notification_read.side_effect = Unauthorized("404")
        feed = NotificationFeed(api, stream=AsyncMock())
        await feed.mark_read("missing")
        assert feed.error_message == Unauthorized.default_user_message
