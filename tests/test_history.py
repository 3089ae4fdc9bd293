"""Tests for the ride history state and its live view."""

from __future__ import annotations

import asyncio
import contextlib
from unittest.mock import AsyncMock

import pytest

from src.client.history import RideHistoryView
from src.client.realtime import ChangeStream
from src.domain.entities import Ride
from src.domain.enums import ChangeType, RideStatus
from src.domain.errors import CabBookingError, Unauthorized
from src.domain.events import RowChange
from src.domain.history import ALL, RideHistory
from tests.conftest import book_ride, sign_up, sign_up_admin, wait_until


def _row(ride_id: str, status: str = "upcoming", amount=None) -> dict:
    return {
        "id": ride_id,
        "user_id": "u1",
        "pickup_location": "A",
        "drop_location": "B",
        "date": "2030-05-01",
        "time": "09:30:00",
        "vehicle_type": "sedan",
        "passengers": 1,
        "status": status,
        "amount": amount,
    }


def _ride(ride_id: str, status: str = "upcoming", amount=None) -> Ride:
    return Ride.from_dict(_row(ride_id, status, amount))


class TestRideHistory:
    def test_insert_prepends(self):
        history = RideHistory([_ride("a")])
        history.apply(RowChange("rides", ChangeType.INSERT, _row("b")))
        assert [r.id for r in history.rides] == ["b", "a"]

    def test_insert_of_known_id_replaces_in_place(self):
        history = RideHistory([_ride("a"), _ride("b")])
        history.apply(RowChange("rides", ChangeType.INSERT, _row("b", "paid")))
        assert [r.id for r in history.rides] == ["a", "b"]
        assert history.get("b").status is RideStatus.PAID

    def test_update_replaces_in_place(self):
        history = RideHistory([_ride("a"), _ride("b"), _ride("c")])
        history.apply(RowChange("rides", ChangeType.UPDATE, _row("b", "cancelled")))
        assert [r.id for r in history.rides] == ["a", "b", "c"]
        assert history.get("b").status is RideStatus.CANCELLED

    def test_update_for_unknown_id_prepends(self):
        history = RideHistory([_ride("a")])
        history.apply(RowChange("rides", ChangeType.UPDATE, _row("z")))
        assert [r.id for r in history.rides] == ["z", "a"]

    def test_delete_removes(self):
        history = RideHistory([_ride("a"), _ride("b")])
        history.apply(RowChange("rides", ChangeType.DELETE, {}, old_record={"id": "a"}))
        assert [r.id for r in history.rides] == ["b"]

    def test_stats(self):
        history = RideHistory(
            [
                _ride("a", "upcoming"),
                _ride("b", "pending_payment", 30.0),
                _ride("c", "paid", 30.0),
                _ride("d", "completed", 50.0),
                _ride("e", "cancelled", 20.0),
            ]
        )
        stats = history.stats()
        assert stats.total_rides == 5
        assert stats.upcoming == 1
        assert stats.pending_payment == 1
        assert stats.completed == 2
        assert stats.cancelled == 1
        assert stats.total_spent == 80.0

    def test_filter_and_pages(self):
        history = RideHistory([_ride(str(i), "paid" if i % 2 else "upcoming")
                               for i in range(12)])
        assert history.total_pages(ALL) == 3
        assert len(history.page(3)) == 2
        assert history.page(4) == []
        assert history.page(0) == []
        assert len(history.filtered("paid")) == 6
        assert history.total_pages("paid") == 2


class TestRideHistoryView:
    @pytest.mark.asyncio
    async def test_load_then_follow_stream(self):
        api = AsyncMock()
        api.list_rides.return_value = [_ride("a")]

        async def stream():
            yield RowChange("rides", ChangeType.INSERT, _row("b"))
            yield RowChange("rides", ChangeType.UPDATE, _row("a", "paid", 30.0))

        view = RideHistoryView(api, stream=stream())
        refreshes = []
        view.on_change(lambda: refreshes.append(1))
        await view.run()

        assert [r.id for r in view.visible_rides] == ["b", "a"]
        assert view.stats.total_spent == 30.0
        assert len(refreshes) == 3

    @pytest.mark.asyncio
    async def test_load_failure_sets_message(self):
        api = AsyncMock()
        api.list_rides.side_effect = CabBookingError("boom", user_message="Offline")
        view = RideHistoryView(api, stream=AsyncMock())
        await view.load()
        assert view.error_message == "Offline"
        assert view.loading is False

    @pytest.mark.asyncio
    async def test_filter_resets_page(self):
        api = AsyncMock()
        api.list_rides.return_value = [_ride(str(i)) for i in range(7)]
        view = RideHistoryView(api, stream=AsyncMock())
        await view.load()
        view.go_to_page(2)
        assert view.current_page == 2
        view.go_to_page(9)
        assert view.current_page == 2
        view.set_filter("upcoming")
        assert view.current_page == 1

    @pytest.mark.asyncio
    async def test_cancel_failure_keeps_row(self):
        api = AsyncMock()
        api.list_rides.return_value = [_ride("a", "paid")]
        api.cancel_ride.side_effect = Unauthorized("409")
        view = RideHistoryView(api, stream=AsyncMock())
        await view.load()

        assert await view.cancel("a") is False
        assert view.history.get("a").status is RideStatus.PAID
        assert view.error_message == Unauthorized.default_user_message

    @pytest.mark.asyncio
    async def test_pay_now_only_for_payable_rides(self):
        api = AsyncMock()
        api.list_rides.return_value = [_ride("a", "upcoming"), _ride("b", "paid")]
        view = RideHistoryView(api, stream=AsyncMock())
        await view.load()

        assert view.pay_now("a").ride.id == "a"
        with pytest.raises(Unauthorized):
            view.pay_now("b")


class TestRealtimePropagation:
    @pytest.mark.asyncio
    async def test_store_update_reaches_open_view(self, client, api, feed):
        await api.sign_up("rider@example.com", "secret123", "Riley Rider")
        ride = await api.create_ride(
            pickup_location="HQ", drop_location="SFO", date="2030-05-01",
            time="09:30", vehicle_type="sedan",
        )
        admin = await sign_up_admin(client)

        view = RideHistoryView(api, stream=feed.changes("rides", ride.user_id))
        await view.load()
        task = asyncio.create_task(view.follow())
        await wait_until(lambda: feed.subscriber_count("rides", ride.user_id) == 1)

        resp = await client.patch(
            f"/api/v1/admin/rides/{ride.id}",
            json={"status": "paid"},
            headers=admin["headers"],
        )
        assert resp.status_code == 200

        await wait_until(lambda: view.history.get(ride.id).status is RideStatus.PAID)
        assert len(view.history) == 1

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        assert feed.subscriber_count("rides", ride.user_id) == 0

    @pytest.mark.asyncio
    async def test_other_riders_changes_are_not_delivered(self, client, feed):
        alice = await sign_up(client, email="alice@example.com")
        bob = await sign_up(client, email="bob@example.com")
        await book_ride(client, bob["headers"])

        alice_id = alice["user"]["id"]
        delivered = [uid for uid, _ in feed.published]
        assert alice_id not in delivered


class _FeedBackedApi:
    """Change stream served from the in-memory feed; the list query is scripted."""

    def __init__(self, feed, user_id, list_rides):
        self.feed = feed
        self.user_id = user_id
        self.list_rides = list_rides

    async def stream_changes(self, table, on_ready=None):
        async with self.feed.subscribe(table, self.user_id) as changes:
            if on_ready is not None:
                on_ready()
            async for change in changes:
                yield change


class TestSubscribeBeforeFetch:
    @pytest.mark.asyncio
    async def test_change_committed_during_fetch_is_applied(self, feed):
        async def list_rides():
            # The update lands after the query has read its rows
            await feed.publish(
                "u1", RowChange("rides", ChangeType.UPDATE, _row("a", "paid", 30.0))
            )
            return [_ride("a")]

        api = _FeedBackedApi(feed, "u1", list_rides)
        stream = ChangeStream(api, "rides", max_reconnects=0, sleep=AsyncMock())
        view = RideHistoryView(api, stream=stream)
        task = asyncio.create_task(view.run())

        await wait_until(lambda: view.history.get("a") is not None)
        await wait_until(lambda: view.history.get("a").status is RideStatus.PAID)
        assert view.stats.total_spent == 30.0

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        assert feed.subscriber_count("rides", "u1") == 0
        assert not stream.connected.is_set()

    @pytest.mark.asyncio
    async def test_fetch_waits_for_subscription(self, feed):
        fetched_while = []

        async def list_rides():
            fetched_while.append(feed.subscriber_count("rides", "u1"))
            return [_ride("a")]

        api = _FeedBackedApi(feed, "u1", list_rides)
        view = RideHistoryView(
            api, stream=ChangeStream(api, "rides", max_reconnects=0, sleep=AsyncMock())
        )
        task = asyncio.create_task(view.run())
        await wait_until(lambda: fetched_while)
        assert fetched_while == [1]

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
