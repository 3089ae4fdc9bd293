"""
Ride history live view
======================

Loads the caller's rides once, then keeps them current from the ride change
stream. Filtering, paging and counters are delegated to
:class:`src.domain.history.RideHistory`.
"""

from __future__ import annotations

import logging
from typing import AsyncIterable, Callable, Optional, Union

from src.client.payment import PaymentDialog
from src.client.realtime import ChangeStream, load_then_follow
from src.domain.entities import Ride
from src.domain.enums import RideStatus
from src.domain.errors import CabBookingError, Unauthorized
from src.domain.events import RowChange
from src.domain.history import ALL, PAGE_SIZE, RideHistory, RideStats

logger = logging.getLogger(__name__)


class RideHistoryView:
    def __init__(
        self,
        api,
        *,
        stream: Optional[AsyncIterable[RowChange]] = None,
        page_size: int = PAGE_SIZE,
        **dialog_options,
    ):
        self.api = api
        self.stream = stream if stream is not None else ChangeStream(api, "rides")
        self.page_size = page_size
        self.dialog_options = dialog_options

        self.history = RideHistory()
        self.loading = False
        self.error_message: Optional[str] = None
        self.status_filter: Union[str, RideStatus] = ALL
        self.current_page = 1
        self._listeners: list[Callable[[], None]] = []

    def on_change(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener()

    # ── data ──────────────────────────────────────────────────────────

    async def load(self) -> None:
        self.loading = True
        try:
            rides = await self.api.list_rides()
        except CabBookingError as e:
            logger.error("Error fetching ride history: %s", e)
            self.error_message = e.user_message
        else:
            self.history.replace(rides)
            self.error_message = None
        finally:
            self.loading = False
        self._changed()

    def apply(self, change: RowChange) -> None:
        self.history.apply(change)
        self._changed()

    async def follow(self) -> None:
        """Apply change events until the stream ends or the task is cancelled."""
        async for change in self.stream:
            self.apply(change)

    async def run(self) -> None:
        """Initial fetch plus live updates, without a gap between the two."""
        await load_then_follow(self.stream, self.load, self.apply)

    # ── presentation ──────────────────────────────────────────────────

    @property
    def stats(self) -> RideStats:
        return self.history.stats()

    @property
    def total_pages(self) -> int:
        return self.history.total_pages(self.status_filter, self.page_size)

    @property
    def visible_rides(self) -> list[Ride]:
        return self.history.page(self.current_page, self.status_filter, self.page_size)

    def set_filter(self, status: Union[str, RideStatus] = ALL) -> None:
        self.status_filter = status if status == ALL else RideStatus(status)
        self.current_page = 1
        self._changed()

    def go_to_page(self, number: int) -> None:
        if 1 <= number <= max(self.total_pages, 1):
            self.current_page = number
            self._changed()

    # ── actions ───────────────────────────────────────────────────────

    async def cancel(self, ride_id: str) -> bool:
        try:
            ride = await self.api.cancel_ride(ride_id)
        except CabBookingError as e:
            logger.error("Cancelling ride %s failed: %s", ride_id, e)
            self.error_message = e.user_message
            self._changed()
            return False
        self.history.upsert(ride)
        self.error_message = None
        self._changed()
        return True

    def pay_now(self, ride_id: str, **options) -> PaymentDialog:
        ride = self.history.get(ride_id)
        if ride is None or not ride.is_payable:
            raise Unauthorized(
                f"Ride {ride_id} is not payable",
                user_message="This ride can no longer be paid for.",
            )
        return PaymentDialog(self.api, ride, **{**self.dialog_options, **options})
