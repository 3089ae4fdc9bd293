"""
Ride history state
==================

In-memory ride list behind the history/dashboard views.

* Rows are keyed by ride id; change events are merged in arrival order and
  never re-sorted by timestamp.
* INSERT prepends (or replaces in place when the id is already known),
  UPDATE replaces in place (or prepends an unknown row), DELETE removes.
* Statistics are recomputed from the current rows on every read.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from .entities import Ride
from .enums import ChangeType, RideStatus, SETTLED_STATUSES
from .events import RowChange

ALL = "all"
PAGE_SIZE = 5


@dataclass(frozen=True)
class RideStats:
    total_rides: int = 0
    upcoming: int = 0
    pending_payment: int = 0
    completed: int = 0
    cancelled: int = 0
    total_spent: float = 0.0


class RideHistory:
    def __init__(self, rides: Iterable[Ride] = ()):
        self._rides: list[Ride] = []
        self.replace(rides)

    def __len__(self) -> int:
        return len(self._rides)

    @property
    def rides(self) -> list[Ride]:
        return list(self._rides)

    def get(self, ride_id: str) -> Optional[Ride]:
        for ride in self._rides:
            if ride.id == ride_id:
                return ride
        return None

    def replace(self, rides: Iterable[Ride]) -> None:
        self._rides = list(rides)

    # ── merging ───────────────────────────────────────────────────────

    def upsert(self, ride: Ride) -> None:
        for idx, existing in enumerate(self._rides):
            if existing.id == ride.id:
                self._rides[idx] = ride
                return
        self._rides.insert(0, ride)

    def remove(self, ride_id: str) -> None:
        self._rides = [r for r in self._rides if r.id != ride_id]

    def apply(self, change: RowChange) -> None:
        if change.type is ChangeType.DELETE:
            if change.row_id:
                self.remove(change.row_id)
            return
        self.upsert(Ride.from_dict(change.record))

    # ── views ─────────────────────────────────────────────────────────

    def filtered(self, status: Union[str, RideStatus] = ALL) -> list[Ride]:
        if status == ALL:
            return self.rides
        wanted = RideStatus(status)
        return [r for r in self._rides if r.status == wanted]

    def total_pages(
        self, status: Union[str, RideStatus] = ALL, page_size: int = PAGE_SIZE
    ) -> int:
        return math.ceil(len(self.filtered(status)) / page_size)

    def page(
        self,
        number: int,
        status: Union[str, RideStatus] = ALL,
        page_size: int = PAGE_SIZE,
    ) -> list[Ride]:
        """1-based page of the filtered list; out-of-range pages are empty."""
        if number < 1:
            return []
        rows = self.filtered(status)
        return rows[(number - 1) * page_size : number * page_size]

    def stats(self) -> RideStats:
        rides = self._rides
        return RideStats(
            total_rides=len(rides),
            upcoming=sum(1 for r in rides if r.status == RideStatus.UPCOMING),
            pending_payment=sum(
                1 for r in rides if r.status == RideStatus.PENDING_PAYMENT
            ),
            completed=sum(1 for r in rides if r.status in SETTLED_STATUSES),
            cancelled=sum(1 for r in rides if r.status == RideStatus.CANCELLED),
            total_spent=round(
                sum(r.amount or 0.0 for r in rides if r.status in SETTLED_STATUSES),
                2,
            ),
        )
