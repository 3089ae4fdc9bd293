"""
Domain entities with business logic.

Patterns used
-------------
- ``ensure_transition`` guards the ride lifecycle
  (UPCOMING -> PENDING_PAYMENT -> PAID -> COMPLETED, any open ride ->
  CANCELLED).
- ``Notification.mark_read`` only ever flips ``read`` from False to True.

Entities are plain dataclasses so that both the API layer (from ORM rows)
and the client (from JSON payloads) can build them.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import date, datetime, time
from typing import Any, Optional

from .enums import PAYABLE_STATUSES, RIDE_TRANSITIONS, RideStatus


class InvalidStateTransition(Exception):
    """Raised when a ride status change violates the state machine."""


def ensure_transition(current: RideStatus, new_status: RideStatus) -> None:
    allowed = RIDE_TRANSITIONS.get(current, set())
    if new_status not in allowed:
        raise InvalidStateTransition(
            f"Cannot transition from {current.value} to {new_status.value}"
        )


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _parse_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _parse_time(value: Any) -> Optional[time]:
    if value is None or isinstance(value, time):
        return value
    return time.fromisoformat(str(value))


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Ride:
    id: str = ""
    user_id: str = ""
    pickup_location: str = ""
    drop_location: str = ""
    date: Optional[date] = None
    time: Optional[time] = None
    vehicle_type: str = "sedan"
    passengers: int = 1
    status: RideStatus = RideStatus.UPCOMING
    amount: Optional[float] = None
    payment_date: Optional[datetime] = None
    payment_intent_id: Optional[str] = None
    driver_name: Optional[str] = None
    driver_rating: Optional[float] = None
    vehicle_number: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_payable(self) -> bool:
        return self.status in PAYABLE_STATUSES

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Ride:
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["status"] = RideStatus(values.get("status", RideStatus.UPCOMING))
        values["date"] = _parse_date(values.get("date"))
        values["time"] = _parse_time(values.get("time"))
        values["payment_date"] = _parse_datetime(values.get("payment_date"))
        values["created_at"] = _parse_datetime(values.get("created_at"))
        return cls(**values)


@dataclass
class Notification:
    id: str = ""
    user_id: str = ""
    title: str = ""
    message: str = ""
    type: str = ""
    read: bool = False
    related_ride_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def mark_read(self) -> None:
        self.read = True

    def merge(self, other: Notification) -> None:
        """Take the newer row's fields but never turn ``read`` back off."""
        was_read = self.read
        for key, value in asdict(other).items():
            setattr(self, key, value)
        self.read = was_read or other.read

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Notification:
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["created_at"] = _parse_datetime(values.get("created_at"))
        return cls(**values)


@dataclass
class PaymentAttempt:
    """Client-side record of one payment dialog's lifetime; never persisted."""

    ride_id: str
    client_secret: str = ""
    amount_minor: int = 0
    attempt_count: int = 0
    idempotency_key: str = ""
    outcome: Optional[str] = None
