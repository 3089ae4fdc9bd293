"""Booking form state and submission."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Optional

from src.domain.entities import Ride
from src.domain.enums import VehicleType
from src.domain.errors import InvalidRequest, Unauthorized
from src.client.payment import PaymentDialog

logger = logging.getLogger(__name__)

MAX_PASSENGERS = 8

_FIELD_LABELS = {
    "pickup_location": "pickup location",
    "drop_location": "drop location",
    "date": "date",
    "time": "time",
    "vehicle_type": "vehicle type",
}


@dataclass
class BookingForm:
    pickup_location: str = ""
    drop_location: str = ""
    date: Optional[date] = None
    time: Optional[time] = None
    vehicle_type: str = ""
    passengers: int = 1

    def missing_fields(self) -> list[str]:
        missing = []
        for name in _FIELD_LABELS:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing

    def validate(self) -> None:
        missing = self.missing_fields()
        if missing:
            labels = ", ".join(_FIELD_LABELS[name] for name in missing)
            raise InvalidRequest(
                f"Booking form missing fields: {missing}",
                user_message=f"Please fill in: {labels}.",
            )
        try:
            VehicleType(self.vehicle_type.strip().lower())
        except ValueError:
            raise InvalidRequest(
                f"Unknown vehicle type {self.vehicle_type!r}",
                user_message="Please pick a vehicle type.",
            )
        if not 1 <= self.passengers <= MAX_PASSENGERS:
            raise InvalidRequest(
                f"Passenger count {self.passengers} out of range",
                user_message=f"Passengers must be between 1 and {MAX_PASSENGERS}.",
            )

    def reset(self) -> None:
        self.pickup_location = ""
        self.drop_location = ""
        self.date = None
        self.time = None
        self.vehicle_type = ""
        self.passengers = 1


@dataclass
class BookingResult:
    ride: Ride
    dialog: Optional[PaymentDialog] = None


class BookingController:
    """
    Submits a ``BookingForm`` for the signed-in user.

    ``submit`` raises ``Unauthenticated`` without a session and
    ``InvalidRequest`` for an incomplete form, so the caller can send the
    user to sign-in or highlight the fields.
    """

    def __init__(self, api, session, **dialog_options):
        self.api = api
        self.session = session
        self.dialog_options = dialog_options

    async def submit(self, form: BookingForm, pay_now: bool = False) -> BookingResult:
        user = self.session.require_user()
        form.validate()
        ride = await self.api.create_ride(
            pickup_location=form.pickup_location.strip(),
            drop_location=form.drop_location.strip(),
            date=form.date.isoformat(),
            time=form.time.strftime("%H:%M"),
            vehicle_type=form.vehicle_type.strip().lower(),
            passengers=form.passengers,
            pay_now=pay_now,
        )
        logger.info(
            "User %s booked ride %s (%s)", user.id, ride.id, ride.status.value
        )
        form.reset()
        dialog = self.payment_dialog(ride) if pay_now else None
        return BookingResult(ride=ride, dialog=dialog)

    def payment_dialog(self, ride: Ride, **options) -> PaymentDialog:
        if not ride.is_payable:
            raise Unauthorized(
                f"Ride {ride.id} is {ride.status.value}",
                user_message="This ride can no longer be paid for.",
            )
        return PaymentDialog(self.api, ride, **{**self.dialog_options, **options})
