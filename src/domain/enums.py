"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    PENDING_PAYMENT = "pending_payment"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.UPCOMING: {
        RideStatus.PENDING_PAYMENT,
        RideStatus.PAID,
        RideStatus.CANCELLED,
    },
    RideStatus.PENDING_PAYMENT: {RideStatus.PAID, RideStatus.CANCELLED},
    RideStatus.PAID: {RideStatus.COMPLETED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

# Rides a payment intent may still be requested for
PAYABLE_STATUSES = frozenset({RideStatus.UPCOMING, RideStatus.PENDING_PAYMENT})

# Rides whose amount counts towards "total spent"
SETTLED_STATUSES = frozenset({RideStatus.PAID, RideStatus.COMPLETED})


class VehicleType(str, enum.Enum):
    SEDAN = "sedan"
    SUV = "suv"
    LUXURY = "luxury"
    VAN = "van"


class NotificationType(str, enum.Enum):
    RIDE_CONFIRMED = "ride_confirmed"
    RIDE_STATUS = "ride_status"


class ChangeType(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
