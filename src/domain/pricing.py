"""
Fixed-fare pricing
==================

Every ride is priced from its vehicle type alone, in minor currency units
(cents).  Distance and time of day play no part in the fare.

============  ======
Vehicle       Fare
============  ======
sedan          2000
suv            3000
luxury         5000
van            4000
(unknown)      2000
============  ======
"""

from __future__ import annotations

from typing import Optional

from .enums import VehicleType

DEFAULT_FARE_MINOR = 2000

FARE_TABLE_MINOR: dict[VehicleType, int] = {
    VehicleType.SEDAN: 2000,
    VehicleType.SUV: 3000,
    VehicleType.LUXURY: 5000,
    VehicleType.VAN: 4000,
}


def fare_for_vehicle(vehicle_type: Optional[str]) -> int:
    """Return the fare in minor units; unrecognised types get the default."""
    if not vehicle_type:
        return DEFAULT_FARE_MINOR
    try:
        vehicle = VehicleType(vehicle_type.strip().lower())
    except ValueError:
        return DEFAULT_FARE_MINOR
    return FARE_TABLE_MINOR[vehicle]


def to_major_units(amount_minor: int) -> float:
    return round(amount_minor / 100, 2)


def format_amount(amount_minor: int, symbol: str = "$") -> str:
    """Human label used on the pay button, e.g. ``$30.00``."""
    return f"{symbol}{amount_minor / 100:.2f}"
