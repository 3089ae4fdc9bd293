"""Unit tests for the fixed fare table."""

import pytest

from src.domain.pricing import (
    DEFAULT_FARE_MINOR,
    fare_for_vehicle,
    format_amount,
    to_major_units,
)


class TestFareTable:
    @pytest.mark.parametrize(
        "vehicle, fare",
        [("sedan", 2000), ("suv", 3000), ("luxury", 5000), ("van", 4000)],
    )
    def test_known_vehicles(self, vehicle, fare):
        assert fare_for_vehicle(vehicle) == fare

    def test_lookup_is_case_insensitive(self):
        assert fare_for_vehicle("SUV") == 3000
        assert fare_for_vehicle(" Luxury ") == 5000

    @pytest.mark.parametrize("vehicle", ["bike", "", None])
    def test_unknown_vehicle_gets_default(self, vehicle):
        assert fare_for_vehicle(vehicle) == DEFAULT_FARE_MINOR == 2000


class TestAmounts:
    def test_major_units(self):
        assert to_major_units(3000) == 30.0
        assert to_major_units(1999) == 19.99

    def test_button_label(self):
        assert format_amount(3000) == "$30.00"
        assert format_amount(4050) == "$40.50"
