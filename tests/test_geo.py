from __future__ import annotations

import pytest

from psk_alert.core.services.geo import (
    distance_between,
    haversine_km,
    is_valid_locator,
    latlon_to_locator,
    locator_to_latlon,
)


def test_distance_to_self_is_zero() -> None:
    assert haversine_km(40.7128, -74.0060, 40.7128, -74.0060) == 0


def test_distance_is_symmetric() -> None:
    a = (40.7128, -74.0060)
    b = (51.5074, -0.1278)
    assert haversine_km(*a, *b) == haversine_km(*b, *a)


def test_one_degree_of_latitude_is_about_111_km() -> None:
    assert abs(haversine_km(0.0, 0.0, 1.0, 0.0) - 111) <= 1


def test_new_york_to_london() -> None:
    assert abs(haversine_km(40.7128, -74.0060, 51.5074, -0.1278) - 5570) <= 10


def test_antipodal_points_do_not_fail() -> None:
    assert haversine_km(0.0, 0.0, 0.0, 180.0) == 20015


def test_distance_between_requires_both_positions() -> None:
    assert distance_between(None, (1.0, 1.0)) is None
    assert distance_between((1.0, 1.0), None) is None
    assert distance_between((0.0, 0.0), (1.0, 0.0)) == 111


@pytest.mark.parametrize(
    "locator, expected",
    [
        ("JO", (55.0, 10.0)),
        ("FN20", (40.5, -75.0)),
        ("FN20xr", (40.729167, -74.041667)),
        ("JO01aa00", (51.002083, 0.004167)),
    ],
)
def test_locator_to_cell_midpoint(locator: str, expected: tuple) -> None:
    lat, lon = locator_to_latlon(locator)
    assert lat == pytest.approx(expected[0], abs=1e-4)
    assert lon == pytest.approx(expected[1], abs=1e-4)


@pytest.mark.parametrize("locator", [None, "", "Z", "ZZ99", "FN2", "FN20xz", "12AB"])
def test_invalid_locators(locator) -> None:
    assert not is_valid_locator(locator)
    assert locator_to_latlon(locator) is None


def test_position_round_trips_through_locator() -> None:
    locator = latlon_to_locator(40.7128, -74.0060)
    assert locator == "FN20xr"
    lat, lon = locator_to_latlon(locator)
    assert abs(lat - 40.7128) < 1 / 24
    assert abs(lon - -74.0060) < 2 / 24
