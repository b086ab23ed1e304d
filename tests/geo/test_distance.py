"""Tests for the haversine distance helpers."""

import pytest

from ridehail.core.exceptions import InvalidCoordinateError, ValidationError
from ridehail.geo.distance import (
    EARTH_RADIUS_M,
    haversine_distance_km,
    haversine_distance_m,
    validate_coordinate,
)
from tests.factories import PARK_STREET, SHYAMBAZAR


@pytest.mark.unit
class TestHaversineDistanceM:
    def test_same_point_returns_zero(self) -> None:
        lat, lon = PARK_STREET
        assert haversine_distance_m(lat, lon, lat, lon) == pytest.approx(0.0, abs=0.001)

    def test_symmetry(self) -> None:
        distance_ab = haversine_distance_m(*PARK_STREET, *SHYAMBAZAR)
        distance_ba = haversine_distance_m(*SHYAMBAZAR, *PARK_STREET)
        assert distance_ab == pytest.approx(distance_ba, rel=1e-9)

    def test_park_street_to_shyambazar(self) -> None:
        """Known Kolkata trip of roughly four and a half kilometres."""
        distance = haversine_distance_m(*PARK_STREET, *SHYAMBAZAR)
        assert 4450 <= distance <= 4550

    def test_short_distance_accuracy(self) -> None:
        # About 0.0009 degrees of latitude is 100m
        distance = haversine_distance_m(22.5448, 88.3426, 22.5457, 88.3426)
        assert 90 <= distance <= 110

    def test_antipodal_points(self) -> None:
        import math

        distance = haversine_distance_m(0.0, 0.0, 0.0, 180.0)
        assert distance == pytest.approx(math.pi * EARTH_RADIUS_M, rel=1e-9)


@pytest.mark.unit
class TestHaversineDistanceKm:
    def test_km_is_meters_over_thousand(self) -> None:
        meters = haversine_distance_m(*PARK_STREET, *SHYAMBAZAR)
        km = haversine_distance_km(*PARK_STREET, *SHYAMBAZAR)
        assert km == pytest.approx(meters / 1000.0)


@pytest.mark.unit
class TestValidateCoordinate:
    @pytest.mark.parametrize(
        "lat,lon",
        [(0.0, 0.0), (90.0, 180.0), (-90.0, -180.0), PARK_STREET],
    )
    def test_valid_coordinates(self, lat, lon) -> None:
        validate_coordinate(lat, lon)

    @pytest.mark.parametrize(
        "lat,lon",
        [(90.1, 0.0), (-91.0, 0.0), (0.0, 180.5), (0.0, -181.0)],
    )
    def test_out_of_range_raises(self, lat, lon) -> None:
        with pytest.raises(InvalidCoordinateError) as exc_info:
            validate_coordinate(lat, lon)
        assert exc_info.value.details == {"lat": lat, "lon": lon}

    def test_invalid_coordinate_is_validation_error(self) -> None:
        with pytest.raises(ValidationError):
            validate_coordinate(100.0, 0.0)
