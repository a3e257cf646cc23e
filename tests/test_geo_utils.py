"""
Tests for geospatial primitives.
"""

import math

import pytest

from saferide.utils.geo_utils import (
    centroid,
    distance_meters,
    encode_geohash,
    format_coordinates,
    geohash_query_bounds,
)

DHAKA = (23.8103, 90.4125)


def _offset(point, north_m=0.0, east_m=0.0):
    lat = point[0] + north_m / 111_320
    lng = point[1] + east_m / (111_320 * math.cos(math.radians(point[0])))
    return lat, lng


class TestDistance:

    def test_identical_points(self):
        assert distance_meters(DHAKA, DHAKA) == 0

    def test_short_distance(self):
        other = _offset(DHAKA, north_m=200)
        assert distance_meters(DHAKA, other) == pytest.approx(200, abs=1.5)

    def test_symmetric(self):
        other = _offset(DHAKA, north_m=350, east_m=-120)
        assert distance_meters(DHAKA, other) == pytest.approx(distance_meters(other, DHAKA))


class TestGeohash:

    def test_known_value(self):
        assert encode_geohash(57.64911, 10.40744, 11) == "u4pruydqqvj"

    def test_default_precision(self):
        assert len(encode_geohash(*DHAKA)) == 10

    def test_prefix_is_coarser_hash(self):
        assert encode_geohash(*DHAKA, precision=5) == encode_geohash(*DHAKA)[:5]

    def test_invalid_coordinate(self):
        with pytest.raises(ValueError):
            encode_geohash(91, 0)

    def test_invalid_precision(self):
        with pytest.raises(ValueError):
            encode_geohash(0, 0, precision=0)


class TestQueryBounds:

    def test_bounds_cover_points_inside_radius(self):
        """Every point within the radius falls in at least one range."""
        bounds = geohash_query_bounds(DHAKA, 500)
        offsets = [
            (0, 0), (450, 0), (-450, 0), (0, 450), (0, -450),
            (300, 300), (-300, 300), (300, -300), (-300, -300),
        ]
        for north, east in offsets:
            point_hash = encode_geohash(*_offset(DHAKA, north, east))
            assert any(start <= point_hash <= end for start, end in bounds), (north, east)

    def test_bounds_are_unique(self):
        bounds = geohash_query_bounds(DHAKA, 1000)
        assert len(bounds) == len(set(bounds))
        assert 1 <= len(bounds) <= 9

    def test_larger_radius_uses_shorter_prefixes(self):
        small = geohash_query_bounds(DHAKA, 100)
        large = geohash_query_bounds(DHAKA, 20_000)
        assert len(large[0][0]) <= len(small[0][0])

    def test_far_point_not_covered(self):
        bounds = geohash_query_bounds(DHAKA, 500)
        far_hash = encode_geohash(22.3569, 91.7832)  # Chattogram
        assert not any(start <= far_hash <= end for start, end in bounds)

    def test_non_positive_radius(self):
        with pytest.raises(ValueError):
            geohash_query_bounds(DHAKA, 0)


class TestHelpers:

    def test_centroid(self):
        assert centroid([(0, 0), (2, 4)]) == (1, 2)

    def test_centroid_empty(self):
        with pytest.raises(ValueError):
            centroid([])

    def test_format_coordinates(self):
        assert format_coordinates(23.8103, 90.4125) == "23.810300, 90.412500"
