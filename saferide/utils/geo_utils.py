"""
Geospatial Utilities

Great-circle distance, geohash encoding and the geohash range bounds used to
query requests near a point. Range bounds follow the geofire scheme so that
hashes written by the mobile clients and by this service are interchangeable.
"""

import math
from typing import Iterable, List, Tuple

from geopy.distance import great_circle

GEOHASH_PRECISION = 10
BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
BITS_PER_CHAR = 5
MAXIMUM_BITS_PRECISION = 22 * BITS_PER_CHAR

EARTH_MERI_CIRCUMFERENCE = 40007860  # meters
METERS_PER_DEGREE_LATITUDE = 110574
EARTH_EQ_RADIUS = 6378137.0
E2 = 0.00669447819799
EPSILON = 1e-12

Coordinate = Tuple[float, float]


def validate_coordinate(latitude: float, longitude: float) -> None:
    """Raise ValueError for coordinates outside WGS84 ranges."""
    if not -90 <= latitude <= 90:
        raise ValueError(f"Latitude {latitude} out of range [-90, 90]")
    if not -180 <= longitude <= 180:
        raise ValueError(f"Longitude {longitude} out of range [-180, 180]")


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two (lat, lng) pairs in meters."""
    return great_circle(a, b).meters


def distance_km(a: Coordinate, b: Coordinate) -> float:
    return great_circle(a, b).kilometers


def centroid(points: Iterable[Coordinate]) -> Coordinate:
    """Unweighted average of (lat, lng) pairs."""
    points = list(points)
    if not points:
        raise ValueError("Cannot compute centroid of no points")
    lat = sum(p[0] for p in points) / len(points)
    lng = sum(p[1] for p in points) / len(points)
    return lat, lng


def format_coordinates(latitude: float, longitude: float) -> str:
    """Readable fallback address when reverse geocoding is unavailable."""
    return f"{latitude:.6f}, {longitude:.6f}"


# =============================================================================
# Geohash
# =============================================================================


def encode_geohash(
    latitude: float, longitude: float, precision: int = GEOHASH_PRECISION
) -> str:
    """Encode a coordinate as a base32 geohash of the given length."""
    validate_coordinate(latitude, longitude)
    if precision < 1 or precision > 22:
        raise ValueError("Precision must be between 1 and 22")

    lat_range = [-90.0, 90.0]
    lng_range = [-180.0, 180.0]
    chars = []
    hash_val = 0
    bits = 0
    even = True

    while len(chars) < precision:
        val = longitude if even else latitude
        rng = lng_range if even else lat_range
        mid = (rng[0] + rng[1]) / 2
        if val > mid:
            hash_val = (hash_val << 1) + 1
            rng[0] = mid
        else:
            hash_val = hash_val << 1
            rng[1] = mid
        even = not even
        if bits < 4:
            bits += 1
        else:
            bits = 0
            chars.append(BASE32[hash_val])
            hash_val = 0

    return "".join(chars)


def _meters_to_longitude_degrees(distance: float, latitude: float) -> float:
    radians = math.radians(latitude)
    num = math.cos(radians) * EARTH_EQ_RADIUS * math.pi / 180
    denom = 1 / math.sqrt(1 - E2 * math.sin(radians) * math.sin(radians))
    delta_deg = num * denom
    if delta_deg < EPSILON:
        return 360.0 if distance > 0 else 0.0
    return min(360.0, distance / delta_deg)


def _longitude_bits_for_resolution(resolution: float, latitude: float) -> float:
    degs = _meters_to_longitude_degrees(resolution, latitude)
    return max(1.0, math.log2(360 / degs)) if abs(degs) > 0.000001 else 1.0


def _latitude_bits_for_resolution(resolution: float) -> float:
    return min(
        math.log2(EARTH_MERI_CIRCUMFERENCE / 2 / resolution), MAXIMUM_BITS_PRECISION
    )


def _wrap_longitude(longitude: float) -> float:
    if -180 <= longitude <= 180:
        return longitude
    adjusted = longitude + 180
    if adjusted > 0:
        return (adjusted % 360) - 180
    return 180 - (-adjusted % 360)


def _bounding_box_bits(center: Coordinate, size: float) -> int:
    lat_delta = size / METERS_PER_DEGREE_LATITUDE
    lat_north = min(90.0, center[0] + lat_delta)
    lat_south = max(-90.0, center[0] - lat_delta)
    bits_lat = math.floor(_latitude_bits_for_resolution(size)) * 2
    bits_long_north = math.floor(_longitude_bits_for_resolution(size, lat_north)) * 2 - 1
    bits_long_south = math.floor(_longitude_bits_for_resolution(size, lat_south)) * 2 - 1
    return min(bits_lat, bits_long_north, bits_long_south, MAXIMUM_BITS_PRECISION)


def _bounding_box_coordinates(center: Coordinate, radius: float) -> List[Coordinate]:
    lat_degrees = radius / METERS_PER_DEGREE_LATITUDE
    lat_north = min(90.0, center[0] + lat_degrees)
    lat_south = max(-90.0, center[0] - lat_degrees)
    long_degs = max(
        _meters_to_longitude_degrees(radius, lat_north),
        _meters_to_longitude_degrees(radius, lat_south),
    )
    lat, lng = center
    west = _wrap_longitude(lng - long_degs)
    east = _wrap_longitude(lng + long_degs)
    return [
        (lat, lng),
        (lat, west),
        (lat, east),
        (lat_north, lng),
        (lat_north, west),
        (lat_north, east),
        (lat_south, lng),
        (lat_south, west),
        (lat_south, east),
    ]


def _geohash_query(geohash: str, bits: int) -> Tuple[str, str]:
    precision = math.ceil(bits / BITS_PER_CHAR)
    if len(geohash) < precision:
        return geohash, geohash + "~"
    ghash = geohash[:precision]
    base = ghash[:-1]
    last_value = BASE32.index(ghash[-1])
    significant_bits = bits - len(base) * BITS_PER_CHAR
    unused_bits = BITS_PER_CHAR - significant_bits
    start_value = (last_value >> unused_bits) << unused_bits
    end_value = start_value + (1 << unused_bits)
    if end_value > 31:
        return base + BASE32[start_value], base + "~"
    return base + BASE32[start_value], base + BASE32[end_value]


def geohash_query_bounds(center: Coordinate, radius_m: float) -> List[Tuple[str, str]]:
    """
    Geohash ranges covering a circle of ``radius_m`` around ``center``.

    Each (start, end) pair must be queried separately with
    ``start <= geohash <= end``; prefixes do not tile a circle exactly, so the
    union can contain points outside the radius and callers must still filter
    by real distance. Duplicate ranges are removed, order is preserved.
    """
    validate_coordinate(*center)
    if radius_m <= 0:
        raise ValueError("Radius must be positive")

    query_bits = max(1, _bounding_box_bits(center, radius_m))
    precision = math.ceil(query_bits / BITS_PER_CHAR)
    bounds: List[Tuple[str, str]] = []
    for lat, lng in _bounding_box_coordinates(center, radius_m):
        bound = _geohash_query(encode_geohash(lat, lng, precision), query_bits)
        if bound not in bounds:
            bounds.append(bound)
    return bounds
