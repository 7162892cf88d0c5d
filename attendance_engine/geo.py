"""Geofence containment predicates (circle and polygon)."""
import math
from typing import List, Sequence

from attendance_engine.attendance.schemas import PresenceSample
from attendance_engine.locations.schemas import Location, Vertex

EARTH_RADIUS_M = 6_371_000.0


def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two (lat, lon) points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # clamp: rounding can push a slightly above 1 for antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))


def circle_contains(
    point_lat: float,
    point_lon: float,
    center_lat: float,
    center_lon: float,
    radius_m: float,
) -> bool:
    """True when the point lies within radius_m meters of the center (boundary inclusive)."""
    return haversine_distance_m(point_lat, point_lon, center_lat, center_lon) <= radius_m


def polygon_contains(point_lat: float, point_lon: float, ring: Sequence[Vertex]) -> bool:
    """
    Even-odd ray casting over the outer ring.

    The ray runs from the point towards increasing longitude. An edge toggles
    membership when it straddles the point's latitude (half-open on the upper
    vertex) and its crossing longitude is strictly greater than the point's.
    Boundary points therefore follow that half-open rule: deterministic, but
    not guaranteed to count as inside. For an axis-aligned rectangle the
    southern and western edges are inside, the northern and eastern ones
    outside.
    Degenerate rings (empty, fewer than 3 unique vertices) contain nothing.
    """
    if not ring or len({tuple(v) for v in ring}) < 3:
        return False

    inside = False
    n = len(ring)
    j = n - 1
    for i in range(n):
        lat_i, lon_i = ring[i]
        lat_j, lon_j = ring[j]
        if (lat_i > point_lat) != (lat_j > point_lat):
            crossing_lon = (lon_j - lon_i) * (point_lat - lat_i) / (lat_j - lat_i) + lon_i
            if point_lon < crossing_lon:
                inside = not inside
        j = i
    return inside


def location_contains(location: Location, lat: float, lon: float) -> bool:
    """Dispatch on the location's geofence shape."""
    if location.is_circle:
        return circle_contains(lat, lon, location.center_lat, location.center_lon, location.radius_m)
    return polygon_contains(lat, lon, location.ring)


def build_presence_sample(location: Location, lat: float, lon: float, timestamp_ms: int) -> PresenceSample:
    """Turn a raw device ping into the sample recorded against an attendance record."""
    return PresenceSample(timestamp_ms=timestamp_ms, inside=location_contains(location, lat, lon))


def close_ring(ring: Sequence[Vertex]) -> List[Vertex]:
    """Return the ring with its first vertex repeated at the end if needed."""
    ring = [tuple(v) for v in ring]
    if ring and ring[0] != ring[-1]:
        ring = ring + [ring[0]]
    return ring


def geojson_to_ring(geojson: dict) -> List[Vertex]:
    """
    Convert a GeoJSON Polygon to a closed ring of (lat, lon) vertices.
    Accepts coordinates like: { "type":"Polygon", "coordinates":[ [ [lon,lat], ... ] ] }
    Ensures the ring is closed if needed.
    """
    if geojson.get("type") != "Polygon":
        raise ValueError("GeoJSON must be of type Polygon")

    coordinates = geojson.get("coordinates") or []
    if not coordinates:
        raise ValueError("Polygon has no exterior ring")

    ring = coordinates[0]  # exterior ring
    if len(ring) < 4:
        raise ValueError("Polygon ring must have at least 4 coordinates (including closure)")

    return close_ring([(float(lat), float(lon)) for lon, lat in ring])
