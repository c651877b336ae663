"""Spherical geometry helpers: distances, bearings and map tiles."""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0
GATEWAY_MAXIMUM_RANGE_KM = 200.0
GRID_ZOOM = 19


@dataclass(frozen=True)
class Point:
    """A position in degrees latitude and longitude."""

    lat: float
    lng: float

    def great_circle_distance(self, other: Point) -> float:
        """Haversine distance to other, in kilometres."""
        d_lat = math.radians(other.lat - self.lat)
        d_lng = math.radians(other.lng - self.lng)
        lat1 = math.radians(self.lat)
        lat2 = math.radians(other.lat)
        a = math.sin(d_lat / 2) ** 2 + math.sin(d_lng / 2) ** 2 * math.cos(lat1) * math.cos(lat2)
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
        return EARTH_RADIUS_KM * c

    def bearing_to(self, other: Point) -> float:
        """Initial bearing to other in degrees, in the range (-180, 180]."""
        d_lng = math.radians(other.lng - self.lng)
        lat1 = math.radians(self.lat)
        lat2 = math.radians(other.lat)
        y = math.sin(d_lng) * math.cos(lat2)
        x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(d_lng)
        return math.atan2(y, x) * 180.0 / math.pi

    def point_at_distance_and_bearing(self, distance_km: float, bearing: float) -> Point:
        """The point distance_km away along the given bearing in degrees."""
        angular = distance_km / EARTH_RADIUS_KM
        heading = math.radians(bearing)
        lat1 = math.radians(self.lat)
        lng1 = math.radians(self.lng)
        lat2 = math.asin(
            math.sin(lat1) * math.cos(angular)
            + math.cos(lat1) * math.sin(angular) * math.cos(heading)
        )
        lng2 = lng1 + math.atan2(
            math.sin(heading) * math.sin(angular) * math.cos(lat1),
            math.cos(angular) - math.sin(lat1) * math.sin(lat2),
        )
        lng2 = math.fmod(lng2 + 3 * math.pi, 2 * math.pi) - math.pi
        return Point(math.degrees(lat2), math.degrees(lng2))


def tile_for_lat_lng(latitude: float, longitude: float, zoom: int = GRID_ZOOM) -> tuple[int, int]:
    """Slippy-map tile (x, y) containing the position at the given zoom."""
    scale = 2.0**zoom
    lat = math.radians(latitude)
    x = math.floor((longitude + 180.0) / 360.0 * scale)
    y = math.floor((1.0 - math.log(math.tan(lat) + 1.0 / math.cos(lat)) / math.pi) / 2.0 * scale)
    return int(x), int(y)


def check_distance(km: float) -> bool:
    """Whether a measurement this far from its gateway is plausible."""
    return not (km == 0 or km > GATEWAY_MAXIMUM_RANGE_KM)


def bearing_between(origin: Point, target: Point) -> int:
    """Whole-degree bearing bucket from origin to target, 0 to 359."""
    bearing = origin.bearing_to(target)
    if bearing < 0:
        bearing += 360
    return math.floor(bearing)