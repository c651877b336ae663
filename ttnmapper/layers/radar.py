"""GeoJSON coverage outlines built from a gateway's radar beams."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from cachetools import TTLCache

from ttnmapper.aggregations.radar_beam import LEVELS
from ttnmapper.database.aggregates import AggregateStore
from ttnmapper.database.connection import RecordNotFoundError
from ttnmapper.database.gateways import GatewayStore
from ttnmapper.database.models import RadarBeam
from ttnmapper.geo import Point

logger = logging.getLogger(__name__)

_CACHE_TTL_SECONDS = 24 * 3600
_CACHE_SIZE = 10_000
_BEARINGS = 360

_LEVEL_COLOURS = {
    -200: "blue",
    -120: "cyan",
    -115: "green",
    -110: "yellow",
    -105: "orange",
    -100: "red",
}


def _empty_beam(level: int, bearing: int) -> RadarBeam:
    return RadarBeam(level=level, bearing=bearing, samples=0, distance_max=0.0, distance_2nd=0.0)


def merge_beams(old_beam: RadarBeam, new_beam: RadarBeam) -> RadarBeam:
    """A copy of old_beam holding the two largest distances of both beams."""
    distances = sorted(
        (
            old_beam.distance_2nd or 0.0,
            old_beam.distance_max or 0.0,
            new_beam.distance_2nd or 0.0,
            new_beam.distance_max or 0.0,
        )
    )
    return RadarBeam(
        id=old_beam.id,
        antenna_id=old_beam.antenna_id,
        level=old_beam.level,
        bearing=old_beam.bearing,
        samples=old_beam.samples,
        last_updated=old_beam.last_updated,
        distance_max=distances[3],
        distance_2nd=distances[2],
    )


def add_beams_multi(
    gateway_beams: dict[int, dict[int, RadarBeam]], new_beams: Iterable[RadarBeam]
) -> None:
    """Add beams per level and bearing, merging those already present."""
    for beam in new_beams:
        by_bearing = gateway_beams.setdefault(beam.level, {})
        existing = by_bearing.get(beam.bearing)
        by_bearing[beam.bearing] = beam if existing is None else merge_beams(existing, beam)


def fill_zeros_multi(gateway_beams: dict[int, dict[int, RadarBeam]]) -> None:
    """Give every level a beam at every bearing.

    A missing beam takes the beam of the previous, stronger level at that
    bearing, or an empty beam if there is none.
    """
    for level in LEVELS:
        gateway_beams.setdefault(level, {})

    previous_level: int | None = None
    for level in LEVELS:
        by_bearing = gateway_beams[level]
        stronger = gateway_beams[previous_level] if previous_level is not None else {}
        for bearing in range(_BEARINGS):
            if bearing in by_bearing:
                continue
            lower_beam = stronger.get(bearing)
            by_bearing[bearing] = (
                lower_beam if lower_beam is not None else _empty_beam(level, bearing)
            )
        previous_level = level


def add_beams_single(gateway_beams: dict[int, RadarBeam], new_beams: Iterable[RadarBeam]) -> None:
    """Add beams per bearing regardless of level, merging those already present."""
    for beam in new_beams:
        existing = gateway_beams.get(beam.bearing)
        gateway_beams[beam.bearing] = beam if existing is None else merge_beams(existing, beam)


def fill_zeros_single(gateway_beams: dict[int, RadarBeam]) -> None:
    """Give every bearing a beam, adding empty ones where missing."""
    for bearing in range(_BEARINGS):
        if bearing not in gateway_beams:
            gateway_beams[bearing] = _empty_beam(0, bearing)


def _ring(location: Point, beams: dict[int, RadarBeam]) -> list[list[float]]:
    # Counter-clockwise exterior ring, closed on its first position.
    points: list[list[float]] = []
    for bearing in range(_BEARINGS - 1, 0, -1):
        distance_km = (beams[bearing].distance_max or 0.0) / 1000
        point_a = location.point_at_distance_and_bearing(distance_km, float(bearing + 1))
        point_b = location.point_at_distance_and_bearing(distance_km, float(bearing))
        points.append([point_a.lng, point_a.lat])
        points.append([point_b.lng, point_b.lat])
    points.append(points[0])
    return points


def _polygon_feature(ring: list[list[float]], properties: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {"type": "Polygon", "coordinates": [ring]},
        "properties": properties,
    }


def _collection(features: list[dict[str, Any]]) -> bytes:
    document = {"type": "FeatureCollection", "features": features}
    return json.dumps(document, separators=(",", ":")).encode("utf-8")


def create_geojson_multi(
    gateway_location: Point, gateway_beams: dict[int, dict[int, RadarBeam]]
) -> bytes:
    """A feature collection with one coloured polygon per level, weakest first."""
    features = [
        _polygon_feature(
            _ring(gateway_location, gateway_beams[level]),
            {"rssi_avg": level, "fill": _LEVEL_COLOURS.get(level, "black")},
        )
        for level in reversed(LEVELS)
    ]
    return _collection(features)


def create_geojson_single(gateway_location: Point, gateway_beams: dict[int, RadarBeam]) -> bytes:
    """A feature collection with one polygon outlining all coverage."""
    feature = _polygon_feature(
        _ring(gateway_location, gateway_beams),
        {"fill": "blue", "fill-opacity": 0.5, "stroke-width": 0},
    )
    return _collection([feature])


class RadarLayerGenerator:
    """Builds and caches radar outlines per gateway."""

    def __init__(self, gateways: GatewayStore, aggregates: AggregateStore) -> None:
        self._gateways = gateways
        self._aggregates = aggregates
        self._multi_cache: TTLCache = TTLCache(maxsize=_CACHE_SIZE, ttl=_CACHE_TTL_SECONDS)
        self._single_cache: TTLCache = TTLCache(maxsize=_CACHE_SIZE, ttl=_CACHE_TTL_SECONDS)

    def _gateway_location(self, network_id: str, gateway_id: str) -> Point | None:
        try:
            gateway = self._gateways.get_gateway(network_id, gateway_id)
        except RecordNotFoundError:
            return None
        if gateway.latitude == 0 and gateway.longitude == 0:
            logger.info("gateway at null island")
            return None
        return Point(gateway.latitude, gateway.longitude)

    def _all_beams(self, network_id: str, gateway_id: str) -> list[RadarBeam]:
        beams: list[RadarBeam] = []
        for antenna in self._gateways.get_antennas_for_gateway(network_id, gateway_id):
            beams.extend(self._aggregates.get_radar_beams_for_antenna(antenna))
        return beams

    def generate_multi(self, network_id: str, gateway_id: str) -> bytes | None:
        """GeoJSON with one polygon per signal level; None if the gateway has no location."""
        key = (network_id, gateway_id)
        cached = self._multi_cache.get(key)
        if cached is not None:
            logger.debug("From cache")
            return cached
        logger.debug("Generating new radar")

        location = self._gateway_location(network_id, gateway_id)
        if location is None:
            return None

        gateway_beams: dict[int, dict[int, RadarBeam]] = {}
        add_beams_multi(gateway_beams, self._all_beams(network_id, gateway_id))
        fill_zeros_multi(gateway_beams)
        document = create_geojson_multi(location, gateway_beams)
        self._multi_cache[key] = document
        return document

    def generate_single(self, network_id: str, gateway_id: str) -> bytes | None:
        """GeoJSON with a single coverage polygon; None if the gateway has no location."""
        key = (network_id, gateway_id)
        cached = self._single_cache.get(key)
        if cached is not None:
            logger.debug("From cache")
            return cached
        logger.debug("Generating new radar")

        location = self._gateway_location(network_id, gateway_id)
        if location is None:
            return None

        gateway_beams: dict[int, RadarBeam] = {}
        add_beams_single(gateway_beams, self._all_beams(network_id, gateway_id))
        fill_zeros_single(gateway_beams)
        document = create_geojson_single(location, gateway_beams)
        self._single_cache[key] = document
        return document