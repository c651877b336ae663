"""Aggregation of packets into per-antenna radar beams.

A radar beam records, for one antenna, signal level and whole-degree bearing,
how far away the two most distant receptions were.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from ttnmapper.aggregations.distance import (
    GatewayLocator,
    bearing_database,
    bearing_live,
    distance_database,
)
from ttnmapper.database.aggregates import AggregateStore
from ttnmapper.database.connection import RecordNotFoundError
from ttnmapper.database.gateways import GatewayStore
from ttnmapper.database.models import ZERO_TIME, Antenna, RadarBeam, RadarBeamKey
from ttnmapper.database.packets import PacketStore
from ttnmapper.types import GatewayMoved, UplinkMessage, unix_nano_to_datetime

logger = logging.getLogger(__name__)

# Signal levels in dBm, strongest first; the last one catches everything weaker.
LEVELS: tuple[int, ...] = (-100, -105, -110, -115, -120, -200)


def get_level(rssi: float, snr: float) -> int:
    """The strongest level the signal exceeds; a negative SNR lowers the signal."""
    signal = rssi + snr if snr < 0 else rssi
    return next((level for level in LEVELS if signal > level), LEVELS[-1])


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _is_later(candidate: datetime, current: datetime | None) -> bool:
    if current is None:
        return True
    if (candidate.tzinfo is None) != (current.tzinfo is None):
        return _as_utc(candidate) > _as_utc(current)
    return candidate > current


def increment_radar_beam(radar_beam: RadarBeam, entry_time: datetime, distance: float) -> None:
    """Count one reception at the given distance in metres and advance last_updated."""
    radar_beam.samples = (radar_beam.samples or 0) + 1

    if _is_later(entry_time, radar_beam.last_updated):
        radar_beam.last_updated = entry_time

    previous_max = radar_beam.distance_max or 0.0
    previous_2nd = radar_beam.distance_2nd or 0.0

    if distance > previous_max:
        radar_beam.distance_max = distance
        radar_beam.distance_2nd = previous_max
    elif distance > previous_2nd:
        radar_beam.distance_2nd = distance


def _empty_beam(key: RadarBeamKey) -> RadarBeam:
    return RadarBeam(
        antenna_id=key.antenna_id,
        level=key.level,
        bearing=key.bearing,
        samples=0,
        last_updated=ZERO_TIME,
        distance_max=0.0,
        distance_2nd=0.0,
    )


class RadarBeamAggregator:
    """Keeps radar beams up to date with new and reprocessed packets."""

    def __init__(
        self, gateways: GatewayStore, aggregates: AggregateStore, packets: PacketStore
    ) -> None:
        self._gateways = gateways
        self._aggregates = aggregates
        self._packets = packets
        self._locator = GatewayLocator(gateways)
        self._cache: dict[RadarBeamKey, RadarBeam] = {}

    def _beam_from_db(self, key: RadarBeamKey) -> RadarBeam:
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        return self._aggregates.get_radar_beam(key)

    def _beam_in_memory(self, key: RadarBeamKey) -> RadarBeam:
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        return _empty_beam(key)

    def aggregate_new_data(self, message: UplinkMessage) -> list[RadarBeam]:
        """Add a live measurement to the beams of every gateway that heard it.

        Returns the beams that were updated and saved.
        """
        if message.experiment:
            return []
        if message.latitude == 0 and message.longitude == 0:
            return []

        entry_time = unix_nano_to_datetime(message.time)
        updated: list[RadarBeam] = []
        for gateway in message.gateways:
            if not self._locator.check_distance_from_gateway(gateway, message):
                continue

            antenna = self._gateways.find_antenna(
                gateway.network_id, gateway.gateway_id, gateway.antenna_index
            )
            if not antenna.id:
                logger.warning("Can't find antenna in database")
                continue
            logger.debug("AntennaID %s", antenna.id)

            key = RadarBeamKey(
                antenna_id=antenna.id,
                level=get_level(gateway.rssi, gateway.snr),
                bearing=bearing_live(gateway, message),
            )
            distance = self._locator.distance_live(gateway, message) * 1000.0

            beam = self._beam_from_db(key)
            increment_radar_beam(beam, entry_time, distance)
            self._cache[beam.key()] = beam
            self._aggregates.save_radar_beam(beam)
            updated.append(beam)
        return updated

    def aggregate_moved_gateway(self, moved_gateway: GatewayMoved) -> list[RadarBeam]:
        """Rebuild the beams of every antenna of a gateway that moved."""
        moved_time = self._gateways.get_gateway_last_moved_time(
            moved_gateway.network_id, moved_gateway.gateway_id
        )
        logger.info("Gateway %s moved at %s", moved_gateway.gateway_id, moved_time)
        antennas = self._gateways.get_antennas_for_gateway(
            moved_gateway.network_id, moved_gateway.gateway_id
        )
        beams: list[RadarBeam] = []
        for antenna in antennas:
            beams.extend(self.reprocess_antenna(antenna, moved_time))
        return beams

    def reprocess_antenna(self, antenna: Antenna, installed_at: datetime) -> list[RadarBeam]:
        """Replace the antenna's beams with ones built from packets since installed_at."""
        try:
            gateway = self._gateways.get_gateway(antenna.network_id, antenna.gateway_id)
        except RecordNotFoundError as error:
            logger.warning("%s", error)
            return []

        for beam in self._aggregates.get_radar_beams_for_antenna(antenna):
            self._cache.pop(beam.key(), None)

        rebuilt: dict[RadarBeamKey, RadarBeam] = {}
        count = 0
        for packet in self._packets.iter_packets_for_antenna_after(antenna, installed_at):
            count += 1
            if not self._locator.check_distance_from_antenna(antenna, packet):
                logger.debug("too far away %s", packet.id)
                continue

            key = RadarBeamKey(
                antenna_id=antenna.id,
                level=get_level(packet.rssi, packet.snr),
                bearing=bearing_database(gateway, packet),
            )
            distance = distance_database(gateway, packet) * 1000.0

            beam = self._beam_in_memory(key)
            increment_radar_beam(beam, packet.time, distance)
            self._cache[beam.key()] = beam
            rebuilt[beam.key()] = beam
        logger.info("Processed %d packets", count)

        self._aggregates.delete_radar_beams_for_antenna(antenna)

        if not rebuilt:
            logger.info("No packets")
            return []

        logger.info("Result is %d radar beams", len(rebuilt))
        beams = list(rebuilt.values())
        self._aggregates.create_radar_beams(beams)
        return beams